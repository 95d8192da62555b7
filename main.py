"""Command-line interface for the showcase service."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Sequence

from showcase.config import ConfigurationError, Settings, load_settings
from showcase.database import Database

logger = logging.getLogger("showcase.main")


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Showcase API utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Initialise the showcase database")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP API")
    serve_parser.add_argument("--host", default=None, help="Bind address (default: SHOWCASE_HOST or 0.0.0.0)")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port for the HTTP API (default: SHOWCASE_PORT or 3000)",
    )

    create_parser = subparsers.add_parser(
        "create-user", help="Provision a local user for an identity provider subject"
    )
    create_parser.add_argument("external_id", help="Subject identifier issued by the identity provider")
    create_parser.add_argument("--email", default=None, help="Optional contact email")
    create_parser.add_argument("--name", default=None, help="Optional display name")

    subparsers.add_parser("list-users", help="List provisioned users")

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "init-db", "create-user", "list-users"}

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args(args_list)
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _initialise_database(settings: Settings) -> Database:
    database = Database(settings.database_path)
    database.initialize()
    logger.info("Database initialised at %s", settings.database_path)
    return database


def _serve(*, settings: Settings, database: Database, host: str | None, port: int | None) -> None:
    from showcase.api import create_app
    import uvicorn

    bind_host = host or settings.host
    bind_port = port or settings.port
    logger.info(
        "Starting showcase API on http://%s:%s (environment=%s)",
        bind_host,
        bind_port,
        settings.environment,
    )

    app = create_app(settings=settings, database=database, initialize_database=False)
    uvicorn.run(app, host=bind_host, port=bind_port, log_level="info")


def _create_user(database: Database, *, external_id: str, email: str | None, name: str | None) -> int:
    try:
        user = database.create_user(external_id, email=email, name=name)
    except ValueError as exc:
        print(f"Failed to create user: {exc}", file=sys.stderr)
        return 1

    print(f"Created user {user.id} for subject {user.external_id}")
    return 0


def _list_users(database: Database) -> None:
    users = database.list_users()
    if not users:
        print("No users are currently provisioned.")
        return

    print(f"{len(users)} user(s) found:")
    print(f"{'ID':<36}  {'Subject':<32}  {'Email':<32}  Created")
    print("-" * 120)
    for user in users:
        created = user.created_at.strftime("%Y-%m-%d %H:%M:%S %Z")
        email = user.email or "<no email>"
        print(f"{user.id:<36}  {user.external_id:<32}  {email:<32}  {created}")


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)
    try:
        settings = load_settings()
    except ConfigurationError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 2

    if args.command == "serve" and not settings.identity.configured:
        print(
            "Invalid configuration: set SHOWCASE_JWT_KEY or SHOWCASE_JWKS_URL to verify bearer tokens",
            file=sys.stderr,
        )
        return 2

    database = _initialise_database(settings)

    if args.command == "serve":
        _serve(settings=settings, database=database, host=args.host, port=args.port)
    elif args.command == "create-user":
        return _create_user(database, external_id=args.external_id, email=args.email, name=args.name)
    elif args.command == "list-users":
        _list_users(database)
    elif args.command == "init-db":
        print("Database initialisation complete.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
