import argparse
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from showcase.database import Database, resolve_database_path


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Provision a showcase user for an identity provider subject")
    parser.add_argument("external_id", help="Subject identifier from the identity provider (the token's 'sub')")
    parser.add_argument("--email", default=None, help="Optional contact email")
    parser.add_argument("--name", default=None, help="Optional display name")
    parser.add_argument(
        "--db",
        dest="db_path",
        default=None,
        help="Path to the SQLite database (defaults to SHOWCASE_DB_PATH or data/showcase.sqlite3)",
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    db_env = args.db_path or os.getenv("SHOWCASE_DB_PATH")
    db_path = resolve_database_path(db_env)

    database = Database(db_path)
    database.initialize()

    try:
        user = database.create_user(args.external_id, email=args.email, name=args.name)
    except ValueError as exc:  # duplicates, etc.
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(f"Created user {user.id} for subject {user.external_id}")
    if user.email:
        print(f"Contact email: {user.email}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
