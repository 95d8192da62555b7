"""Configuration management for the showcase service."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

import yaml

DEFAULT_ENVIRONMENT = "development"
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3000
DEFAULT_KEEPALIVE_INTERVAL = 14 * 60.0
DEFAULT_KEEPALIVE_TIMEOUT = 10.0


class ConfigurationError(ValueError):
    """Raised when the service configuration cannot be parsed."""


def _split_list(value: object) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = [str(item) for item in value]
    else:
        raise ConfigurationError(f"Expected a list or comma separated string, got {value!r}")
    return tuple(item.strip() for item in items if item.strip())


def _optional_str(value: object) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _as_int(value: object, name: str) -> int:
    try:
        return int(str(value).strip())
    except ValueError as exc:
        raise ConfigurationError(f"Invalid integer value {value!r} for {name}") from exc


def _as_float(value: object, name: str) -> float:
    try:
        parsed = float(str(value).strip())
    except ValueError as exc:
        raise ConfigurationError(f"Invalid number {value!r} for {name}") from exc
    if parsed < 0:
        raise ConfigurationError(f"{name} must not be negative")
    return parsed


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the application database."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "showcase.sqlite3").resolve(strict=False)


def resolve_config_path(env_value: Optional[str]) -> Optional[Path]:
    """Resolve the optional YAML configuration file."""

    if not env_value:
        return None
    return Path(env_value).expanduser().resolve(strict=False)


@dataclass(frozen=True)
class IdentitySettings:
    """How bearer tokens issued by the identity provider are verified."""

    jwt_key: Optional[str] = None
    jwks_url: Optional[str] = None
    algorithms: Tuple[str, ...] = ("RS256",)
    issuer: Optional[str] = None
    audience: Optional[str] = None
    authorized_parties: Tuple[str, ...] = ()
    leeway: float = 0.0

    @property
    def configured(self) -> bool:
        return bool(self.jwt_key or self.jwks_url)


@dataclass(frozen=True)
class KeepAliveSettings:
    url: Optional[str] = None
    interval: float = DEFAULT_KEEPALIVE_INTERVAL
    timeout: float = DEFAULT_KEEPALIVE_TIMEOUT


@dataclass(frozen=True)
class Settings:
    """Top level service settings."""

    environment: str = DEFAULT_ENVIRONMENT
    database_path: Path = field(default_factory=lambda: resolve_database_path(None))
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    cors_origins: Tuple[str, ...] = ("*",)
    identity: IdentitySettings = field(default_factory=IdentitySettings)
    keepalive: KeepAliveSettings = field(default_factory=KeepAliveSettings)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


def _load_yaml(config_path: Path) -> Dict[str, object]:
    try:
        with config_path.open("r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle) or {}
    except OSError as exc:
        raise ConfigurationError(f"Failed to read configuration file {config_path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Configuration file {config_path} is not valid YAML") from exc

    if not isinstance(raw, dict):
        raise ConfigurationError("Configuration file must contain a mapping at the top level")
    return raw


def _section(raw: Mapping[str, object], name: str) -> Mapping[str, object]:
    value = raw.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigurationError(f"Configuration section '{name}' must be a mapping")
    return value


def load_settings(
    env: Optional[Mapping[str, str]] = None,
    *,
    config_path: Optional[Path] = None,
) -> Settings:
    """Build :class:`Settings` from an optional YAML file and the environment.

    Environment variables always win over values read from the file.
    """

    environ = os.environ if env is None else env
    if config_path is None:
        config_path = resolve_config_path(environ.get("SHOWCASE_CONFIG"))
    raw: Mapping[str, object] = _load_yaml(config_path) if config_path is not None else {}

    identity_raw = _section(raw, "identity")
    keepalive_raw = _section(raw, "keepalive")

    def pick(env_name: str, section: Mapping[str, object], key: str, default: object = None) -> object:
        value = environ.get(env_name)
        if value is not None and value.strip() != "":
            return value
        return section.get(key, default)

    environment = str(pick("SHOWCASE_ENV", raw, "environment", DEFAULT_ENVIRONMENT)).strip().lower()
    database_value = _optional_str(pick("SHOWCASE_DB_PATH", raw, "database_path"))

    cors_origins = _split_list(pick("SHOWCASE_CORS_ORIGINS", raw, "cors_origins", "*")) or ("*",)

    algorithms = _split_list(pick("SHOWCASE_JWT_ALGORITHMS", identity_raw, "algorithms", "RS256"))
    if not algorithms:
        raise ConfigurationError("At least one JWT algorithm must be configured")

    identity = IdentitySettings(
        jwt_key=_optional_str(pick("SHOWCASE_JWT_KEY", identity_raw, "jwt_key")),
        jwks_url=_optional_str(pick("SHOWCASE_JWKS_URL", identity_raw, "jwks_url")),
        algorithms=algorithms,
        issuer=_optional_str(pick("SHOWCASE_JWT_ISSUER", identity_raw, "issuer")),
        audience=_optional_str(pick("SHOWCASE_JWT_AUDIENCE", identity_raw, "audience")),
        authorized_parties=_split_list(
            pick("SHOWCASE_AUTHORIZED_PARTIES", identity_raw, "authorized_parties")
        ),
        leeway=_as_float(pick("SHOWCASE_JWT_LEEWAY", identity_raw, "leeway", 0), "leeway"),
    )

    keepalive = KeepAliveSettings(
        url=_optional_str(pick("SHOWCASE_KEEPALIVE_URL", keepalive_raw, "url")),
        interval=_as_float(
            pick("SHOWCASE_KEEPALIVE_INTERVAL", keepalive_raw, "interval", DEFAULT_KEEPALIVE_INTERVAL),
            "keepalive interval",
        ),
        timeout=_as_float(
            pick("SHOWCASE_KEEPALIVE_TIMEOUT", keepalive_raw, "timeout", DEFAULT_KEEPALIVE_TIMEOUT),
            "keepalive timeout",
        ),
    )
    if keepalive.interval == 0:
        raise ConfigurationError("keepalive interval must be greater than zero")

    return Settings(
        environment=environment or DEFAULT_ENVIRONMENT,
        database_path=resolve_database_path(database_value),
        host=str(pick("SHOWCASE_HOST", raw, "host", DEFAULT_HOST)).strip() or DEFAULT_HOST,
        port=_as_int(pick("SHOWCASE_PORT", raw, "port", DEFAULT_PORT), "port"),
        cors_origins=cors_origins,
        identity=identity,
        keepalive=keepalive,
    )


__all__ = [
    "ConfigurationError",
    "IdentitySettings",
    "KeepAliveSettings",
    "Settings",
    "load_settings",
    "resolve_config_path",
    "resolve_database_path",
]
