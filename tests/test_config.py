from __future__ import annotations

from pathlib import Path

import pytest

from showcase.config import (
    DEFAULT_KEEPALIVE_INTERVAL,
    ConfigurationError,
    Settings,
    load_settings,
    resolve_database_path,
)


def test_defaults_without_environment() -> None:
    settings = load_settings({})

    assert settings.environment == "development"
    assert not settings.is_production
    assert settings.port == 3000
    assert settings.host == "0.0.0.0"
    assert settings.cors_origins == ("*",)
    assert settings.database_path == resolve_database_path(None)
    assert settings.database_path.name == "showcase.sqlite3"
    assert settings.identity.algorithms == ("RS256",)
    assert not settings.identity.configured
    assert settings.keepalive.url is None
    assert settings.keepalive.interval == DEFAULT_KEEPALIVE_INTERVAL == 840


def test_environment_overrides(tmp_path: Path) -> None:
    settings = load_settings(
        {
            "SHOWCASE_ENV": "Production",
            "SHOWCASE_DB_PATH": str(tmp_path / "custom.sqlite3"),
            "SHOWCASE_PORT": "8080",
            "SHOWCASE_CORS_ORIGINS": "https://a.example.com, https://b.example.com",
            "SHOWCASE_JWKS_URL": "https://clerk.example.com/.well-known/jwks.json",
            "SHOWCASE_JWT_ISSUER": "https://clerk.example.com",
            "SHOWCASE_AUTHORIZED_PARTIES": "https://a.example.com",
            "SHOWCASE_KEEPALIVE_URL": "https://showcase.example.com/api/v1/health",
            "SHOWCASE_KEEPALIVE_INTERVAL": "60",
        }
    )

    assert settings.is_production
    assert settings.database_path == (tmp_path / "custom.sqlite3").resolve()
    assert settings.port == 8080
    assert settings.cors_origins == ("https://a.example.com", "https://b.example.com")
    assert settings.identity.configured
    assert settings.identity.issuer == "https://clerk.example.com"
    assert settings.identity.authorized_parties == ("https://a.example.com",)
    assert settings.keepalive.url == "https://showcase.example.com/api/v1/health"
    assert settings.keepalive.interval == 60.0


def test_yaml_file_with_environment_precedence(tmp_path: Path) -> None:
    config_file = tmp_path / "showcase.yaml"
    config_file.write_text(
        "\n".join(
            [
                "environment: production",
                "port: 4000",
                "identity:",
                "  jwt_key: from-file",
                "  algorithms: [HS256, HS512]",
                "keepalive:",
                "  url: https://from-file.example.com/health",
                "  timeout: 5",
            ]
        ),
        encoding="utf-8",
    )

    settings = load_settings({"SHOWCASE_CONFIG": str(config_file), "SHOWCASE_PORT": "5000"})

    assert settings.is_production
    assert settings.port == 5000
    assert settings.identity.jwt_key == "from-file"
    assert settings.identity.algorithms == ("HS256", "HS512")
    assert settings.keepalive.url == "https://from-file.example.com/health"
    assert settings.keepalive.timeout == 5.0


@pytest.mark.parametrize(
    "env",
    [
        {"SHOWCASE_PORT": "eighty"},
        {"SHOWCASE_KEEPALIVE_INTERVAL": "0"},
        {"SHOWCASE_JWT_LEEWAY": "-1"},
        {"SHOWCASE_JWT_ALGORITHMS": " , "},
    ],
)
def test_invalid_values_raise(env: dict) -> None:
    with pytest.raises(ConfigurationError):
        load_settings(env)


def test_invalid_yaml_is_reported(tmp_path: Path) -> None:
    config_file = tmp_path / "broken.yaml"
    config_file.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_settings({}, config_path=config_file)

    with pytest.raises(ConfigurationError):
        load_settings({}, config_path=tmp_path / "missing.yaml")


def test_settings_dataclass_defaults() -> None:
    settings = Settings(environment="production")
    assert settings.is_production
    assert settings.port == 3000
