from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable

import jwt
import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from showcase.config import IdentitySettings, Settings
from showcase.database import Database

SIGNING_SECRET = "showcase-tests-signing-secret-0123456789abcdef"


def make_token(subject: str, *, secret: str = SIGNING_SECRET, expires_in: int = 300, **claims: object) -> str:
    payload = {
        "sub": subject,
        "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        **claims,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture()
def database(tmp_path: Path) -> Database:
    db = Database(tmp_path / "showcase.sqlite3")
    db.initialize()
    return db


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        database_path=tmp_path / "showcase.sqlite3",
        identity=IdentitySettings(jwt_key=SIGNING_SECRET, algorithms=("HS256",)),
    )


@pytest.fixture()
def issue_token() -> Callable[..., str]:
    return make_token
