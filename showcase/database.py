"""SQLite-backed persistence for users and their projects."""
from __future__ import annotations

import json
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Tuple

from .config import resolve_database_path
from .models import Project, User


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_datetime(value: datetime) -> str:
    return value.isoformat(timespec="microseconds")


def _parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _generate_id() -> str:
    return str(uuid.uuid4())


def _serialize_tech_stack(value: Optional[Sequence[str]]) -> str:
    return json.dumps([str(item) for item in value or ()])


def _parse_tech_stack(value: Optional[str]) -> Tuple[str, ...]:
    if not value:
        return ()
    return tuple(str(item) for item in json.loads(value))


_USER_COLUMNS = "u.id AS u_id, u.external_id AS u_external_id, u.email AS u_email, u.name AS u_name, u.created_at AS u_created_at"


class Database:
    """Simple wrapper around SQLite for persisting users and projects."""

    def __init__(self, path: Path) -> None:
        _ensure_directory(path)
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def _session(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def initialize(self) -> None:
        """Create the required tables if they do not already exist."""

        with self._session() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    external_id TEXT NOT NULL UNIQUE,
                    email TEXT,
                    name TEXT,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS projects (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    title TEXT NOT NULL,
                    description TEXT,
                    tech_stack TEXT NOT NULL DEFAULT '[]',
                    github_url TEXT,
                    live_url TEXT,
                    image_url TEXT,
                    created_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_projects_user_id ON projects(user_id);
                CREATE INDEX IF NOT EXISTS idx_projects_created_at ON projects(created_at);
                """
            )

    # ------------------------------------------------------------------
    # User management
    # ------------------------------------------------------------------
    def create_user(
        self,
        external_id: str,
        *,
        email: Optional[str] = None,
        name: Optional[str] = None,
    ) -> User:
        """Provision a local user for an identity provider subject."""

        normalized_external_id = external_id.strip()
        if not normalized_external_id:
            raise ValueError("External identifier must not be empty")

        normalized_email = email.strip().lower() if email and email.strip() else None
        normalized_name = name.strip() if name and name.strip() else None
        user_id = _generate_id()
        created_at = _current_timestamp()

        with self._session() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO users (id, external_id, email, name, created_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        user_id,
                        normalized_external_id,
                        normalized_email,
                        normalized_name,
                        _serialize_datetime(created_at),
                    ),
                )
            except sqlite3.IntegrityError as exc:
                raise ValueError("A user with that external identifier already exists") from exc

        return User(
            id=user_id,
            external_id=normalized_external_id,
            email=normalized_email,
            name=normalized_name,
            created_at=created_at,
        )

    def get_user_by_external_id(self, external_id: str) -> Optional[User]:
        with self._session() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE external_id = ?",
                (external_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def get_user_with_projects(self, external_id: str) -> Optional[Tuple[User, List[Project]]]:
        """Return the user for ``external_id`` along with every project they own."""

        with self._session() as conn:
            user_row = conn.execute(
                "SELECT * FROM users WHERE external_id = ?",
                (external_id,),
            ).fetchone()
            if user_row is None:
                return None
            project_rows = conn.execute(
                "SELECT * FROM projects WHERE user_id = ? ORDER BY created_at, rowid",
                (user_row["id"],),
            ).fetchall()

        return self._row_to_user(user_row), [self._row_to_project(row) for row in project_rows]

    def list_users(self) -> List[User]:
        with self._session() as conn:
            rows = conn.execute("SELECT * FROM users ORDER BY created_at, rowid").fetchall()
        return [self._row_to_user(row) for row in rows]

    # ------------------------------------------------------------------
    # Project management
    # ------------------------------------------------------------------
    def create_project(
        self,
        user_id: str,
        *,
        title: str,
        description: Optional[str] = None,
        tech_stack: Optional[Sequence[str]] = None,
        github_url: Optional[str] = None,
        live_url: Optional[str] = None,
        image_url: Optional[str] = None,
    ) -> Project:
        if not title:
            raise ValueError("Title must not be empty")

        project_id = _generate_id()
        created_at = _current_timestamp()
        with self._session() as conn:
            conn.execute(
                """
                INSERT INTO projects (
                    id, user_id, title, description, tech_stack, github_url, live_url, image_url, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    project_id,
                    user_id,
                    title,
                    description,
                    _serialize_tech_stack(tech_stack),
                    github_url,
                    live_url,
                    image_url,
                    _serialize_datetime(created_at),
                ),
            )

        project = self.get_project(project_id)
        if project is None:
            raise RuntimeError("Failed to load project after creation")
        return project

    def get_project(self, project_id: str, *, include_owner: bool = False) -> Optional[Project]:
        with self._session() as conn:
            if include_owner:
                row = conn.execute(
                    f"""
                    SELECT p.*, {_USER_COLUMNS}
                      FROM projects AS p
                      JOIN users AS u ON u.id = p.user_id
                     WHERE p.id = ?
                    """,
                    (project_id,),
                ).fetchone()
            else:
                row = conn.execute("SELECT * FROM projects WHERE id = ?", (project_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_project(row, include_owner=include_owner)

    def list_projects(self) -> List[Project]:
        """Return every project with its owner, newest first."""

        with self._session() as conn:
            rows = conn.execute(
                f"""
                SELECT p.*, {_USER_COLUMNS}
                  FROM projects AS p
                  JOIN users AS u ON u.id = p.user_id
                 ORDER BY p.created_at DESC, p.rowid DESC
                """
            ).fetchall()
        return [self._row_to_project(row, include_owner=True) for row in rows]

    def update_project(self, project_id: str, **fields: object) -> Optional[Project]:
        """Apply ``fields`` to a project and return the refreshed row.

        Only keys that are present are written; ``None`` clears a nullable
        column. ``user_id`` is never writable.
        """

        if not fields:
            return self.get_project(project_id)

        allowed = {
            "title": "title",
            "description": "description",
            "tech_stack": "tech_stack",
            "github_url": "github_url",
            "live_url": "live_url",
            "image_url": "image_url",
        }

        updates: List[str] = []
        values: List[object] = []
        for key, column in allowed.items():
            if key not in fields:
                continue
            value = fields[key]
            if column == "title" and not value:
                raise ValueError("Title must not be empty")
            if column == "tech_stack":
                value = _serialize_tech_stack(value)  # type: ignore[arg-type]
            updates.append(f"{column} = ?")
            values.append(value)

        if not updates:
            return self.get_project(project_id)

        values.append(project_id)
        query = f"UPDATE projects SET {', '.join(updates)} WHERE id = ?"

        with self._session() as conn:
            cursor = conn.execute(query, values)
            if cursor.rowcount == 0:
                return None

        return self.get_project(project_id)

    def delete_project(self, project_id: str) -> bool:
        with self._session() as conn:
            cursor = conn.execute("DELETE FROM projects WHERE id = ?", (project_id,))
            return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _row_to_user(self, row: sqlite3.Row) -> User:
        return User(
            id=str(row["id"]),
            external_id=str(row["external_id"]),
            email=row["email"],
            name=row["name"],
            created_at=_parse_datetime(str(row["created_at"])),
        )

    def _row_to_joined_user(self, row: sqlite3.Row) -> User:
        return User(
            id=str(row["u_id"]),
            external_id=str(row["u_external_id"]),
            email=row["u_email"],
            name=row["u_name"],
            created_at=_parse_datetime(str(row["u_created_at"])),
        )

    def _row_to_project(self, row: sqlite3.Row, *, include_owner: bool = False) -> Project:
        return Project(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            title=str(row["title"]),
            description=row["description"],
            tech_stack=_parse_tech_stack(row["tech_stack"]),
            github_url=row["github_url"],
            live_url=row["live_url"],
            image_url=row["image_url"],
            created_at=_parse_datetime(str(row["created_at"])),
            owner=self._row_to_joined_user(row) if include_owner else None,
        )


__all__ = ["Database", "resolve_database_path"]
