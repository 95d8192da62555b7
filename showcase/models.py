"""Domain models for users and the projects they publish."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple


@dataclass(frozen=True)
class User:
    """A local account mapped to an identity provider subject."""

    id: str
    external_id: str
    email: Optional[str]
    name: Optional[str]
    created_at: datetime


@dataclass(frozen=True)
class Project:
    """A showcased project owned by exactly one user."""

    id: str
    user_id: str
    title: str
    description: Optional[str]
    tech_stack: Tuple[str, ...]
    github_url: Optional[str]
    live_url: Optional[str]
    image_url: Optional[str]
    created_at: datetime
    # Populated only by queries that join the owning user.
    owner: Optional[User] = None


__all__ = ["Project", "User"]
