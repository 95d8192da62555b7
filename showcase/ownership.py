"""Owner-only access checks shared by the mutating project endpoints."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .database import Database
from .models import Project, User


class OwnershipOutcome(str, Enum):
    GRANTED = "granted"
    USER_NOT_FOUND = "user_not_found"
    PROJECT_NOT_FOUND = "project_not_found"
    FORBIDDEN = "forbidden"


@dataclass(frozen=True)
class OwnershipCheck:
    """Result of :func:`authorize_owner`.

    ``project`` and ``user`` are set whenever the corresponding lookup
    succeeded, so a forbidden result still carries both rows.
    """

    outcome: OwnershipOutcome
    user: Optional[User] = None
    project: Optional[Project] = None

    @property
    def granted(self) -> bool:
        return self.outcome is OwnershipOutcome.GRANTED


def authorize_owner(database: Database, subject: str, project_id: str) -> OwnershipCheck:
    """Resolve the caller, fetch the project and compare owners.

    The user lookup runs first so that an unknown caller is reported as such
    even when the project does not exist either.
    """

    user = database.get_user_by_external_id(subject)
    if user is None:
        return OwnershipCheck(OwnershipOutcome.USER_NOT_FOUND)

    project = database.get_project(project_id)
    if project is None:
        return OwnershipCheck(OwnershipOutcome.PROJECT_NOT_FOUND, user=user)

    if project.user_id != user.id:
        return OwnershipCheck(OwnershipOutcome.FORBIDDEN, user=user, project=project)

    return OwnershipCheck(OwnershipOutcome.GRANTED, user=user, project=project)


__all__ = ["OwnershipCheck", "OwnershipOutcome", "authorize_owner"]
