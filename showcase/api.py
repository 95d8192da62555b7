"""FastAPI application that exposes the project showcase endpoints."""
from __future__ import annotations

import functools
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Callable, List, Optional, TypeVar

import anyio
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import Settings, load_settings
from .database import Database
from .identity import AuthenticatedCaller, BearerIdentity, TokenVerifier, build_caller_dependency
from .keepalive import KeepAliveJob
from .models import Project, User
from .ownership import OwnershipCheck, OwnershipOutcome, authorize_owner

logger = logging.getLogger("showcase.api")

T = TypeVar("T")

INTERNAL_ERROR = "Internal server error"
HEALTH_MESSAGE = "The health is OK"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UserResponse(_CamelModel):
    id: str
    external_id: str
    email: Optional[str]
    name: Optional[str]
    created_at: datetime


class ProjectResponse(_CamelModel):
    id: str
    title: str
    description: Optional[str]
    tech_stack: List[str]
    github_url: Optional[str]
    live_url: Optional[str]
    image_url: Optional[str]
    user_id: str
    created_at: datetime


class ProjectWithUserResponse(ProjectResponse):
    user: UserResponse


class ProjectPayload(_CamelModel):
    """Fields a client may set on a project.

    There is no ``userId`` field: the owner always comes from the caller.
    """

    title: Optional[str] = None
    description: Optional[str] = None
    tech_stack: Optional[List[str]] = None
    github_url: Optional[str] = None
    live_url: Optional[str] = None
    image_url: Optional[str] = None


class SuccessResponse(BaseModel):
    success: bool


def user_to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        external_id=user.external_id,
        email=user.email,
        name=user.name,
        created_at=user.created_at,
    )


def project_to_response(project: Project) -> ProjectResponse:
    return ProjectResponse(
        id=project.id,
        title=project.title,
        description=project.description,
        tech_stack=list(project.tech_stack),
        github_url=project.github_url,
        live_url=project.live_url,
        image_url=project.image_url,
        user_id=project.user_id,
        created_at=project.created_at,
    )


def project_with_user_to_response(project: Project) -> ProjectWithUserResponse:
    if project.owner is None:
        raise ValueError(f"Project {project.id} was loaded without its owner")
    return ProjectWithUserResponse(
        **project_to_response(project).model_dump(),
        user=user_to_response(project.owner),
    )


def _valid_title(value: object) -> bool:
    return isinstance(value, str) and bool(value.strip())


async def _call_storage(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a blocking storage call on a worker thread.

    Any failure is logged and reported to the client as a bare 500.
    """

    try:
        return await anyio.to_thread.run_sync(functools.partial(func, *args, **kwargs))
    except Exception as exc:
        logger.exception("Storage call %s failed", getattr(func, "__name__", repr(func)))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=INTERNAL_ERROR,
        ) from exc


def _raise_for_denied(check: OwnershipCheck, caller: AuthenticatedCaller, project_id: str) -> None:
    if check.granted:
        return
    if check.outcome is OwnershipOutcome.USER_NOT_FOUND:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    if check.outcome is OwnershipOutcome.PROJECT_NOT_FOUND:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
    logger.warning("User %s is not the owner of project %s", caller.subject, project_id)
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")


def register_error_handlers(app: FastAPI) -> None:
    """Render every error as ``{"error": <message>}``."""

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(_: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(_: Request, exc: RequestValidationError) -> JSONResponse:
        logger.info("Rejected malformed request body: %s", exc.errors())
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Invalid request body"},
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(_: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error while processing request", exc_info=exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": INTERNAL_ERROR},
        )


def register_api_routes(
    app: FastAPI,
    database: Database,
    *,
    current_caller: Callable[..., AuthenticatedCaller],
) -> None:
    """Expose the JSON API endpoints on the provided FastAPI application."""

    router = APIRouter(prefix="/api/v1")

    @router.get("/health", response_class=PlainTextResponse)
    async def healthcheck() -> str:
        return HEALTH_MESSAGE

    @router.get("/projects", response_model=List[ProjectWithUserResponse])
    async def list_projects() -> List[ProjectWithUserResponse]:
        projects = await _call_storage(database.list_projects)
        return [project_with_user_to_response(project) for project in projects]

    @router.post(
        "/projects",
        response_model=ProjectResponse,
        status_code=status.HTTP_201_CREATED,
    )
    async def create_project(
        payload: Optional[ProjectPayload] = None,
        caller: AuthenticatedCaller = Depends(current_caller),
    ) -> ProjectResponse:
        payload = payload or ProjectPayload()
        if not _valid_title(payload.title):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Title is required")

        user = await _call_storage(database.get_user_by_external_id, caller.subject)
        if user is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

        project = await _call_storage(
            database.create_project,
            user.id,
            title=payload.title,
            description=payload.description,
            tech_stack=payload.tech_stack,
            github_url=payload.github_url,
            live_url=payload.live_url,
            image_url=payload.image_url,
        )
        logger.info("User %s created project %s", user.id, project.id)
        return project_to_response(project)

    @router.get("/project/{project_id}", response_model=ProjectWithUserResponse)
    async def read_project(project_id: str) -> ProjectWithUserResponse:
        project = await _call_storage(database.get_project, project_id, include_owner=True)
        if project is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
        return project_with_user_to_response(project)

    @router.get("/projects/me", response_model=List[ProjectResponse])
    async def list_my_projects(
        caller: AuthenticatedCaller = Depends(current_caller),
    ) -> List[ProjectResponse]:
        result = await _call_storage(database.get_user_with_projects, caller.subject)
        if result is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
        _, projects = result
        return [project_to_response(project) for project in projects]

    @router.patch("/projects/{project_id}", response_model=ProjectResponse)
    async def update_project(
        project_id: str,
        payload: Optional[ProjectPayload] = None,
        caller: AuthenticatedCaller = Depends(current_caller),
    ) -> ProjectResponse:
        changes = payload.model_dump(exclude_unset=True) if payload is not None else {}

        check = await _call_storage(authorize_owner, database, caller.subject, project_id)
        _raise_for_denied(check, caller, project_id)

        if "title" in changes and not _valid_title(changes["title"]):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Title is required")

        updated = await _call_storage(database.update_project, project_id, **changes)
        if updated is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
        logger.info(
            "User %s updated project %s (fields: %s)",
            caller.subject,
            project_id,
            ", ".join(sorted(changes)) or "none",
        )
        return project_to_response(updated)

    @router.delete("/projects/{project_id}", response_model=SuccessResponse)
    async def delete_project(
        project_id: str,
        caller: AuthenticatedCaller = Depends(current_caller),
    ) -> SuccessResponse:
        check = await _call_storage(authorize_owner, database, caller.subject, project_id)
        _raise_for_denied(check, caller, project_id)

        deleted = await _call_storage(database.delete_project, project_id)
        if not deleted:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
        logger.info("User %s deleted project %s", caller.subject, project_id)
        return SuccessResponse(success=True)

    app.include_router(router)


def create_app(
    *,
    settings: Settings | None = None,
    database: Database | None = None,
    identity: BearerIdentity | None = None,
    keepalive: KeepAliveJob | None = None,
    initialize_database: bool = True,
) -> FastAPI:
    """Instantiate the FastAPI application with its collaborators.

    Anything not supplied is built from ``settings`` (or the environment when
    ``settings`` is omitted). The keep-alive job only runs in production.
    """

    settings = settings or load_settings()

    if database is None:
        database = Database(settings.database_path)
    if initialize_database:
        database.initialize()

    if identity is None:
        identity = BearerIdentity(TokenVerifier.from_settings(settings.identity))

    if keepalive is None and settings.is_production and settings.keepalive.url:
        keepalive = KeepAliveJob(
            settings.keepalive.url,
            interval=settings.keepalive.interval,
            timeout=settings.keepalive.timeout,
        )

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        if keepalive is not None and settings.is_production:
            keepalive.start()
        elif settings.is_production:
            logger.warning("No keep-alive URL configured; the keep-alive job will not run")
        try:
            yield
        finally:
            if keepalive is not None:
                await keepalive.stop()

    app = FastAPI(
        title="Showcase API",
        version="1.0.0",
        description="Public catalogue of user-owned projects with owner-only editing.",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.settings = settings
    app.state.database = database
    app.state.keepalive = keepalive

    register_error_handlers(app)
    register_api_routes(app, database, current_caller=build_caller_dependency(identity))

    return app


__all__ = [
    "ProjectPayload",
    "ProjectResponse",
    "ProjectWithUserResponse",
    "UserResponse",
    "create_app",
]
