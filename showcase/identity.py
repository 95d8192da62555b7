"""Bearer token verification against the external identity provider.

Tokens are JWTs signed by the identity provider. They are verified locally,
either with a configured key (shared secret or PEM public key) or with keys
fetched from the provider's JWKS endpoint. The verified ``sub`` claim is the
caller identity that handlers map onto a local user row.

Resolution never raises for a bad credential. It yields an
:class:`AnonymousCaller` carrying the reason, and routes that require a user
depend on :func:`require_caller`, which turns that variant into a 401.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple, Union

import anyio
import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import IdentitySettings

logger = logging.getLogger("showcase.identity")


class IdentityError(Exception):
    """Raised when a bearer token cannot be verified."""


@dataclass(frozen=True)
class AnonymousCaller:
    """A request without a usable credential."""

    reason: str = "missing"


@dataclass(frozen=True)
class AuthenticatedCaller:
    """A request whose bearer token was verified by the identity provider."""

    subject: str
    claims: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)


Caller = Union[AnonymousCaller, AuthenticatedCaller]


class TokenVerifier:
    """Verify identity provider JWTs and return their claims."""

    def __init__(
        self,
        *,
        key: Optional[str] = None,
        jwks_url: Optional[str] = None,
        algorithms: Iterable[str] = ("RS256",),
        issuer: Optional[str] = None,
        audience: Optional[str] = None,
        authorized_parties: Iterable[str] = (),
        leeway: float = 0.0,
        jwks_client: Optional[jwt.PyJWKClient] = None,
    ) -> None:
        if not key and not jwks_url and jwks_client is None:
            raise ValueError("A verification key or JWKS URL must be provided")
        self._key = key
        self._jwks_client = jwks_client or (jwt.PyJWKClient(jwks_url) if jwks_url else None)
        self._algorithms: Tuple[str, ...] = tuple(algorithms)
        if not self._algorithms:
            raise ValueError("At least one signing algorithm must be allowed")
        self._issuer = issuer
        self._audience = audience
        self._authorized_parties = frozenset(authorized_parties)
        self._leeway = leeway

    @classmethod
    def from_settings(cls, settings: IdentitySettings) -> "TokenVerifier":
        return cls(
            key=settings.jwt_key,
            jwks_url=settings.jwks_url,
            algorithms=settings.algorithms,
            issuer=settings.issuer,
            audience=settings.audience,
            authorized_parties=settings.authorized_parties,
            leeway=settings.leeway,
        )

    def _signing_key(self, token: str) -> Any:
        if self._key:
            return self._key
        if self._jwks_client is None:
            raise IdentityError("No signing key is configured")
        return self._jwks_client.get_signing_key_from_jwt(token).key

    def verify(self, token: str) -> Dict[str, Any]:
        try:
            claims = jwt.decode(
                token,
                self._signing_key(token),
                algorithms=list(self._algorithms),
                issuer=self._issuer,
                audience=self._audience,
                leeway=self._leeway,
                options={"require": ["exp", "sub"]},
            )
        except jwt.PyJWTError as exc:
            raise IdentityError(str(exc) or exc.__class__.__name__) from exc

        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject.strip():
            raise IdentityError("Token subject is empty")

        if self._authorized_parties:
            party = claims.get("azp")
            if party not in self._authorized_parties:
                raise IdentityError(f"Token issued for unauthorized party {party!r}")

        return claims


class BearerIdentity:
    """Resolve the caller of a request from its ``Authorization`` header."""

    def __init__(self, verifier: TokenVerifier) -> None:
        self._verifier = verifier
        self._bearer = HTTPBearer(auto_error=False)

    async def __call__(self, request: Request) -> Caller:
        credentials: HTTPAuthorizationCredentials | None = await self._bearer(request)
        if credentials is None or credentials.scheme.lower() != "bearer":
            return AnonymousCaller("missing")

        token = credentials.credentials.strip()
        if not token:
            return AnonymousCaller("missing")

        try:
            # JWKS lookups block on the network.
            claims = await anyio.to_thread.run_sync(self._verifier.verify, token)
        except IdentityError as exc:
            logger.info("Rejected bearer token: %s", exc)
            return AnonymousCaller("invalid")

        return AuthenticatedCaller(subject=str(claims["sub"]), claims=claims)


def build_caller_dependency(identity: BearerIdentity):
    """Return a FastAPI dependency that only admits authenticated callers."""

    def require_caller(caller: Caller = Depends(identity)) -> AuthenticatedCaller:
        if isinstance(caller, AuthenticatedCaller):
            return caller
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return require_caller


__all__ = [
    "AnonymousCaller",
    "AuthenticatedCaller",
    "BearerIdentity",
    "Caller",
    "IdentityError",
    "TokenVerifier",
    "build_caller_dependency",
]
