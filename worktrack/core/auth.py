"""Session authentication and capability guard utilities."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from worktrack.core.clock import as_utc_naive, utcnow
from worktrack.core.config import get_settings
from worktrack.core.security import generate_session_token, hash_session_token, session_expiry
from worktrack.db.dependencies import get_db_session
from worktrack.models.entities import AuthSession, User, UserLevel, UserRole
from worktrack.repositories.tracker_repository import TrackerRepository

logger = logging.getLogger("worktrack.auth")


class Capability(str, Enum):
    """Operations gated per role; every entry point checks one of these."""

    MANAGE_OWN_WORK = "manage_own_work"
    MANAGE_USERS = "manage_users"
    MANAGE_PROJECTS = "manage_projects"
    MANAGE_FINANCES = "manage_finances"
    VIEW_ADMIN_SUMMARY = "view_admin_summary"


ROLE_CAPABILITIES: dict[UserRole, frozenset[Capability]] = {
    UserRole.ADMIN: frozenset(Capability),
    UserRole.USER: frozenset({Capability.MANAGE_OWN_WORK}),
}


@dataclass(frozen=True)
class RequestUserContext:
    """Authenticated request actor resolved from the session token."""

    user_id: UUID
    email: str
    display_name: str
    role: UserRole
    level: UserLevel

    @property
    def capabilities(self) -> frozenset[Capability]:
        return ROLE_CAPABILITIES.get(self.role, frozenset())

    @property
    def is_admin(self) -> bool:
        return self.role is UserRole.ADMIN


def context_for_user(user: User) -> RequestUserContext:
    return RequestUserContext(
        user_id=user.id,
        email=user.email,
        display_name=user.display_name,
        role=user.role,
        level=user.level,
    )


def has_capability(context: RequestUserContext, capability: Capability) -> bool:
    """Check whether the actor's role grants the capability."""

    return capability in context.capabilities


def ensure_capability(context: RequestUserContext, capability: Capability) -> None:
    """Raise 403 unless the actor holds the capability."""

    if not has_capability(context, capability):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions for this operation.",
        )


def can_manage_owned(
    context: RequestUserContext,
    *,
    owner_id: UUID,
    override: Capability,
) -> bool:
    """Owners manage their own rows; holders of ``override`` manage anyone's."""

    return context.user_id == owner_id or has_capability(context, override)


def require_capability(*capabilities: Capability):
    """Dependency factory requiring every provided capability."""

    required = set(capabilities)

    def dependency(context: RequestUserContext = Depends(get_current_user_context)) -> RequestUserContext:
        for capability in required:
            ensure_capability(context, capability)
        return context

    return dependency


def _extract_token(request: Request, authorization: str | None) -> str | None:
    if authorization:
        scheme, _, credentials = authorization.partition(" ")
        if scheme.lower() == "bearer" and credentials.strip():
            return credentials.strip()
    cookie_token = request.cookies.get(get_settings().session_cookie_name)
    return cookie_token or None


def open_session(db: Session, user: User, *, now: datetime | None = None) -> str:
    """Persist a new session for the user and return its raw token.

    Only the token digest is stored; the raw value is handed to the client once.
    """

    settings = get_settings()
    issued_at = now or utcnow()
    token = generate_session_token()
    repo = TrackerRepository(db)
    repo.delete_expired_sessions(issued_at)
    repo.add_session(
        AuthSession(
            user_id=user.id,
            token_hash=hash_session_token(token),
            created_at=issued_at,
            expires_at=session_expiry(issued_at, settings.session_ttl_hours),
        )
    )
    db.commit()
    return token


def close_session(db: Session, token: str) -> None:
    repo = TrackerRepository(db)
    session = repo.get_session_by_token_hash(hash_session_token(token))
    if session is None:
        return
    repo.delete_session(session)
    db.commit()


def resolve_session_user(db: Session, token: str, *, now: datetime | None = None) -> User | None:
    repo = TrackerRepository(db)
    session = repo.get_session_by_token_hash(hash_session_token(token))
    if session is None:
        return None

    current = now or utcnow()
    expires_at = as_utc_naive(session.expires_at)
    if expires_at <= current:
        logger.debug("Discarding expired session for user %s", session.user_id)
        repo.delete_session(session)
        db.commit()
        return None

    return repo.get_user(session.user_id)


def get_current_user_context(
    request: Request,
    authorization: str | None = Header(default=None),
    db: Session = Depends(get_db_session),
) -> RequestUserContext:
    """Resolve the session token to the current user.

    The ``Authorization: Bearer`` header takes precedence over the session cookie.
    """

    token = _extract_token(request, authorization)
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required.",
        )

    user = resolve_session_user(db, token)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session is invalid or has expired.",
        )
    return context_for_user(user)


def get_session_token(
    request: Request,
    authorization: str | None = Header(default=None),
) -> str | None:
    return _extract_token(request, authorization)
