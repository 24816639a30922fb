"""Application service for credentials and administrator-managed user accounts."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from worktrack.core.auth import Capability, RequestUserContext, ensure_capability
from worktrack.core.clock import utcnow
from worktrack.core.security import hash_password, verify_password
from worktrack.models.entities import User, UserLevel, UserRole
from worktrack.repositories.tracker_repository import TrackerRepository

logger = logging.getLogger("worktrack.users")


@dataclass(slots=True)
class UserCreateData:
    email: str
    display_name: str
    password: str
    level: UserLevel = UserLevel.JUNIOR
    role: UserRole = UserRole.USER


@dataclass(slots=True)
class UserUpdateData:
    display_name: str | None = None
    email: str | None = None
    level: UserLevel | None = None


def normalize_email(value: str) -> str:
    return value.strip().lower()


class UserService:
    """Service implementing login verification and the user administration rules."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = TrackerRepository(db)

    @staticmethod
    def serialize_user(user: User) -> dict[str, object]:
        return {
            "id": str(user.id),
            "email": user.email,
            "display_name": user.display_name,
            "role": user.role.value,
            "level": user.level.value,
            "created_at": user.created_at.isoformat(),
            "updated_at": user.updated_at.isoformat(),
        }

    def _get_user_or_404(self, user_id: UUID) -> User:
        user = self.repo.get_user(user_id)
        if user is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found.")
        return user

    def _ensure_email_free(self, email: str, *, exclude_id: UUID | None = None) -> None:
        existing = self.repo.get_user_by_email(email)
        if existing is not None and existing.id != exclude_id:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="A user with this email already exists.",
            )

    def _commit(self) -> None:
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="A user with this email already exists.",
            ) from exc

    # ---------- Credentials ----------
    def authenticate(self, *, email: str, password: str) -> User:
        user = self.repo.get_user_by_email(normalize_email(email))
        if user is None or not verify_password(password, user.password_hash):
            logger.warning("Failed login attempt for %s", normalize_email(email))
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid email or password.",
            )
        logger.info("User %s logged in", user.email)
        return user

    def get_user(self, user_id: UUID) -> User:
        return self._get_user_or_404(user_id)

    # ---------- Administration ----------
    def list_users(self, *, context: RequestUserContext) -> list[dict[str, object]]:
        ensure_capability(context, Capability.MANAGE_USERS)
        users = self.repo.list_users()
        owned = Counter(project.user_id for project in self.repo.list_projects())
        memberships = Counter(member.user_id for member in self.repo.list_members())

        items: list[dict[str, object]] = []
        for user in users:
            item = self.serialize_user(user)
            item["project_count"] = owned[user.id]
            item["membership_count"] = memberships[user.id]
            items.append(item)
        return items

    def create_user(self, *, context: RequestUserContext | None, data: UserCreateData) -> User:
        """Create an account; ``context`` is None only for the bootstrap script."""

        if context is not None:
            ensure_capability(context, Capability.MANAGE_USERS)

        email = normalize_email(data.email)
        display_name = data.display_name.strip()
        if not email or not display_name or not data.password:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="email, name and password are required.",
            )
        self._ensure_email_free(email)

        now = utcnow()
        user = User(
            email=email,
            display_name=display_name,
            password_hash=hash_password(data.password),
            role=data.role,
            level=data.level,
            created_at=now,
            updated_at=now,
        )
        self.repo.add_user(user)
        self._commit()
        self.db.refresh(user)
        logger.info(
            "User %s created with role %s by %s",
            user.email,
            user.role.value,
            context.email if context else "bootstrap",
        )
        return user

    def update_user(self, *, context: RequestUserContext, user_id: UUID, data: UserUpdateData) -> User:
        ensure_capability(context, Capability.MANAGE_USERS)
        user = self._get_user_or_404(user_id)
        if data.display_name is None and data.email is None and data.level is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="No fields to update.",
            )

        if data.email is not None:
            email = normalize_email(data.email)
            if not email:
                raise HTTPException(
                    status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                    detail="email must not be empty.",
                )
            self._ensure_email_free(email, exclude_id=user.id)
            user.email = email
        if data.display_name is not None:
            display_name = data.display_name.strip()
            if not display_name:
                raise HTTPException(
                    status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                    detail="name must not be empty.",
                )
            user.display_name = display_name
        if data.level is not None:
            user.level = data.level
        user.updated_at = utcnow()

        self._commit()
        self.db.refresh(user)
        logger.info("User %s updated by %s", user.id, context.email)
        return user

    def set_role(self, *, context: RequestUserContext, user_id: UUID, role: UserRole) -> User:
        ensure_capability(context, Capability.MANAGE_USERS)
        user = self._get_user_or_404(user_id)
        user.role = role
        user.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(user)
        logger.info("User %s role set to %s by %s", user.id, role.value, context.email)
        return user

    def delete_user(self, *, context: RequestUserContext, user_id: UUID) -> None:
        ensure_capability(context, Capability.MANAGE_USERS)
        if user_id == context.user_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="You cannot delete your own account.",
            )
        user = self._get_user_or_404(user_id)
        self.repo.delete_user(user)
        self.db.commit()
        logger.info("User %s deleted by %s", user_id, context.email)
