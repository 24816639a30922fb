"""ORM model package."""

from worktrack.models.entities import (
    AuthSession,
    FinanceType,
    Project,
    ProjectFinance,
    ProjectMember,
    Task,
    User,
    UserFinance,
    UserLevel,
    UserRole,
)

__all__ = [
    "AuthSession",
    "FinanceType",
    "Project",
    "ProjectFinance",
    "ProjectMember",
    "Task",
    "User",
    "UserFinance",
    "UserLevel",
    "UserRole",
]
