"""Administration endpoints for users, project ownership and the system dashboard."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from worktrack.core.auth import Capability, RequestUserContext, require_capability
from worktrack.core.clock import as_utc_naive, utcnow
from worktrack.db.dependencies import get_db_session
from worktrack.models.entities import UserLevel, UserRole
from worktrack.services.project_service import AdminProjectCreateData, ProjectFinanceData, ProjectService
from worktrack.services.summary_service import SummaryService
from worktrack.services.user_service import UserCreateData, UserService, UserUpdateData

router = APIRouter(prefix="/admin", tags=["admin"])

require_user_admin = require_capability(Capability.MANAGE_USERS)
require_project_admin = require_capability(Capability.MANAGE_PROJECTS)
require_finance_admin = require_capability(Capability.MANAGE_FINANCES)
require_dashboard = require_capability(Capability.VIEW_ADMIN_SUMMARY)


class UserCreatePayload(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    name: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=8, max_length=1024)
    level: UserLevel = UserLevel.JUNIOR
    role: UserRole = UserRole.USER


class UserUpdatePayload(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    email: str | None = Field(default=None, min_length=3, max_length=320)
    level: UserLevel | None = None


class RoleUpdatePayload(BaseModel):
    role: UserRole


class AdminProjectCreatePayload(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    user_id: UUID
    description: str | None = Field(default=None, max_length=2000)
    tags: list[str] = Field(default_factory=list)
    end_date: datetime | None = None


class ProjectAssignPayload(BaseModel):
    user_id: UUID


class ProjectMemberPayload(BaseModel):
    user_id: UUID


class ProjectFinancePayload(BaseModel):
    revenue: Decimal = Field(ge=0, max_digits=14, decimal_places=2)
    expense: Decimal = Field(ge=0, max_digits=14, decimal_places=2)


# ---------- Users ----------
@router.get("/users")
def list_users(
    context: RequestUserContext = Depends(require_user_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    return {"items": UserService(db).list_users(context=context)}


@router.post("/users", status_code=status.HTTP_201_CREATED)
def create_user(
    payload: UserCreatePayload,
    context: RequestUserContext = Depends(require_user_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = UserService(db)
    user = service.create_user(
        context=context,
        data=UserCreateData(
            email=payload.email,
            display_name=payload.name,
            password=payload.password,
            level=payload.level,
            role=payload.role,
        ),
    )
    return service.serialize_user(user)


@router.patch("/users/{user_id}")
def update_user(
    user_id: UUID,
    payload: UserUpdatePayload,
    context: RequestUserContext = Depends(require_user_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = UserService(db)
    user = service.update_user(
        context=context,
        user_id=user_id,
        data=UserUpdateData(display_name=payload.name, email=payload.email, level=payload.level),
    )
    return service.serialize_user(user)


@router.patch("/users/{user_id}/role")
def update_user_role(
    user_id: UUID,
    payload: RoleUpdatePayload,
    context: RequestUserContext = Depends(require_user_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = UserService(db)
    user = service.set_role(context=context, user_id=user_id, role=payload.role)
    return service.serialize_user(user)


@router.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user(
    user_id: UUID,
    context: RequestUserContext = Depends(require_user_admin),
    db: Session = Depends(get_db_session),
) -> Response:
    UserService(db).delete_user(context=context, user_id=user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------- Projects ----------
@router.get("/projects")
def list_all_projects(
    context: RequestUserContext = Depends(require_project_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    return {"items": ProjectService(db).admin_list_projects(context=context)}


@router.post("/projects", status_code=status.HTTP_201_CREATED)
def create_project_for_user(
    payload: AdminProjectCreatePayload,
    context: RequestUserContext = Depends(require_project_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = ProjectService(db)
    project = service.admin_create_project(
        context=context,
        data=AdminProjectCreateData(
            name=payload.name,
            user_id=payload.user_id,
            description=payload.description,
            tags=payload.tags,
            end_date=as_utc_naive(payload.end_date) if payload.end_date else None,
        ),
    )
    return service.serialize_project(project)


@router.delete("/projects/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_any_project(
    project_id: UUID,
    context: RequestUserContext = Depends(require_project_admin),
    db: Session = Depends(get_db_session),
) -> Response:
    ProjectService(db).admin_delete_project(context=context, project_id=project_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.patch("/projects/{project_id}/assign")
def assign_project_owner(
    project_id: UUID,
    payload: ProjectAssignPayload,
    context: RequestUserContext = Depends(require_project_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = ProjectService(db)
    project = service.assign_owner(context=context, project_id=project_id, user_id=payload.user_id)
    return service.serialize_project(project)


@router.post("/projects/{project_id}/members", status_code=status.HTTP_201_CREATED)
def add_project_member(
    project_id: UUID,
    payload: ProjectMemberPayload,
    context: RequestUserContext = Depends(require_project_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return ProjectService(db).add_member(context=context, project_id=project_id, user_id=payload.user_id)


@router.delete("/projects/{project_id}/members/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_project_member(
    project_id: UUID,
    user_id: UUID,
    context: RequestUserContext = Depends(require_project_admin),
    db: Session = Depends(get_db_session),
) -> Response:
    ProjectService(db).remove_member(context=context, project_id=project_id, user_id=user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/projects/{project_id}/finance")
def get_project_finance(
    project_id: UUID,
    context: RequestUserContext = Depends(require_finance_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return ProjectService(db).get_project_finance(context=context, project_id=project_id)


@router.put("/projects/{project_id}/finance")
def upsert_project_finance(
    project_id: UUID,
    payload: ProjectFinancePayload,
    context: RequestUserContext = Depends(require_finance_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return ProjectService(db).upsert_project_finance(
        context=context,
        project_id=project_id,
        data=ProjectFinanceData(revenue=payload.revenue, expense=payload.expense),
    )


# ---------- Dashboard ----------
@router.get("/summary")
def admin_summary(
    context: RequestUserContext = Depends(require_dashboard),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return SummaryService(db).admin_summary(context=context, now=utcnow())
