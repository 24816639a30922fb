"""Application service for projects, weekly tasks, membership and project finance."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from worktrack.core.auth import Capability, RequestUserContext, can_manage_owned, ensure_capability, has_capability
from worktrack.core.clock import utcnow
from worktrack.models.entities import Project, ProjectFinance, ProjectMember, Task, User
from worktrack.repositories.tracker_repository import TrackerRepository
from worktrack.services.analytics import ZERO, completion_rate, compute_profit, q2

logger = logging.getLogger("worktrack.projects")

DAYS_PER_WEEK = 7


@dataclass(slots=True)
class ProjectCreateData:
    name: str
    description: str | None = None
    tags: list[str] = field(default_factory=list)


@dataclass(slots=True)
class AdminProjectCreateData:
    name: str
    user_id: UUID
    description: str | None = None
    tags: list[str] = field(default_factory=list)
    end_date: datetime | None = None


@dataclass(slots=True)
class TaskCreateData:
    title: str
    day_of_week: int


@dataclass(slots=True)
class ProjectFinanceData:
    revenue: Decimal
    expense: Decimal


def normalize_tags(tags: list[str] | None) -> list[str]:
    if not tags:
        return []
    return [tag.strip() for tag in tags if tag and tag.strip()]


def _required_text(value: str, field_name: str) -> str:
    cleaned = value.strip() if value else ""
    if not cleaned:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"{field_name} must not be empty.",
        )
    return cleaned


class ProjectService:
    """Service implementing project visibility, task scheduling and admin project rules."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = TrackerRepository(db)

    # ---------- Access ----------
    def _get_project_or_404(self, project_id: UUID) -> Project:
        project = self.repo.get_project(project_id)
        if project is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found.")
        return project

    def _is_participant(self, context: RequestUserContext, project: Project) -> bool:
        if project.user_id == context.user_id:
            return True
        return self.repo.get_member(project.id, context.user_id) is not None

    def _get_visible_project(self, context: RequestUserContext, project_id: UUID) -> Project:
        """Projects outside the caller's reach are reported as missing."""

        project = self._get_project_or_404(project_id)
        if has_capability(context, Capability.MANAGE_PROJECTS) or self._is_participant(context, project):
            return project
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found.")

    def _get_owned_project(self, context: RequestUserContext, project_id: UUID) -> Project:
        project = self._get_visible_project(context, project_id)
        if not can_manage_owned(context, owner_id=project.user_id, override=Capability.MANAGE_PROJECTS):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only the project owner can perform this operation.",
            )
        return project

    def _get_user_or_404(self, user_id: UUID) -> User:
        user = self.repo.get_user(user_id)
        if user is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found.")
        return user

    # ---------- Serialization ----------
    @staticmethod
    def serialize_project(project: Project) -> dict[str, object]:
        return {
            "id": str(project.id),
            "user_id": str(project.user_id),
            "name": project.name,
            "description": project.description,
            "tags": list(project.tags or []),
            "completed": project.completed,
            "start_date": project.start_date.isoformat(),
            "end_date": project.end_date.isoformat() if project.end_date else None,
            "created_at": project.created_at.isoformat(),
            "updated_at": project.updated_at.isoformat(),
        }

    @staticmethod
    def serialize_task(task: Task) -> dict[str, object]:
        return {
            "id": str(task.id),
            "project_id": str(task.project_id),
            "title": task.title,
            "day_of_week": task.day_of_week,
            "completed": task.completed,
            "created_at": task.created_at.isoformat(),
            "updated_at": task.updated_at.isoformat() if task.updated_at else None,
        }

    @staticmethod
    def serialize_member(member: ProjectMember, user: User | None) -> dict[str, object]:
        return {
            "user_id": str(member.user_id),
            "email": user.email if user else None,
            "display_name": user.display_name if user else None,
        }

    @staticmethod
    def serialize_project_finance(project_id: UUID, record: ProjectFinance | None) -> dict[str, object]:
        revenue = record.revenue if record else ZERO
        expense = record.expense if record else ZERO
        return {
            "project_id": str(project_id),
            "revenue": str(q2(revenue)),
            "expense": str(q2(expense)),
            "profit": str(compute_profit(revenue, expense)),
        }

    def _detailed_projects(self, projects: list[Project]) -> list[dict[str, object]]:
        """Attach tasks, members and completion rate, loading each collection once."""

        project_ids = [project.id for project in projects]
        tasks = self.repo.list_tasks(project_ids)
        members = self.repo.list_members(project_ids)
        users_by_id = {user.id: user for user in self.repo.list_users_by_ids({m.user_id for m in members})}

        tasks_by_project: dict[UUID, list[Task]] = {}
        for task in tasks:
            tasks_by_project.setdefault(task.project_id, []).append(task)
        members_by_project: dict[UUID, list[ProjectMember]] = {}
        for member in members:
            members_by_project.setdefault(member.project_id, []).append(member)

        payload: list[dict[str, object]] = []
        for project in projects:
            project_tasks = tasks_by_project.get(project.id, [])
            item = self.serialize_project(project)
            item["tasks"] = [self.serialize_task(task) for task in project_tasks]
            item["members"] = [
                self.serialize_member(member, users_by_id.get(member.user_id))
                for member in members_by_project.get(project.id, [])
            ]
            item["completion_rate"] = completion_rate(project_tasks)
            payload.append(item)
        return payload

    def _commit(self, conflict_detail: str) -> None:
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=conflict_detail) from exc

    # ---------- Self-service projects ----------
    def list_projects(self, *, context: RequestUserContext) -> list[dict[str, object]]:
        ensure_capability(context, Capability.MANAGE_OWN_WORK)
        return self._detailed_projects(self.repo.list_visible_projects(context.user_id))

    def get_project(self, *, context: RequestUserContext, project_id: UUID) -> dict[str, object]:
        project = self._get_visible_project(context, project_id)
        return self._detailed_projects([project])[0]

    def create_project(self, *, context: RequestUserContext, data: ProjectCreateData) -> Project:
        ensure_capability(context, Capability.MANAGE_OWN_WORK)
        return self._insert_project(
            owner_id=context.user_id,
            name=data.name,
            description=data.description,
            tags=data.tags,
            end_date=None,
        )

    def _insert_project(
        self,
        *,
        owner_id: UUID,
        name: str,
        description: str | None,
        tags: list[str] | None,
        end_date: datetime | None,
    ) -> Project:
        now = utcnow()
        project = Project(
            user_id=owner_id,
            name=_required_text(name, "name"),
            description=description.strip() if description and description.strip() else None,
            tags=normalize_tags(tags),
            completed=False,
            start_date=now,
            end_date=end_date,
            created_at=now,
            updated_at=now,
        )
        self.repo.add_project(project)
        self._commit("Project could not be created.")
        self.db.refresh(project)
        return project

    def set_project_completed(
        self,
        *,
        context: RequestUserContext,
        project_id: UUID,
        completed: bool,
    ) -> Project:
        project = self._get_owned_project(context, project_id)
        now = utcnow()
        if completed and not project.completed:
            project.end_date = now
        elif not completed and project.completed:
            project.end_date = None
        project.completed = completed
        project.updated_at = now
        self.db.commit()
        self.db.refresh(project)
        return project

    def delete_project(self, *, context: RequestUserContext, project_id: UUID) -> None:
        project = self._get_owned_project(context, project_id)
        self.repo.delete_projects([project.id])
        self.db.commit()
        logger.info("Project %s deleted by %s", project_id, context.email)

    # ---------- Tasks ----------
    def list_tasks(self, *, context: RequestUserContext, project_id: UUID) -> list[Task]:
        project = self._get_visible_project(context, project_id)
        return self.repo.list_tasks([project.id])

    def create_task(self, *, context: RequestUserContext, project_id: UUID, data: TaskCreateData) -> Task:
        project = self._get_visible_project(context, project_id)
        if not 0 <= data.day_of_week < DAYS_PER_WEEK:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="day_of_week must be between 0 (Monday) and 6 (Sunday).",
            )

        now = utcnow()
        task = Task(
            project_id=project.id,
            title=_required_text(data.title, "title"),
            day_of_week=data.day_of_week,
            completed=False,
            created_at=now,
            updated_at=now,
        )
        self.repo.add_task(task)
        self.db.commit()
        self.db.refresh(task)
        return task

    def _get_task(self, context: RequestUserContext, project_id: UUID, task_id: UUID) -> Task:
        project = self._get_visible_project(context, project_id)
        task = self.repo.get_task(project.id, task_id)
        if task is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found.")
        return task

    def update_task(
        self,
        *,
        context: RequestUserContext,
        project_id: UUID,
        task_id: UUID,
        completed: bool | None,
    ) -> Task:
        """Set the completion flag, or toggle it when no value is given."""

        task = self._get_task(context, project_id, task_id)
        task.completed = (not task.completed) if completed is None else completed
        task.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(task)
        return task

    def delete_task(self, *, context: RequestUserContext, project_id: UUID, task_id: UUID) -> None:
        task = self._get_task(context, project_id, task_id)
        self.repo.delete_task(task)
        self.db.commit()

    # ---------- Administration ----------
    def admin_list_projects(self, *, context: RequestUserContext) -> list[dict[str, object]]:
        ensure_capability(context, Capability.MANAGE_PROJECTS)
        projects = self.repo.list_projects()
        owners = {user.id: user for user in self.repo.list_users_by_ids({p.user_id for p in projects})}
        finances = {record.project_id: record for record in self.repo.list_project_finances()}

        items = self._detailed_projects(projects)
        for project, item in zip(projects, items):
            owner = owners.get(project.user_id)
            item["owner"] = {
                "id": str(project.user_id),
                "email": owner.email if owner else None,
                "display_name": owner.display_name if owner else None,
            }
            item["finance"] = self.serialize_project_finance(project.id, finances.get(project.id))
        return items

    def admin_create_project(self, *, context: RequestUserContext, data: AdminProjectCreateData) -> Project:
        ensure_capability(context, Capability.MANAGE_PROJECTS)
        self._get_user_or_404(data.user_id)
        project = self._insert_project(
            owner_id=data.user_id,
            name=data.name,
            description=data.description,
            tags=data.tags,
            end_date=data.end_date,
        )
        logger.info("Project %s created for user %s by %s", project.id, data.user_id, context.email)
        return project

    def admin_delete_project(self, *, context: RequestUserContext, project_id: UUID) -> None:
        ensure_capability(context, Capability.MANAGE_PROJECTS)
        self.delete_project(context=context, project_id=project_id)

    def assign_owner(self, *, context: RequestUserContext, project_id: UUID, user_id: UUID) -> Project:
        ensure_capability(context, Capability.MANAGE_PROJECTS)
        project = self._get_project_or_404(project_id)
        self._get_user_or_404(user_id)

        # An owner is never also listed as a member.
        existing = self.repo.get_member(project.id, user_id)
        if existing is not None:
            self.repo.delete_member(existing)
        project.user_id = user_id
        project.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(project)
        logger.info("Project %s reassigned to user %s by %s", project_id, user_id, context.email)
        return project

    def add_member(self, *, context: RequestUserContext, project_id: UUID, user_id: UUID) -> dict[str, object]:
        ensure_capability(context, Capability.MANAGE_PROJECTS)
        project = self._get_project_or_404(project_id)
        user = self._get_user_or_404(user_id)
        if project.user_id == user_id:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="User already owns this project.",
            )
        if self.repo.get_member(project.id, user_id) is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="User is already a member of this project.",
            )

        member = ProjectMember(project_id=project.id, user_id=user_id, created_at=utcnow())
        self.repo.add_member(member)
        self._commit("User is already a member of this project.")
        logger.info("User %s added to project %s by %s", user_id, project_id, context.email)
        return self.serialize_member(member, user)

    def remove_member(self, *, context: RequestUserContext, project_id: UUID, user_id: UUID) -> None:
        ensure_capability(context, Capability.MANAGE_PROJECTS)
        project = self._get_project_or_404(project_id)
        member = self.repo.get_member(project.id, user_id)
        if member is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project member not found.")
        self.repo.delete_member(member)
        self.db.commit()
        logger.info("User %s removed from project %s by %s", user_id, project_id, context.email)

    def get_project_finance(self, *, context: RequestUserContext, project_id: UUID) -> dict[str, object]:
        ensure_capability(context, Capability.MANAGE_FINANCES)
        project = self._get_project_or_404(project_id)
        return self.serialize_project_finance(project.id, self.repo.get_project_finance(project.id))

    def upsert_project_finance(
        self,
        *,
        context: RequestUserContext,
        project_id: UUID,
        data: ProjectFinanceData,
    ) -> dict[str, object]:
        ensure_capability(context, Capability.MANAGE_FINANCES)
        project = self._get_project_or_404(project_id)
        for value, field_name in ((data.revenue, "revenue"), (data.expense, "expense")):
            if value < 0:
                raise HTTPException(
                    status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                    detail=f"{field_name} must be non-negative.",
                )

        now = utcnow()
        record = self.repo.get_project_finance(project.id)
        if record is None:
            record = ProjectFinance(project_id=project.id, created_at=now)
            self.repo.add_project_finance(record)
        record.revenue = q2(data.revenue)
        record.expense = q2(data.expense)
        record.updated_at = now
        self._commit("Project finance record already exists.")
        self.db.refresh(record)
        logger.info("Project finance for %s updated by %s", project_id, context.email)
        return self.serialize_project_finance(project.id, record)
