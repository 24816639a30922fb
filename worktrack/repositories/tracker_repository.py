"""Repository helpers for users, projects, tasks and compensation ledgers."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from uuid import UUID

from sqlalchemy import and_, delete, or_, select, update
from sqlalchemy.orm import Session

from worktrack.models.entities import (
    AuthSession,
    FinanceType,
    Project,
    ProjectFinance,
    ProjectMember,
    Task,
    User,
    UserFinance,
)


class TrackerRepository:
    """Persistence operations used by the tracker services."""

    def __init__(self, db: Session) -> None:
        self.db = db

    # ---------- Users ----------
    def get_user(self, user_id: UUID) -> User | None:
        return self.db.scalar(select(User).where(User.id == user_id))

    def get_user_by_email(self, email: str) -> User | None:
        return self.db.scalar(select(User).where(User.email == email))

    def list_users(self) -> list[User]:
        return self.db.scalars(select(User).order_by(User.created_at.asc(), User.email.asc())).all()

    def list_users_by_ids(self, user_ids: Iterable[UUID]) -> list[User]:
        ids = list(user_ids)
        if not ids:
            return []
        return self.db.scalars(select(User).where(User.id.in_(ids))).all()

    def add_user(self, user: User) -> User:
        self.db.add(user)
        self.db.flush()
        return user

    def delete_user(self, user: User) -> None:
        owned_project_ids = self.db.scalars(select(Project.id).where(Project.user_id == user.id)).all()
        self.delete_projects(owned_project_ids)
        self.db.execute(delete(AuthSession).where(AuthSession.user_id == user.id))
        self.db.execute(delete(ProjectMember).where(ProjectMember.user_id == user.id))
        self.db.execute(delete(UserFinance).where(UserFinance.user_id == user.id))
        self.db.delete(user)
        self.db.flush()

    # ---------- Sessions ----------
    def add_session(self, session: AuthSession) -> AuthSession:
        self.db.add(session)
        self.db.flush()
        return session

    def get_session_by_token_hash(self, token_hash: str) -> AuthSession | None:
        return self.db.scalar(select(AuthSession).where(AuthSession.token_hash == token_hash))

    def delete_session(self, session: AuthSession) -> None:
        self.db.delete(session)
        self.db.flush()

    def delete_expired_sessions(self, now: datetime) -> int:
        result = self.db.execute(
            delete(AuthSession).where(AuthSession.expires_at <= now),
            execution_options={"synchronize_session": False},
        )
        return result.rowcount or 0

    # ---------- Projects ----------
    def get_project(self, project_id: UUID) -> Project | None:
        return self.db.scalar(select(Project).where(Project.id == project_id))

    def list_projects(self) -> list[Project]:
        return self.db.scalars(select(Project).order_by(Project.created_at.desc())).all()

    def list_projects_by_ids(self, project_ids: Iterable[UUID]) -> list[Project]:
        ids = list(project_ids)
        if not ids:
            return []
        return self.db.scalars(select(Project).where(Project.id.in_(ids))).all()

    def list_visible_projects(self, user_id: UUID) -> list[Project]:
        member_project_ids = select(ProjectMember.project_id).where(ProjectMember.user_id == user_id)
        return self.db.scalars(
            select(Project)
            .where(or_(Project.user_id == user_id, Project.id.in_(member_project_ids)))
            .order_by(Project.created_at.desc())
        ).all()

    def add_project(self, project: Project) -> Project:
        self.db.add(project)
        self.db.flush()
        return project

    def delete_projects(self, project_ids: Iterable[UUID]) -> None:
        ids = list(project_ids)
        if not ids:
            return
        self.db.execute(delete(Task).where(Task.project_id.in_(ids)))
        self.db.execute(delete(ProjectMember).where(ProjectMember.project_id.in_(ids)))
        self.db.execute(delete(ProjectFinance).where(ProjectFinance.project_id.in_(ids)))
        self.db.execute(
            update(UserFinance).where(UserFinance.project_id.in_(ids)).values(project_id=None)
        )
        self.db.execute(delete(Project).where(Project.id.in_(ids)))
        self.db.expire_all()

    # ---------- Members ----------
    def get_member(self, project_id: UUID, user_id: UUID) -> ProjectMember | None:
        return self.db.scalar(
            select(ProjectMember).where(
                and_(ProjectMember.project_id == project_id, ProjectMember.user_id == user_id)
            )
        )

    def list_members(self, project_ids: Iterable[UUID] | None = None) -> list[ProjectMember]:
        query = select(ProjectMember).order_by(ProjectMember.created_at.asc())
        if project_ids is not None:
            ids = list(project_ids)
            if not ids:
                return []
            query = query.where(ProjectMember.project_id.in_(ids))
        return self.db.scalars(query).all()

    def add_member(self, member: ProjectMember) -> ProjectMember:
        self.db.add(member)
        self.db.flush()
        return member

    def delete_member(self, member: ProjectMember) -> None:
        self.db.delete(member)
        self.db.flush()

    # ---------- Tasks ----------
    def get_task(self, project_id: UUID, task_id: UUID) -> Task | None:
        return self.db.scalar(select(Task).where(and_(Task.id == task_id, Task.project_id == project_id)))

    def list_tasks(self, project_ids: Iterable[UUID] | None = None) -> list[Task]:
        query = select(Task).order_by(Task.day_of_week.asc(), Task.created_at.asc())
        if project_ids is not None:
            ids = list(project_ids)
            if not ids:
                return []
            query = query.where(Task.project_id.in_(ids))
        return self.db.scalars(query).all()

    def add_task(self, task: Task) -> Task:
        self.db.add(task)
        self.db.flush()
        return task

    def delete_task(self, task: Task) -> None:
        self.db.delete(task)
        self.db.flush()

    # ---------- User finances ----------
    def get_user_finance(self, finance_id: UUID) -> UserFinance | None:
        return self.db.scalar(select(UserFinance).where(UserFinance.id == finance_id))

    def list_user_finances(
        self,
        *,
        user_id: UUID | None = None,
        month: int | None = None,
        year: int | None = None,
    ) -> list[UserFinance]:
        conditions = []
        if user_id is not None:
            conditions.append(UserFinance.user_id == user_id)
        if month is not None:
            conditions.append(UserFinance.month == month)
        if year is not None:
            conditions.append(UserFinance.year == year)

        query = select(UserFinance).order_by(
            UserFinance.year.desc(),
            UserFinance.month.desc(),
            UserFinance.created_at.desc(),
        )
        if conditions:
            query = query.where(and_(*conditions))
        return self.db.scalars(query).all()

    def find_salary(
        self,
        *,
        user_id: UUID,
        month: int,
        year: int,
        exclude_id: UUID | None = None,
    ) -> UserFinance | None:
        conditions = [
            UserFinance.user_id == user_id,
            UserFinance.type == FinanceType.SALARY,
            UserFinance.month == month,
            UserFinance.year == year,
        ]
        if exclude_id is not None:
            conditions.append(UserFinance.id != exclude_id)
        return self.db.scalar(select(UserFinance).where(and_(*conditions)))

    def add_user_finance(self, row: UserFinance) -> UserFinance:
        self.db.add(row)
        self.db.flush()
        return row

    def delete_user_finance(self, row: UserFinance) -> None:
        self.db.delete(row)
        self.db.flush()

    # ---------- Project finances ----------
    def get_project_finance(self, project_id: UUID) -> ProjectFinance | None:
        return self.db.scalar(select(ProjectFinance).where(ProjectFinance.project_id == project_id))

    def list_project_finances(self) -> list[ProjectFinance]:
        return self.db.scalars(select(ProjectFinance)).all()

    def add_project_finance(self, row: ProjectFinance) -> ProjectFinance:
        self.db.add(row)
        self.db.flush()
        return row
