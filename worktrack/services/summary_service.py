"""Personal and administrative dashboards built on the aggregation engine."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from worktrack.core.auth import Capability, RequestUserContext, ensure_capability
from worktrack.core.clock import as_utc_naive
from worktrack.models.entities import Project, Task, User
from worktrack.repositories.tracker_repository import TrackerRepository
from worktrack.services import analytics
from worktrack.services.analytics import (
    ActivityItem,
    CompletionBucket,
    DayWorkload,
    FocusTask,
    MonthlyEarnings,
)

RECENT_PROJECTS_LIMIT = 5


def _serialize_bucket(bucket: CompletionBucket) -> dict[str, object]:
    return {
        "week": bucket.label,
        "total": bucket.total,
        "completed": bucket.completed,
        "rate": bucket.rate,
    }


def _serialize_day(row: DayWorkload) -> dict[str, object]:
    return {"day_of_week": row.day, "total": row.total, "completed": row.completed}


def _serialize_month(row: MonthlyEarnings) -> dict[str, object]:
    return {
        "month": row.month,
        "salary": str(row.salary),
        "bonuses": str(row.bonuses),
        "total": str(row.total),
    }


def _serialize_focus(item: FocusTask) -> dict[str, object]:
    return {
        "task_id": str(item.task_id),
        "title": item.title,
        "day_of_week": item.day_of_week,
        "project_id": str(item.project_id),
        "project_name": item.project_name,
    }


def _serialize_activity(item: ActivityItem) -> dict[str, object]:
    subject = item.subject
    if isinstance(subject, User):
        label = subject.display_name
    elif isinstance(subject, Project):
        label = subject.name
    else:
        label = subject.title
    return {
        "kind": item.kind,
        "id": str(subject.id),
        "label": label,
        "timestamp": item.timestamp.isoformat(),
    }


class SummaryService:
    """Loads one snapshot per request and hands it to the aggregation engine."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = TrackerRepository(db)

    def personal_summary(
        self,
        *,
        context: RequestUserContext,
        year: int,
        now: datetime,
    ) -> dict[str, object]:
        ensure_capability(context, Capability.MANAGE_OWN_WORK)
        user = self.repo.get_user(context.user_id)
        if user is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found.")

        reference = as_utc_naive(now)
        projects = self.repo.list_visible_projects(context.user_id)
        tasks = self.repo.list_tasks([project.id for project in projects])
        entries = self.repo.list_user_finances(user_id=context.user_id)
        referenced = self.repo.list_projects_by_ids({e.project_id for e in entries if e.project_id is not None})

        project_names = {project.id: project.name for project in projects}
        finance_project_names = {project.id: project.name for project in referenced}

        tasks_by_project: dict[UUID, list[Task]] = {}
        for task in tasks:
            tasks_by_project.setdefault(task.project_id, []).append(task)

        completed_projects = sum(1 for project in projects if project.completed)
        completed_tasks = sum(1 for task in tasks if task.completed)
        owned_projects = sum(1 for project in projects if project.user_id == context.user_id)

        breakdown = analytics.monthly_breakdown(entries, year=year)
        best = analytics.best_month(breakdown)
        totals = analytics.earnings_totals(entries, year=year, today=reference.date())
        focus = analytics.week_focus_tasks(tasks, project_names, now=reference)

        return {
            "year": year,
            "projects": {
                "total": len(projects),
                "completed": completed_projects,
                "active": len(projects) - completed_projects,
                "completion_rate": analytics.percent(completed_projects, len(projects)),
                "owned": owned_projects,
                "member": len(projects) - owned_projects,
            },
            "tasks": {
                "total": len(tasks),
                "completed": completed_tasks,
                "pending": len(tasks) - completed_tasks,
                "completion_rate": analytics.percent(completed_tasks, len(tasks)),
                "by_day": [_serialize_day(row) for row in analytics.tasks_by_day(tasks)],
                "weekly": [
                    _serialize_bucket(bucket)
                    for bucket in analytics.weekly_completion_series(tasks, now=reference)
                ],
            },
            "finances": {
                "total": str(totals.total),
                "this_month": str(totals.this_month),
                "this_year": str(totals.this_year),
                "average_monthly": str(totals.average_monthly),
                "total_bonuses": str(totals.total_bonuses),
                "monthly": [_serialize_month(row) for row in breakdown],
                "best_month": _serialize_month(best) if best is not None else None,
                "by_project": [
                    {
                        "project_id": str(row.project_id),
                        "project_name": row.project_name,
                        "total_bonuses": str(row.total_bonuses),
                        "count": row.count,
                    }
                    for row in analytics.earnings_by_project(entries, finance_project_names)
                ],
            },
            "user": {
                "id": str(user.id),
                "email": user.email,
                "display_name": user.display_name,
                "role": user.role.value,
                "level": user.level.value,
                "streak": analytics.completion_streak(tasks, today=reference.date()),
                "member_since": user.created_at.isoformat(),
            },
            "recent_projects": [
                {
                    "id": str(project.id),
                    "name": project.name,
                    "completed": project.completed,
                    "is_owner": project.user_id == context.user_id,
                    "task_count": len(tasks_by_project.get(project.id, [])),
                    "completed_tasks": sum(1 for task in tasks_by_project.get(project.id, []) if task.completed),
                    "completion_rate": analytics.completion_rate(tasks_by_project.get(project.id, [])),
                    "created_at": project.created_at.isoformat(),
                }
                for project in projects[:RECENT_PROJECTS_LIMIT]
            ],
            "week_focus": {
                "tasks": [_serialize_focus(item) for item in focus],
                "by_project": [_serialize_focus(item) for item in analytics.one_per_project(focus)],
            },
        }

    def admin_summary(self, *, context: RequestUserContext, now: datetime) -> dict[str, object]:
        ensure_capability(context, Capability.VIEW_ADMIN_SUMMARY)
        reference = as_utc_naive(now)

        users = self.repo.list_users()
        projects = self.repo.list_projects()
        memberships = self.repo.list_members()
        tasks = self.repo.list_tasks()
        finance = analytics.project_finance_totals(self.repo.list_project_finances())

        emails = {user.id: user.email for user in users}
        completed_projects = sum(1 for project in projects if project.completed)
        completed_tasks = [task for task in tasks if task.completed]

        return {
            "stats": {
                "total_users": len(users),
                "total_projects": len(projects),
                "active_projects": len(projects) - completed_projects,
                "completed_projects": completed_projects,
                "total_tasks": len(tasks),
                "completed_tasks": len(completed_tasks),
                "completion_rate": analytics.percent(len(completed_tasks), len(tasks)),
                "revenue": str(finance.revenue),
                "expense": str(finance.expense),
                "profit": str(finance.profit),
            },
            "weekly": [
                _serialize_bucket(bucket)
                for bucket in analytics.weekly_completion_series(tasks, now=reference)
            ],
            "most_active_users": [
                {
                    "user_id": str(row.user_id),
                    "display_name": row.display_name,
                    "email": row.email,
                    "completed_tasks": row.completed_tasks,
                    "total_projects": row.total_projects,
                }
                for row in analytics.most_active_users(users, projects, memberships, tasks)
            ],
            "recent_activity": [
                _serialize_activity(item)
                for item in analytics.recent_activity(users, projects, completed_tasks)
            ],
            "top_projects": [
                {
                    "id": str(row.project.id),
                    "name": row.project.name,
                    "owner_email": emails.get(row.project.user_id),
                    "completed": row.project.completed,
                    "task_count": row.task_count,
                }
                for row in analytics.top_projects_by_task_count(projects, tasks)
            ],
            "overdue_projects": [
                {
                    "id": str(project.id),
                    "name": project.name,
                    "owner_email": emails.get(project.user_id),
                    "end_date": project.end_date.isoformat() if project.end_date else None,
                }
                for project in analytics.overdue_projects(projects, now=reference)
            ],
        }
