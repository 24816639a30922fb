"""Project and weekly task endpoints for the caller's own work."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from worktrack.core.auth import RequestUserContext, get_current_user_context
from worktrack.db.dependencies import get_db_session
from worktrack.services.project_service import ProjectCreateData, ProjectService, TaskCreateData

router = APIRouter(prefix="/projects", tags=["projects"])


class ProjectCreatePayload(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=2000)
    tags: list[str] = Field(default_factory=list)


class ProjectUpdatePayload(BaseModel):
    completed: bool


class TaskCreatePayload(BaseModel):
    title: str = Field(min_length=1, max_length=500)
    day_of_week: int = Field(ge=0, le=6)


class TaskUpdatePayload(BaseModel):
    completed: bool | None = None


def _project_service(db: Session) -> ProjectService:
    return ProjectService(db)


@router.get("")
def list_projects(
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    service = _project_service(db)
    return {"items": service.list_projects(context=context)}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_project(
    payload: ProjectCreatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _project_service(db)
    project = service.create_project(
        context=context,
        data=ProjectCreateData(
            name=payload.name,
            description=payload.description,
            tags=payload.tags,
        ),
    )
    return service.serialize_project(project)


@router.get("/{project_id}")
def get_project(
    project_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return _project_service(db).get_project(context=context, project_id=project_id)


@router.patch("/{project_id}")
def update_project(
    project_id: UUID,
    payload: ProjectUpdatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _project_service(db)
    project = service.set_project_completed(
        context=context,
        project_id=project_id,
        completed=payload.completed,
    )
    return service.serialize_project(project)


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_project(
    project_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> Response:
    _project_service(db).delete_project(context=context, project_id=project_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{project_id}/tasks")
def list_project_tasks(
    project_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    service = _project_service(db)
    rows = service.list_tasks(context=context, project_id=project_id)
    return {"items": [service.serialize_task(task) for task in rows]}


@router.post("/{project_id}/tasks", status_code=status.HTTP_201_CREATED)
def create_project_task(
    project_id: UUID,
    payload: TaskCreatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _project_service(db)
    task = service.create_task(
        context=context,
        project_id=project_id,
        data=TaskCreateData(title=payload.title, day_of_week=payload.day_of_week),
    )
    return service.serialize_task(task)


@router.patch("/{project_id}/tasks/{task_id}")
def update_project_task(
    project_id: UUID,
    task_id: UUID,
    payload: TaskUpdatePayload | None = None,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _project_service(db)
    task = service.update_task(
        context=context,
        project_id=project_id,
        task_id=task_id,
        completed=payload.completed if payload is not None else None,
    )
    return service.serialize_task(task)


@router.delete("/{project_id}/tasks/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_project_task(
    project_id: UUID,
    task_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> Response:
    _project_service(db).delete_task(context=context, project_id=project_id, task_id=task_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
