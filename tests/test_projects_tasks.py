from __future__ import annotations

import uuid
from collections.abc import Callable
from decimal import Decimal

from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.orm import Session

from worktrack.models.entities import FinanceType, ProjectMember, Task, User, UserFinance


def _create_project(client: TestClient, headers: dict[str, str], **overrides: object) -> dict[str, object]:
    payload = {"name": "Website", "description": "Landing page", "tags": ["web", " ", "design "]}
    payload.update(overrides)
    response = client.post("/api/v1/projects", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


def _create_task(
    client: TestClient,
    headers: dict[str, str],
    project_id: str,
    *,
    title: str = "Draft copy",
    day_of_week: int = 0,
) -> dict[str, object]:
    response = client.post(
        f"/api/v1/projects/{project_id}/tasks",
        json={"title": title, "day_of_week": day_of_week},
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


def test_create_and_list_projects_with_tasks(client: TestClient, user_headers: dict[str, str]) -> None:
    project = _create_project(client, user_headers)
    assert project["tags"] == ["web", "design"]
    assert project["completed"] is False
    assert project["end_date"] is None

    _create_task(client, user_headers, project["id"], title="Friday task", day_of_week=4)
    _create_task(client, user_headers, project["id"], title="Monday task", day_of_week=0)
    done = _create_task(client, user_headers, project["id"], title="Tuesday task", day_of_week=1)
    client.patch(f"/api/v1/projects/{project['id']}/tasks/{done['id']}", json={"completed": True}, headers=user_headers)

    listed = client.get("/api/v1/projects", headers=user_headers)
    assert listed.status_code == 200
    items = listed.json()["items"]
    assert len(items) == 1
    assert [task["title"] for task in items[0]["tasks"]] == ["Monday task", "Tuesday task", "Friday task"]
    assert items[0]["completion_rate"] == 33


def test_project_name_must_not_be_blank(client: TestClient, user_headers: dict[str, str]) -> None:
    response = client.post("/api/v1/projects", json={"name": "   "}, headers=user_headers)

    assert response.status_code == 422


def test_projects_of_other_users_are_hidden(
    client: TestClient,
    make_user: Callable[..., User],
    headers_for: Callable[[User], dict[str, str]],
    user_headers: dict[str, str],
) -> None:
    project = _create_project(client, user_headers)
    stranger_headers = headers_for(make_user(email="bob@test.local"))

    assert client.get("/api/v1/projects", headers=stranger_headers).json()["items"] == []
    assert client.get(f"/api/v1/projects/{project['id']}", headers=stranger_headers).status_code == 404
    assert (
        client.post(
            f"/api/v1/projects/{project['id']}/tasks",
            json={"title": "Sneaky", "day_of_week": 1},
            headers=stranger_headers,
        ).status_code
        == 404
    )


def test_members_see_project_and_manage_tasks_but_not_project(
    client: TestClient,
    db_session: Session,
    make_user: Callable[..., User],
    headers_for: Callable[[User], dict[str, str]],
    user_headers: dict[str, str],
) -> None:
    project = _create_project(client, user_headers)
    member = make_user(email="member@test.local", display_name="Member")
    db_session.add(ProjectMember(project_id=uuid.UUID(project["id"]), user_id=member.id))
    db_session.commit()
    member_headers = headers_for(member)

    visible = client.get("/api/v1/projects", headers=member_headers).json()["items"]
    assert [item["id"] for item in visible] == [project["id"]]
    assert visible[0]["members"][0]["email"] == "member@test.local"

    task = _create_task(client, member_headers, project["id"])
    toggled = client.patch(f"/api/v1/projects/{project['id']}/tasks/{task['id']}", headers=member_headers)
    assert toggled.status_code == 200
    assert toggled.json()["completed"] is True

    assert (
        client.patch(f"/api/v1/projects/{project['id']}", json={"completed": True}, headers=member_headers).status_code
        == 403
    )
    assert client.delete(f"/api/v1/projects/{project['id']}", headers=member_headers).status_code == 403


def test_task_patch_toggles_when_completed_is_omitted(client: TestClient, user_headers: dict[str, str]) -> None:
    project = _create_project(client, user_headers)
    task = _create_task(client, user_headers, project["id"])
    url = f"/api/v1/projects/{project['id']}/tasks/{task['id']}"

    assert client.patch(url, json={}, headers=user_headers).json()["completed"] is True
    assert client.patch(url, json={}, headers=user_headers).json()["completed"] is False
    assert client.patch(url, json={"completed": False}, headers=user_headers).json()["completed"] is False


def test_task_validation(client: TestClient, user_headers: dict[str, str]) -> None:
    project = _create_project(client, user_headers)
    url = f"/api/v1/projects/{project['id']}/tasks"

    assert client.post(url, json={"title": "x", "day_of_week": 7}, headers=user_headers).status_code == 422
    assert client.post(url, json={"title": "x", "day_of_week": -1}, headers=user_headers).status_code == 422
    assert client.post(url, json={"title": "  ", "day_of_week": 2}, headers=user_headers).status_code == 422


def test_completing_project_sets_and_clears_end_date(client: TestClient, user_headers: dict[str, str]) -> None:
    project = _create_project(client, user_headers)
    url = f"/api/v1/projects/{project['id']}"

    completed = client.patch(url, json={"completed": True}, headers=user_headers).json()
    assert completed["completed"] is True
    assert completed["end_date"] is not None

    reopened = client.patch(url, json={"completed": False}, headers=user_headers).json()
    assert reopened["completed"] is False
    assert reopened["end_date"] is None


def test_delete_project_cascades_tasks_and_detaches_finances(
    client: TestClient,
    db_session: Session,
    regular_user: User,
    user_headers: dict[str, str],
) -> None:
    project = _create_project(client, user_headers)
    task = _create_task(client, user_headers, project["id"])
    bonus = client.post(
        "/api/v1/finances",
        json={"type": "BONUS", "amount": "150.00", "month": 3, "year": 2025, "project_id": project["id"]},
        headers=user_headers,
    ).json()

    response = client.delete(f"/api/v1/projects/{project['id']}", headers=user_headers)

    assert response.status_code == 204
    assert client.get(f"/api/v1/projects/{project['id']}", headers=user_headers).status_code == 404
    assert db_session.scalar(select(Task).where(Task.title == task["title"])) is None
    entry = db_session.scalar(select(UserFinance).where(UserFinance.user_id == regular_user.id))
    assert entry is not None
    assert str(entry.id) == bonus["id"]
    assert entry.project_id is None
    assert entry.type is FinanceType.BONUS
    assert entry.amount == Decimal("150.00")
