from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta

from fastapi.testclient import TestClient

from worktrack.models.entities import User


def test_summary_for_user_without_activity(client: TestClient, user_headers: dict[str, str]) -> None:
    response = client.get("/api/v1/summary", params={"year": 2025}, headers=user_headers)

    assert response.status_code == 200
    payload = response.json()
    assert payload["year"] == 2025
    assert payload["tasks"]["completion_rate"] == 0
    assert payload["projects"]["completion_rate"] == 0
    assert payload["user"]["streak"] == 0
    assert [bucket["total"] for bucket in payload["tasks"]["weekly"]] == [0, 0, 0, 0]
    assert len(payload["tasks"]["by_day"]) == 7
    assert len(payload["finances"]["monthly"]) == 12
    assert payload["finances"]["average_monthly"] == "0.00"
    assert payload["finances"]["best_month"]["month"] == 1
    assert payload["recent_projects"] == []
    assert payload["week_focus"] == {"tasks": [], "by_project": []}


def test_summary_reflects_projects_tasks_and_earnings(
    client: TestClient,
    regular_user: User,
    user_headers: dict[str, str],
    admin_headers: dict[str, str],
) -> None:
    today = datetime.utcnow().weekday()
    project = client.post("/api/v1/projects", json={"name": "Alpha"}, headers=user_headers).json()
    tasks_url = f"/api/v1/projects/{project['id']}/tasks"
    first = client.post(tasks_url, json={"title": "Focus one", "day_of_week": today}, headers=user_headers).json()
    client.post(tasks_url, json={"title": "Focus two", "day_of_week": (today + 1) % 7}, headers=user_headers)
    client.patch(f"{tasks_url}/{first['id']}", json={"completed": True}, headers=user_headers)
    client.post(tasks_url, json={"title": "Focus three", "day_of_week": today}, headers=user_headers)

    user_id = str(regular_user.id)
    for month in (1, 2, 3):
        client.post(
            "/api/v1/admin/finances",
            json={"type": "SALARY", "amount": "900000", "month": month, "year": 2025, "user_id": user_id},
            headers=admin_headers,
        )
    for amount in ("100000", "50000"):
        client.post(
            "/api/v1/finances",
            json={"type": "BONUS", "amount": amount, "month": 3, "year": 2025, "project_id": project["id"]},
            headers=user_headers,
        )

    payload = client.get("/api/v1/summary", params={"year": 2025}, headers=user_headers).json()

    assert payload["projects"] == {
        "total": 1,
        "completed": 0,
        "active": 1,
        "completion_rate": 0,
        "owned": 1,
        "member": 0,
    }
    assert payload["tasks"]["total"] == 3
    assert payload["tasks"]["completed"] == 1
    assert payload["tasks"]["completion_rate"] == 33
    assert payload["tasks"]["weekly"][-1]["total"] == 3
    assert payload["user"]["streak"] == 1
    assert payload["user"]["member_since"] == regular_user.created_at.isoformat()

    monthly = payload["finances"]["monthly"]
    assert [row["salary"] for row in monthly[:3]] == ["900000.00", "900000.00", "900000.00"]
    assert monthly[2]["bonuses"] == "150000.00"
    assert all(row["total"] == "0.00" for row in monthly[3:])
    assert payload["finances"]["best_month"]["month"] == 3
    assert payload["finances"]["this_year"] == "2850000.00"
    assert payload["finances"]["average_monthly"] == "237500.00"
    assert payload["finances"]["by_project"] == [
        {"project_id": project["id"], "project_name": "Alpha", "total_bonuses": "150000.00", "count": 2}
    ]

    focus = payload["week_focus"]
    assert {item["title"] for item in focus["tasks"]} == {"Focus two", "Focus three"}
    assert len(focus["by_project"]) == 1
    recent = payload["recent_projects"][0]
    assert recent["name"] == "Alpha"
    assert recent["is_owner"] is True
    assert recent["task_count"] == 3
    assert recent["completed_tasks"] == 1


def test_admin_summary_aggregates_system(
    client: TestClient,
    make_user: Callable[..., User],
    regular_user: User,
    user_headers: dict[str, str],
    admin_headers: dict[str, str],
) -> None:
    for index in range(6):
        make_user(email=f"extra{index}@test.local")
    project = client.post("/api/v1/projects", json={"name": "Busy"}, headers=user_headers).json()
    task = client.post(
        f"/api/v1/projects/{project['id']}/tasks",
        json={"title": "Ship", "day_of_week": 0},
        headers=user_headers,
    ).json()
    client.patch(f"/api/v1/projects/{project['id']}/tasks/{task['id']}", json={"completed": True}, headers=user_headers)
    overdue = client.post(
        "/api/v1/admin/projects",
        json={
            "name": "Late",
            "user_id": str(regular_user.id),
            "end_date": (datetime.utcnow() - timedelta(days=1)).isoformat(),
        },
        headers=admin_headers,
    ).json()
    client.put(
        f"/api/v1/admin/projects/{project['id']}/finance",
        json={"revenue": "500", "expense": "800"},
        headers=admin_headers,
    )

    response = client.get("/api/v1/admin/summary", headers=admin_headers)

    assert response.status_code == 200
    payload = response.json()
    stats = payload["stats"]
    assert stats["total_users"] == 8
    assert stats["total_projects"] == 2
    assert stats["active_projects"] == 2
    assert stats["total_tasks"] == 1
    assert stats["completed_tasks"] == 1
    assert stats["completion_rate"] == 100
    assert (stats["revenue"], stats["expense"], stats["profit"]) == ("500.00", "800.00", "-300.00")

    assert len(payload["weekly"]) == 4
    assert payload["weekly"][-1]["rate"] == 100
    assert len(payload["most_active_users"]) == 5
    assert payload["most_active_users"][0]["email"] == "alice@test.local"
    assert payload["most_active_users"][0]["completed_tasks"] == 1
    assert [row["id"] for row in payload["overdue_projects"]] == [overdue["id"]]
    assert payload["top_projects"][0]["name"] == "Busy"
    assert payload["top_projects"][0]["task_count"] == 1
    kinds = [item["kind"] for item in payload["recent_activity"]]
    assert (kinds.count("user"), kinds.count("project"), kinds.count("task")) == (5, 2, 1)


def test_summary_separates_owned_and_member_projects(
    client: TestClient,
    make_user: Callable[..., User],
    regular_user: User,
    user_headers: dict[str, str],
    admin_headers: dict[str, str],
) -> None:
    owner = make_user(email="bob@test.local", display_name="Bob")
    client.post("/api/v1/projects", json={"name": "Mine"}, headers=user_headers)
    shared = client.post(
        "/api/v1/admin/projects",
        json={"name": "Shared", "user_id": str(owner.id)},
        headers=admin_headers,
    ).json()
    added = client.post(
        f"/api/v1/admin/projects/{shared['id']}/members",
        json={"user_id": str(regular_user.id)},
        headers=admin_headers,
    )
    assert added.status_code == 201

    payload = client.get("/api/v1/summary", headers=user_headers).json()

    assert payload["projects"]["total"] == 2
    assert payload["projects"]["owned"] == 1
    assert payload["projects"]["member"] == 1
    ownership = {row["name"]: row["is_owner"] for row in payload["recent_projects"]}
    assert ownership == {"Mine": True, "Shared": False}
