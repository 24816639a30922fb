from __future__ import annotations

import csv
import io
from collections.abc import Callable
from io import BytesIO

from fastapi.testclient import TestClient
from openpyxl import load_workbook

from worktrack.models.entities import User


def _entry(kind: str = "BONUS", *, amount: str = "100.00", month: int = 1, year: int = 2025, **extra: object):
    payload: dict[str, object] = {"type": kind, "amount": amount, "month": month, "year": year}
    payload.update(extra)
    return payload


def test_user_records_and_lists_own_bonuses(client: TestClient, user_headers: dict[str, str]) -> None:
    first = client.post("/api/v1/finances", json=_entry(month=1, category="Referral"), headers=user_headers)
    second = client.post("/api/v1/finances", json=_entry(month=4, amount="50.5"), headers=user_headers)
    older = client.post("/api/v1/finances", json=_entry(month=12, year=2024), headers=user_headers)
    assert first.status_code == 201
    assert second.json()["amount"] == "50.50"
    assert older.status_code == 201

    listed = client.get("/api/v1/finances", headers=user_headers).json()["items"]
    assert [(row["year"], row["month"]) for row in listed] == [(2025, 4), (2025, 1), (2024, 12)]

    by_year = client.get("/api/v1/finances", params={"year": 2025, "month": 4}, headers=user_headers).json()["items"]
    assert [row["month"] for row in by_year] == [4]

    # month without year does not filter
    month_only = client.get("/api/v1/finances", params={"month": 4}, headers=user_headers).json()["items"]
    assert len(month_only) == 3


def test_finance_payload_validation(client: TestClient, user_headers: dict[str, str]) -> None:
    assert client.post("/api/v1/finances", json=_entry(amount="-1"), headers=user_headers).status_code == 422
    assert client.post("/api/v1/finances", json=_entry(month=13), headers=user_headers).status_code == 422
    assert client.post("/api/v1/finances", json=_entry(kind="STIPEND"), headers=user_headers).status_code == 422


def test_regular_user_cannot_record_salary(client: TestClient, user_headers: dict[str, str]) -> None:
    response = client.post("/api/v1/finances", json=_entry("SALARY"), headers=user_headers)

    assert response.status_code == 403


def test_duplicate_salary_is_rejected(
    client: TestClient,
    regular_user: User,
    admin_headers: dict[str, str],
) -> None:
    payload = _entry("SALARY", amount="900000", month=2, user_id=str(regular_user.id))

    created = client.post("/api/v1/admin/finances", json=payload, headers=admin_headers)
    duplicate = client.post("/api/v1/admin/finances", json=payload, headers=admin_headers)
    other_month = client.post(
        "/api/v1/admin/finances",
        json={**payload, "month": 3},
        headers=admin_headers,
    )

    assert created.status_code == 201
    assert duplicate.status_code == 409
    assert "salary" in duplicate.json()["detail"].lower()
    assert other_month.status_code == 201


def test_converting_bonus_to_duplicate_salary_conflicts(
    client: TestClient,
    regular_user: User,
    admin_headers: dict[str, str],
) -> None:
    user_id = str(regular_user.id)
    client.post("/api/v1/admin/finances", json=_entry("SALARY", month=5, user_id=user_id), headers=admin_headers)
    bonus = client.post("/api/v1/admin/finances", json=_entry(month=5, user_id=user_id), headers=admin_headers).json()

    response = client.put(f"/api/v1/admin/finances/{bonus['id']}", json=_entry("SALARY", month=5), headers=admin_headers)

    assert response.status_code == 409


def test_owner_updates_bonus_but_not_salary(
    client: TestClient,
    regular_user: User,
    user_headers: dict[str, str],
    admin_headers: dict[str, str],
) -> None:
    bonus = client.post("/api/v1/finances", json=_entry(), headers=user_headers).json()
    salary = client.post(
        "/api/v1/admin/finances",
        json=_entry("SALARY", month=6, user_id=str(regular_user.id)),
        headers=admin_headers,
    ).json()

    updated = client.put(f"/api/v1/finances/{bonus['id']}", json=_entry(amount="75"), headers=user_headers)
    assert updated.status_code == 200
    assert updated.json()["amount"] == "75.00"

    promoted = client.put(f"/api/v1/finances/{bonus['id']}", json=_entry("SALARY", month=7), headers=user_headers)
    assert promoted.status_code == 403
    assert client.delete(f"/api/v1/finances/{salary['id']}", headers=user_headers).status_code == 403
    assert client.delete(f"/api/v1/finances/{bonus['id']}", headers=user_headers).status_code == 204


def test_entries_of_other_users_are_not_found(
    client: TestClient,
    make_user: Callable[..., User],
    headers_for: Callable[[User], dict[str, str]],
    user_headers: dict[str, str],
) -> None:
    bonus = client.post("/api/v1/finances", json=_entry(), headers=user_headers).json()
    stranger_headers = headers_for(make_user(email="bob@test.local"))

    assert client.put(f"/api/v1/finances/{bonus['id']}", json=_entry(), headers=stranger_headers).status_code == 404
    assert client.delete(f"/api/v1/finances/{bonus['id']}", headers=stranger_headers).status_code == 404
    assert client.get("/api/v1/finances", headers=stranger_headers).json()["items"] == []


def test_admin_ledger_requires_admin(client: TestClient, user_headers: dict[str, str]) -> None:
    assert client.get("/api/v1/admin/finances", headers=user_headers).status_code == 403
    assert client.get("/api/v1/admin/finances/export", headers=user_headers).status_code == 403


def test_admin_lists_and_exports_ledger(
    client: TestClient,
    regular_user: User,
    admin_headers: dict[str, str],
) -> None:
    user_id = str(regular_user.id)
    client.post("/api/v1/admin/finances", json=_entry("SALARY", month=1, user_id=user_id), headers=admin_headers)
    client.post("/api/v1/admin/finances", json=_entry(month=2, year=2024, user_id=user_id), headers=admin_headers)

    filtered = client.get("/api/v1/admin/finances", params={"user_id": user_id, "year": 2025}, headers=admin_headers)
    assert [row["type"] for row in filtered.json()["items"]] == ["SALARY"]

    exported_csv = client.get(
        "/api/v1/admin/finances/export",
        params={"format": "csv", "year": 2025},
        headers=admin_headers,
    )
    assert exported_csv.status_code == 200
    assert exported_csv.headers["content-type"].startswith("text/csv")
    assert 'filename="finances-2025.csv"' in exported_csv.headers["content-disposition"]
    rows = list(csv.DictReader(io.StringIO(exported_csv.text)))
    assert len(rows) == 1
    assert rows[0]["user_email"] == "alice@test.local"
    assert rows[0]["amount"] == "100.00"

    exported_xlsx = client.get("/api/v1/admin/finances/export", params={"format": "xlsx"}, headers=admin_headers)
    assert exported_xlsx.status_code == 200
    sheet = load_workbook(BytesIO(exported_xlsx.content)).active
    assert sheet.max_row == 3
    assert sheet.cell(row=1, column=1).value == "id"

    assert (
        client.get("/api/v1/admin/finances/export", params={"format": "pdf"}, headers=admin_headers).status_code
        == 422
    )


def test_admin_ledger_embeds_user_and_project(
    client: TestClient,
    regular_user: User,
    user_headers: dict[str, str],
    admin_headers: dict[str, str],
) -> None:
    project = client.post("/api/v1/projects", json={"name": "Ledgered"}, headers=user_headers).json()
    client.post("/api/v1/finances", json=_entry(project_id=project["id"]), headers=user_headers)
    client.post("/api/v1/finances", json=_entry(month=2), headers=user_headers)

    items = client.get("/api/v1/admin/finances", params={"year": 2025}, headers=admin_headers).json()["items"]

    by_month = {row["month"]: row for row in items}
    assert by_month[1]["user"] == {
        "name": "Alice",
        "email": "alice@test.local",
        "level": regular_user.level.value,
    }
    assert by_month[1]["project"] == {"id": project["id"], "name": "Ledgered"}
    assert by_month[2]["project"] is None
    assert by_month[2]["user"]["email"] == "alice@test.local"
