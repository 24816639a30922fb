"""Application service for the per-user salary and bonus ledger."""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from fastapi import HTTPException, status
from openpyxl import Workbook
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from worktrack.core.auth import Capability, RequestUserContext, can_manage_owned, ensure_capability
from worktrack.core.clock import utcnow
from worktrack.models.entities import FinanceType, Project, User, UserFinance
from worktrack.repositories.tracker_repository import TrackerRepository
from worktrack.services.analytics import MONTHS_PER_YEAR, q2

logger = logging.getLogger("worktrack.finances")

DUPLICATE_SALARY_DETAIL = "A salary entry already exists for this user, month and year."
EXPORT_COLUMNS = [
    "id",
    "user_id",
    "user_email",
    "type",
    "amount",
    "month",
    "year",
    "category",
    "project_id",
    "project_name",
    "description",
    "created_at",
]


@dataclass(slots=True)
class FinanceEntryData:
    type: FinanceType
    amount: Decimal
    month: int
    year: int
    category: str | None = None
    project_id: UUID | None = None
    description: str | None = None


@dataclass(slots=True)
class ExportFilePayload:
    media_type: str
    filename: str
    content: bytes


class FinanceService:
    """Service implementing ledger visibility, salary uniqueness and ledger export."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = TrackerRepository(db)

    @staticmethod
    def serialize_entry(entry: UserFinance) -> dict[str, object]:
        return {
            "id": str(entry.id),
            "user_id": str(entry.user_id),
            "type": entry.type.value,
            "amount": str(q2(entry.amount)),
            "month": entry.month,
            "year": entry.year,
            "category": entry.category,
            "project_id": str(entry.project_id) if entry.project_id else None,
            "description": entry.description,
            "created_at": entry.created_at.isoformat(),
            "updated_at": entry.updated_at.isoformat(),
        }

    # ---------- Validation ----------
    def _validate(self, data: FinanceEntryData) -> None:
        if data.amount < 0:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="amount must be non-negative.",
            )
        if not 1 <= data.month <= MONTHS_PER_YEAR:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="month must be between 1 and 12.",
            )
        if data.project_id is not None and self.repo.get_project(data.project_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found.")

    def _ensure_salary_slot_free(
        self,
        *,
        user_id: UUID,
        month: int,
        year: int,
        exclude_id: UUID | None = None,
    ) -> None:
        existing = self.repo.find_salary(user_id=user_id, month=month, year=year, exclude_id=exclude_id)
        if existing is not None:
            logger.warning("Rejected duplicate salary for user %s in %s/%s", user_id, month, year)
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=DUPLICATE_SALARY_DETAIL)

    def _commit(self, pending: UserFinance | None = None) -> None:
        try:
            if pending is not None:
                self.repo.add_user_finance(pending)
            self.db.commit()
        except IntegrityError as exc:
            # Concurrent salary writes past the pre-check land on the partial unique index.
            self.db.rollback()
            logger.warning("Salary uniqueness violated at commit: %s", exc.orig)
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=DUPLICATE_SALARY_DETAIL) from exc

    def _get_entry_for(self, context: RequestUserContext, entry_id: UUID) -> UserFinance:
        entry = self.repo.get_user_finance(entry_id)
        if entry is None or not can_manage_owned(
            context,
            owner_id=entry.user_id,
            override=Capability.MANAGE_FINANCES,
        ):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Finance entry not found.")
        return entry

    # ---------- Entries ----------
    def list_own_entries(
        self,
        *,
        context: RequestUserContext,
        month: int | None,
        year: int | None,
    ) -> list[UserFinance]:
        """The caller's entries, newest first; ``month`` only filters together with ``year``."""

        ensure_capability(context, Capability.MANAGE_OWN_WORK)
        return self.repo.list_user_finances(
            user_id=context.user_id,
            month=month if year is not None else None,
            year=year,
        )

    def create_entry(
        self,
        *,
        context: RequestUserContext,
        user_id: UUID,
        data: FinanceEntryData,
    ) -> UserFinance:
        if user_id == context.user_id:
            ensure_capability(context, Capability.MANAGE_OWN_WORK)
        else:
            ensure_capability(context, Capability.MANAGE_FINANCES)
            if self.repo.get_user(user_id) is None:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found.")
        if data.type is FinanceType.SALARY:
            ensure_capability(context, Capability.MANAGE_FINANCES)
        self._validate(data)
        if data.type is FinanceType.SALARY:
            self._ensure_salary_slot_free(user_id=user_id, month=data.month, year=data.year)

        now = utcnow()
        entry = UserFinance(
            user_id=user_id,
            type=data.type,
            amount=q2(data.amount),
            month=data.month,
            year=data.year,
            category=data.category.strip() if data.category else None,
            project_id=data.project_id,
            description=data.description.strip() if data.description else None,
            created_at=now,
            updated_at=now,
        )
        self._commit(entry)
        self.db.refresh(entry)
        logger.info(
            "%s entry %s recorded for user %s by %s",
            entry.type.value,
            entry.id,
            user_id,
            context.email,
        )
        return entry

    def update_entry(
        self,
        *,
        context: RequestUserContext,
        entry_id: UUID,
        data: FinanceEntryData,
    ) -> UserFinance:
        entry = self._get_entry_for(context, entry_id)
        if entry.type is FinanceType.SALARY or data.type is FinanceType.SALARY:
            ensure_capability(context, Capability.MANAGE_FINANCES)
        self._validate(data)
        if data.type is FinanceType.SALARY:
            self._ensure_salary_slot_free(
                user_id=entry.user_id,
                month=data.month,
                year=data.year,
                exclude_id=entry.id,
            )

        entry.type = data.type
        entry.amount = q2(data.amount)
        entry.month = data.month
        entry.year = data.year
        entry.category = data.category.strip() if data.category else None
        entry.project_id = data.project_id
        entry.description = data.description.strip() if data.description else None
        entry.updated_at = utcnow()
        self._commit()
        self.db.refresh(entry)
        logger.info("Finance entry %s updated by %s", entry.id, context.email)
        return entry

    def delete_entry(self, *, context: RequestUserContext, entry_id: UUID) -> None:
        entry = self._get_entry_for(context, entry_id)
        if entry.type is FinanceType.SALARY:
            ensure_capability(context, Capability.MANAGE_FINANCES)
        self.repo.delete_user_finance(entry)
        self.db.commit()
        logger.info("Finance entry %s deleted by %s", entry_id, context.email)

    # ---------- Administration ----------
    def admin_list_entries(
        self,
        *,
        context: RequestUserContext,
        user_id: UUID | None,
        year: int | None,
    ) -> list[UserFinance]:
        ensure_capability(context, Capability.MANAGE_FINANCES)
        return self.repo.list_user_finances(user_id=user_id, year=year)

    def _ledger_lookups(self, entries: list[UserFinance]) -> tuple[dict[UUID, User], dict[UUID, Project]]:
        users = {user.id: user for user in self.repo.list_users_by_ids({entry.user_id for entry in entries})}
        project_ids = {entry.project_id for entry in entries if entry.project_id is not None}
        projects = {project.id: project for project in self.repo.list_projects_by_ids(project_ids)}
        return users, projects

    def admin_ledger(
        self,
        *,
        context: RequestUserContext,
        user_id: UUID | None,
        year: int | None,
    ) -> list[dict[str, object]]:
        """Ledger rows with the owning user and referenced project embedded."""

        entries = self.admin_list_entries(context=context, user_id=user_id, year=year)
        users, projects = self._ledger_lookups(entries)
        rows: list[dict[str, object]] = []
        for entry in entries:
            row = self.serialize_entry(entry)
            user = users.get(entry.user_id)
            project = projects.get(entry.project_id) if entry.project_id else None
            row["user"] = (
                {"name": user.display_name, "email": user.email, "level": user.level.value} if user else None
            )
            row["project"] = {"id": str(project.id), "name": project.name} if project else None
            rows.append(row)
        return rows

    def export_entries(
        self,
        *,
        context: RequestUserContext,
        format_name: str,
        user_id: UUID | None,
        year: int | None,
    ) -> ExportFilePayload:
        normalized_format = format_name.strip().lower()
        if normalized_format not in {"csv", "xlsx"}:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="format must be one of: csv, xlsx.",
            )

        entries = self.admin_list_entries(context=context, user_id=user_id, year=year)
        users, projects = self._ledger_lookups(entries)

        rows: list[dict[str, str]] = []
        for entry in entries:
            record = {key: "" if value is None else str(value) for key, value in self.serialize_entry(entry).items()}
            user = users.get(entry.user_id)
            project = projects.get(entry.project_id) if entry.project_id else None
            record["user_email"] = user.email if user else ""
            record["project_name"] = project.name if project else ""
            rows.append(record)

        base_filename = "finances"
        if year is not None:
            base_filename = f"{base_filename}-{year}"

        if normalized_format == "csv":
            sio = io.StringIO()
            writer = csv.DictWriter(sio, fieldnames=EXPORT_COLUMNS, extrasaction="ignore")
            writer.writeheader()
            writer.writerows(rows)
            return ExportFilePayload(
                media_type="text/csv; charset=utf-8",
                filename=f"{base_filename}.csv",
                content=sio.getvalue().encode("utf-8"),
            )

        workbook = Workbook()
        sheet = workbook.active
        sheet.title = "finances"
        sheet.append(EXPORT_COLUMNS)
        for row in rows:
            sheet.append([row.get(column, "") for column in EXPORT_COLUMNS])

        output = io.BytesIO()
        workbook.save(output)
        return ExportFilePayload(
            media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            filename=f"{base_filename}.xlsx",
            content=output.getvalue(),
        )
