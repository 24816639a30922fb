"""Salary and bonus ledger endpoints."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from worktrack.core.auth import Capability, RequestUserContext, get_current_user_context, require_capability
from worktrack.db.dependencies import get_db_session
from worktrack.models.entities import FinanceType
from worktrack.services.finance_service import FinanceEntryData, FinanceService

router = APIRouter(prefix="/finances", tags=["finances"])
admin_router = APIRouter(prefix="/admin/finances", tags=["admin"])

require_finance_admin = require_capability(Capability.MANAGE_FINANCES)


class FinanceEntryPayload(BaseModel):
    type: FinanceType
    amount: Decimal = Field(ge=0, max_digits=14, decimal_places=2)
    month: int = Field(ge=1, le=12)
    year: int = Field(ge=1900, le=9999)
    category: str | None = Field(default=None, max_length=128)
    project_id: UUID | None = None
    description: str | None = Field(default=None, max_length=2000)

    def to_data(self) -> FinanceEntryData:
        return FinanceEntryData(
            type=self.type,
            amount=self.amount,
            month=self.month,
            year=self.year,
            category=self.category,
            project_id=self.project_id,
            description=self.description,
        )


class AdminFinanceEntryPayload(FinanceEntryPayload):
    user_id: UUID


def _finance_service(db: Session) -> FinanceService:
    return FinanceService(db)


@router.get("")
def list_own_finances(
    month: int | None = Query(default=None, ge=1, le=12),
    year: int | None = Query(default=None, ge=1900, le=9999),
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    service = _finance_service(db)
    rows = service.list_own_entries(context=context, month=month, year=year)
    return {"items": [service.serialize_entry(row) for row in rows]}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_own_finance(
    payload: FinanceEntryPayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _finance_service(db)
    entry = service.create_entry(context=context, user_id=context.user_id, data=payload.to_data())
    return service.serialize_entry(entry)


@router.put("/{entry_id}")
def update_finance(
    entry_id: UUID,
    payload: FinanceEntryPayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _finance_service(db)
    entry = service.update_entry(context=context, entry_id=entry_id, data=payload.to_data())
    return service.serialize_entry(entry)


@router.delete("/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_finance(
    entry_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> Response:
    _finance_service(db).delete_entry(context=context, entry_id=entry_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@admin_router.get("")
def admin_list_finances(
    user_id: UUID | None = Query(default=None),
    year: int | None = Query(default=None, ge=1900, le=9999),
    context: RequestUserContext = Depends(require_finance_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    service = _finance_service(db)
    return {"items": service.admin_ledger(context=context, user_id=user_id, year=year)}


@admin_router.get("/export")
def admin_export_finances(
    format: str = Query(default="xlsx"),
    user_id: UUID | None = Query(default=None),
    year: int | None = Query(default=None, ge=1900, le=9999),
    context: RequestUserContext = Depends(require_finance_admin),
    db: Session = Depends(get_db_session),
) -> Response:
    exported = _finance_service(db).export_entries(
        context=context,
        format_name=format,
        user_id=user_id,
        year=year,
    )
    return Response(
        content=exported.content,
        media_type=exported.media_type,
        headers={"Content-Disposition": f'attachment; filename="{exported.filename}"'},
    )


@admin_router.post("", status_code=status.HTTP_201_CREATED)
def admin_create_finance(
    payload: AdminFinanceEntryPayload,
    context: RequestUserContext = Depends(require_finance_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _finance_service(db)
    entry = service.create_entry(context=context, user_id=payload.user_id, data=payload.to_data())
    return service.serialize_entry(entry)


@admin_router.put("/{entry_id}")
def admin_update_finance(
    entry_id: UUID,
    payload: FinanceEntryPayload,
    context: RequestUserContext = Depends(require_finance_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _finance_service(db)
    entry = service.update_entry(context=context, entry_id=entry_id, data=payload.to_data())
    return service.serialize_entry(entry)


@admin_router.delete("/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
def admin_delete_finance(
    entry_id: UUID,
    context: RequestUserContext = Depends(require_finance_admin),
    db: Session = Depends(get_db_session),
) -> Response:
    _finance_service(db).delete_entry(context=context, entry_id=entry_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
