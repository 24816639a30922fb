"""Personal analytics endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from worktrack.core.auth import RequestUserContext, get_current_user_context
from worktrack.core.clock import utcnow
from worktrack.db.dependencies import get_db_session
from worktrack.services.summary_service import SummaryService

router = APIRouter(tags=["summary"])


@router.get("/summary")
def personal_summary(
    year: int | None = Query(default=None, ge=1900, le=9999),
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    now = utcnow()
    return SummaryService(db).personal_summary(
        context=context,
        year=year if year is not None else now.year,
        now=now,
    )
