"""Login, logout and current-user endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from worktrack.core.auth import RequestUserContext, close_session, get_current_user_context, get_session_token, open_session
from worktrack.core.config import get_settings
from worktrack.db.dependencies import get_db_session
from worktrack.services.user_service import UserService

router = APIRouter(prefix="/auth", tags=["auth"])


class LoginPayload(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    password: str = Field(min_length=1, max_length=1024)


@router.post("/login")
def login(
    payload: LoginPayload,
    response: Response,
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    settings = get_settings()
    service = UserService(db)
    user = service.authenticate(email=payload.email, password=payload.password)
    token = open_session(db, user)

    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        max_age=settings.session_ttl_hours * 3600,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
    )
    return {
        "token": token,
        "token_type": "bearer",
        "user": service.serialize_user(user),
    }


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(
    token: str | None = Depends(get_session_token),
    db: Session = Depends(get_db_session),
) -> Response:
    if token:
        close_session(db, token)
    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    response.delete_cookie(get_settings().session_cookie_name)
    return response


@router.get("/me")
def me(
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = UserService(db)
    return service.serialize_user(service.get_user(context.user_id))
