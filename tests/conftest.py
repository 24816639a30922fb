from __future__ import annotations

from collections.abc import Callable, Generator
from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from worktrack.core.auth import open_session
from worktrack.core.security import hash_password
from worktrack.db.base import Base
from worktrack.db.dependencies import get_db_session
import worktrack.models.entities  # noqa: F401
from worktrack.main import create_app
from worktrack.models.entities import (
    AuthSession,
    Project,
    ProjectFinance,
    ProjectMember,
    Task,
    User,
    UserFinance,
    UserLevel,
    UserRole,
)

TEST_TABLES = [
    User.__table__,
    AuthSession.__table__,
    Project.__table__,
    ProjectMember.__table__,
    Task.__table__,
    UserFinance.__table__,
    ProjectFinance.__table__,
]

DEFAULT_PASSWORD = "correct-horse-battery"


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine, tables=TEST_TABLES)
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine, tables=TEST_TABLES)


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    app = create_app()

    def override_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db_session] = override_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _create_user(
    db: Session,
    *,
    email: str,
    display_name: str | None = None,
    role: UserRole = UserRole.USER,
    level: UserLevel = UserLevel.JUNIOR,
    password: str = DEFAULT_PASSWORD,
) -> User:
    now = datetime.utcnow()
    user = User(
        email=email,
        display_name=display_name or email.split("@")[0],
        password_hash=hash_password(password),
        role=role,
        level=level,
        created_at=now,
        updated_at=now,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def _auth_headers(db: Session, user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {open_session(db, user)}"}


@pytest.fixture()
def make_user(db_session: Session) -> Callable[..., User]:
    def factory(**kwargs: object) -> User:
        return _create_user(db_session, **kwargs)

    return factory


@pytest.fixture()
def headers_for(db_session: Session) -> Callable[[User], dict[str, str]]:
    def factory(user: User) -> dict[str, str]:
        return _auth_headers(db_session, user)

    return factory


@pytest.fixture()
def admin_user(db_session: Session) -> User:
    return _create_user(db_session, email="admin@test.local", display_name="Admin", role=UserRole.ADMIN)


@pytest.fixture()
def regular_user(db_session: Session) -> User:
    return _create_user(db_session, email="alice@test.local", display_name="Alice")


@pytest.fixture()
def admin_headers(db_session: Session, admin_user: User) -> dict[str, str]:
    return _auth_headers(db_session, admin_user)


@pytest.fixture()
def user_headers(db_session: Session, regular_user: User) -> dict[str, str]:
    return _auth_headers(db_session, regular_user)
