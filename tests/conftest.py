"""Shared fixtures: a throwaway SQLite file per test, sessions, an API client and users."""

import io

import pytest
from fastapi.testclient import TestClient
from openpyxl import Workbook
from sqlalchemy.orm import sessionmaker

from stocktrack.database import Base, get_db, get_session_factory, import_models, make_engine
from stocktrack.main import app
from stocktrack.models.user import User, UserRole, UserStatus
from stocktrack.services import auth_service

PASSWORD = "secret123"


@pytest.fixture
def engine(tmp_path):
    import_models()
    engine = make_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.state.cleanup_scheduler = None
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_user(db, name, email, role=UserRole.USER, status=UserStatus.APPROVED) -> User:
    user = User(
        name=name,
        email=email,
        password_hash=auth_service.hash_password(PASSWORD),
        role=role.value,
        status=status.value,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def user(db_session):
    return make_user(db_session, "Clerk", "clerk@example.com")


@pytest.fixture
def admin(db_session):
    return make_user(db_session, "Boss", "boss@example.com", role=UserRole.ADMIN)


@pytest.fixture
def auth_headers(user):
    return {"Authorization": f"Bearer {auth_service.create_access_token(user.id)}"}


@pytest.fixture
def admin_headers(admin):
    return {"Authorization": f"Bearer {auth_service.create_access_token(admin.id)}"}


def workbook_bytes(rows: list[list]) -> bytes:
    wb = Workbook()
    ws = wb.active
    for row in rows:
        ws.append(row)
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()
