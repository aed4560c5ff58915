"""
CampusGate - Test Configuration

Pytest fixtures for session, gateway and API testing.
Provides a fake clock, in-memory stores, an in-memory SQLite app and
user fixtures.
"""

import os

# Settings are read at import time; configure before importing campusgate
os.environ.setdefault("SECRET_KEY", "test-secret-key-0123456789abcdef0123456789abcdef")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("CLEANUP_SECRET", "test-cleanup-secret")
os.environ.setdefault("SESSION_CLEANUP_ENABLED", "false")
os.environ.setdefault("LOG_JSON", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from datetime import datetime, timedelta
from typing import Callable, Generator

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from campusgate.app import create_app
from campusgate.audit.sink import MemoryAuditSink
from campusgate.auth.models import Role, User
from campusgate.auth.password import hash_password
from campusgate.auth.sessions import SessionManager
from campusgate.auth.store import InMemorySessionStore


DEFAULT_PASSWORD = "Portal@2024"


class FakeClock:
    """Callable returning a controllable naive-UTC instant."""

    def __init__(self, start: datetime = datetime(2026, 1, 15, 9, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


# =============================================================================
# Session core fixtures
# =============================================================================

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def audit() -> MemoryAuditSink:
    return MemoryAuditSink()


@pytest.fixture
def manager(store, audit, clock) -> SessionManager:
    """60 minute session, 60 minute inactivity timeout."""
    return SessionManager(
        store=store,
        audit=audit,
        session_duration=timedelta(minutes=60),
        activity_timeout=timedelta(minutes=60),
        clock=clock,
    )


# =============================================================================
# Application fixtures
# =============================================================================

@pytest.fixture
def app():
    """Fresh app over its own in-memory database."""
    return create_app(database_url="sqlite://", run_sweeper=False)


@pytest.fixture
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db_session(client, app) -> Generator[Session, None, None]:
    with app.state.db_session_factory() as session:
        yield session


@pytest.fixture
def make_user(db_session) -> Callable[..., User]:
    """Factory: make_user(role=Role.STUDENT, email=None, password=DEFAULT_PASSWORD)."""
    counter = {"n": 0}

    def _make(
        role: Role = Role.STUDENT,
        email: str = None,
        password: str = DEFAULT_PASSWORD,
        is_active: bool = True,
    ) -> User:
        counter["n"] += 1
        user = User(
            email=email or f"{role.value.lower()}{counter['n']}@college.test",
            password_hash=hash_password(password),
            role=role,
            is_active=is_active,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make


@pytest.fixture
def login(client) -> Callable:
    """login(email, password=DEFAULT_PASSWORD, **kwargs) -> response"""
    def _login(email: str, password: str = DEFAULT_PASSWORD, **kwargs):
        return client.post(
            "/api/auth/login",
            json={"email": email, "password": password},
            **kwargs,
        )
    return _login


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers() -> Callable[[str], dict]:
    return bearer
