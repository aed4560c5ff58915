"""
CampusGate - Database Configuration

SQLModel engine and session factory for the user, session and audit tables.
Supports PostgreSQL (production) and SQLite (development, tests).

Usage:
    from campusgate.auth.database import get_engine, init_db

    engine = get_engine()
    init_db(engine)  # Creates tables
"""

from typing import Callable, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

from campusgate.config import settings


def get_engine(database_url: Optional[str] = None, echo: bool = False) -> Engine:
    """
    Create SQLAlchemy engine with appropriate configuration.

    In-memory SQLite URLs share one connection (StaticPool) so every
    session sees the same database.
    """
    url = database_url or settings.DATABASE_URL

    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url == "sqlite://":
            kwargs["poolclass"] = StaticPool
        return create_engine(url, echo=echo, **kwargs)

    return create_engine(
        url,
        echo=echo,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
    )


def init_db(engine: Engine) -> None:
    """
    Create all tables. Safe to call repeatedly.
    """
    # Import models to register them with SQLModel
    from campusgate.auth import models  # noqa: F401
    from campusgate.audit import models as audit_models  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session_factory(engine: Engine) -> Callable[[], Session]:
    """
    Create a session factory bound to engine.

    expire_on_commit is off so rows stay readable after the session closes.
    """
    def session_factory() -> Session:
        return Session(engine, expire_on_commit=False)

    return session_factory
