"""
CampusGate - Authentication Database Models

SQLModel-based models for user accounts and the per-user session record.
Uses PostgreSQL for production, SQLite for local development.

Security:
- Passwords stored as bcrypt hashes only
- At most one live session row per user (single-session policy)
- Session fields are cleared together, never partially
- All timestamps are naive UTC
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

from sqlmodel import SQLModel, Field
from sqlalchemy import Column, String, Boolean, DateTime, Integer, Enum as SQLEnum


def utcnow() -> datetime:
    """Current instant as naive UTC (what the database columns hold)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid4())


class Role(str, Enum):
    """
    Portal roles.

    Route access is deny-by-default; see gateway/routes.yaml for grants.
    """
    SBTE_ADMIN = "SBTE_ADMIN"
    EDUCATION_DEPARTMENT = "EDUCATION_DEPARTMENT"
    COLLEGE_SUPER_ADMIN = "COLLEGE_SUPER_ADMIN"
    COLLEGE_ADMIN = "COLLEGE_ADMIN"
    HOD = "HOD"
    TEACHER = "TEACHER"
    FINANCE_MANAGER = "FINANCE_MANAGER"
    STUDENT = "STUDENT"
    ALUMNUS = "ALUMNUS"


class User(SQLModel, table=True):
    """
    User account, owned by the wider portal and read by the session core.

    Attributes:
        id: Unique identifier
        email: Login identifier (unique, indexed)
        password_hash: bcrypt hash (never store plaintext)
        role: Portal role used for route authorization
        college_id: Tenant the account belongs to (None for state-level staff)
        is_active: Inactive users cannot login
        failed_login_attempts: Failures inside the current attempt window
        is_locked / locked_until / lockout_count: Account lockout state
    """
    __tablename__ = "users"

    id: str = Field(default_factory=new_id, primary_key=True)
    email: str = Field(
        sa_column=Column(String(255), unique=True, index=True, nullable=False),
    )
    password_hash: str = Field(sa_column=Column(String(255), nullable=False))
    role: Role = Field(
        sa_column=Column(SQLEnum(Role), nullable=False, default=Role.STUDENT),
    )
    college_id: Optional[str] = Field(default=None, index=True)
    is_active: bool = Field(
        default=True,
        sa_column=Column(Boolean, nullable=False, default=True),
    )

    failed_login_attempts: int = Field(
        default=0,
        sa_column=Column(Integer, nullable=False, default=0),
    )
    last_failed_login_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime, nullable=True),
    )
    is_locked: bool = Field(
        default=False,
        sa_column=Column(Boolean, nullable=False, default=False),
    )
    locked_until: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime, nullable=True),
    )
    lockout_count: int = Field(
        default=0,
        sa_column=Column(Integer, nullable=False, default=0),
    )

    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime, nullable=False, default=utcnow),
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow),
    )


class UserSession(SQLModel, table=True):
    """
    The single active-session record of a user.

    A row with is_logged_in = False has every session-specific column set
    to NULL; only the audit timestamps survive termination.

    Attributes:
        user_id: Owner (primary key, one row per user)
        session_token: Opaque 64-character secret; NULL when logged out
        created_at: When the session was established
        expires_at: created_at + session duration (fixed window)
        last_activity: Last validated request (sliding)
        ip_address / user_agent: Origin fingerprint captured at creation
        is_logged_in: True iff a token is present and not terminated
        last_login_at / last_logout: Audit timestamps
    """
    __tablename__ = "user_sessions"

    user_id: str = Field(foreign_key="users.id", primary_key=True)
    session_token: Optional[str] = Field(
        default=None,
        sa_column=Column(String(128), unique=True, index=True, nullable=True),
    )
    created_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime, nullable=True),
    )
    expires_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime, nullable=True, index=True),
    )
    last_activity: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime, nullable=True, index=True),
    )
    ip_address: Optional[str] = Field(
        default=None,
        sa_column=Column(String(45), nullable=True),
    )
    user_agent: Optional[str] = Field(
        default=None,
        sa_column=Column(String(512), nullable=True),
    )
    is_logged_in: bool = Field(
        default=False,
        sa_column=Column(Boolean, nullable=False, default=False, index=True),
    )
    last_login_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime, nullable=True),
    )
    last_logout: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime, nullable=True),
    )
