"""
CampusGate - Audit Models

Append-only tables for the authentication audit trail and security events,
plus the query/response shapes used by the admin endpoints.

Rows are created only; nothing in this package updates or deletes them.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field as PydanticField
from sqlalchemy import Column, DateTime, Enum as SQLEnum, String, Text
from sqlmodel import SQLModel, Field

from campusgate.auth.models import new_id, utcnow


class AuditStatus(str, Enum):
    """Outcome of an audited action."""
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"
    WARNING = "WARNING"


class Severity(str, Enum):
    """Severity of a security event."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class AuditLog(SQLModel, table=True):
    """
    One audited action.

    user_id is optional because some actions (bulk cleanup) are
    system-triggered. session_id only ever holds a token prefix.
    """
    __tablename__ = "audit_logs"

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: Optional[str] = Field(default=None, index=True)
    user_email: Optional[str] = Field(default=None)
    action: str = Field(sa_column=Column(String(64), nullable=False, index=True))
    resource: str = Field(sa_column=Column(String(64), nullable=False))
    details: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    ip_address: str = Field(default="unknown", sa_column=Column(String(64), nullable=False))
    user_agent: str = Field(default="unknown", sa_column=Column(String(512), nullable=False))
    status: AuditStatus = Field(sa_column=Column(SQLEnum(AuditStatus), nullable=False))
    session_id: Optional[str] = Field(default=None, sa_column=Column(String(16), nullable=True))
    timestamp: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime, nullable=False, index=True),
    )


class SecurityEvent(SQLModel, table=True):
    """One detected anomaly (token mismatch, hijack suspicion, lockout...)."""
    __tablename__ = "security_events"

    id: str = Field(default_factory=new_id, primary_key=True)
    event_type: str = Field(sa_column=Column(String(64), nullable=False, index=True))
    user_id: Optional[str] = Field(default=None, index=True)
    user_email: Optional[str] = Field(default=None)
    ip_address: str = Field(default="unknown", sa_column=Column(String(64), nullable=False))
    user_agent: str = Field(default="unknown", sa_column=Column(String(512), nullable=False))
    details: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    severity: Severity = Field(sa_column=Column(SQLEnum(Severity), nullable=False, index=True))
    timestamp: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime, nullable=False, index=True),
    )


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class AuditLogEntry(BaseModel):
    """Audit row as returned by GET /api/admin/audit-logs."""
    id: str
    user_id: Optional[str] = None
    user_email: Optional[str] = None
    action: str
    resource: str
    details: Optional[str] = None
    ip_address: str
    user_agent: str
    status: AuditStatus
    timestamp: datetime

    model_config = {"from_attributes": True}


class SecurityEventEntry(BaseModel):
    """Security event as returned by GET /api/admin/security-events."""
    id: str
    event_type: str
    user_id: Optional[str] = None
    user_email: Optional[str] = None
    ip_address: str
    user_agent: str
    details: Optional[str] = None
    severity: Severity
    timestamp: datetime

    model_config = {"from_attributes": True}


class AuditLogPage(BaseModel):
    audit_logs: List[AuditLogEntry] = PydanticField(default_factory=list)
    pagination: Pagination


class SecurityEventPage(BaseModel):
    security_events: List[SecurityEventEntry] = PydanticField(default_factory=list)
    pagination: Pagination
