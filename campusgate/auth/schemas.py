"""
CampusGate - Authentication Request/Response Schemas

Pydantic models for API request validation and response serialization.
Separates API contracts from database models.
"""

from datetime import datetime
from typing import List, Optional
import re

from pydantic import BaseModel, Field, field_validator


EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9_.+-]+@[a-zA-Z0-9-]+\.[a-zA-Z0-9-.]+$")


def _normalize_email(v: str) -> str:
    """Basic email format validation (allows .local for development)."""
    v = v.strip()
    if not EMAIL_PATTERN.match(v):
        raise ValueError("Invalid email format")
    return v.lower()


class LoginRequest(BaseModel):
    """Request body for POST /auth/login."""
    email: str = Field(..., description="User email address")
    password: str = Field(..., min_length=1, max_length=128, description="User password")

    @field_validator("email")
    @classmethod
    def email_format(cls, v):
        return _normalize_email(v)


class LoginResponse(BaseModel):
    """Response body for successful login."""
    access_token: str = Field(..., description="Signed identity token")
    token_type: str = Field(default="bearer", description="Token type")
    expires_in: int = Field(..., description="Seconds until token expires")
    session_expires_at: datetime = Field(..., description="Absolute session expiry (UTC)")
    user_id: str
    role: str


class LogoutResponse(BaseModel):
    message: str = Field(default="Logged out")


class SessionValidationResponse(BaseModel):
    """Response body for GET /auth/session-validation."""
    valid: bool
    reason: Optional[str] = Field(default=None, description="Why validation failed")


class EmailRequest(BaseModel):
    """Request body carrying only an email (active-session and lock checks)."""
    email: str

    @field_validator("email")
    @classmethod
    def email_format(cls, v):
        return _normalize_email(v)


class ActiveSessionResponse(BaseModel):
    has_active_session: bool
    last_activity: Optional[datetime] = None


class TerminateSessionsRequest(BaseModel):
    user_id: str = Field(..., min_length=1)


class TerminateSessionsResponse(BaseModel):
    terminated: bool
    message: str


class LockStatusResponse(BaseModel):
    """Response body for POST /auth/check-lock-status."""
    is_locked: bool
    failed_attempts: int
    max_attempts: int
    locked_until: Optional[datetime] = None
    remaining_seconds: Optional[int] = None


class UserResponse(BaseModel):
    """Response body for GET /auth/me."""
    id: str
    email: str
    role: str
    college_id: Optional[str] = None
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class SessionInfoResponse(BaseModel):
    """Session information for listing."""
    created_at: datetime
    expires_at: datetime
    last_activity: Optional[datetime] = None
    ip_address: str
    user_agent: str
    is_current: bool = False


class ActiveSessionsResponse(BaseModel):
    """Response body for GET /auth/sessions."""
    sessions: List[SessionInfoResponse]
    total: int


class ErrorResponse(BaseModel):
    """Standard error response."""
    detail: str
