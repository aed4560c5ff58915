"""
CampusGate - Admin API Routes

Endpoints for the security team:
- Audit log viewing
- Security event viewing
- Session cleanup (manual, and scheduled via a shared secret)

Admin routes require SBTE_ADMIN or EDUCATION_DEPARTMENT. The request gate
enforces this through the route table; handlers check it again.
"""

from datetime import datetime, timezone
from typing import Optional
import math
import secrets

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
from pydantic import BaseModel
from sqlalchemy import func
from sqlmodel import col, select

from campusgate.audit.models import (
    AuditLog,
    AuditLogEntry,
    AuditLogPage,
    AuditStatus,
    Pagination,
    SecurityEvent,
    SecurityEventEntry,
    SecurityEventPage,
    Severity,
)
from campusgate.auth.dependencies import (
    AuthenticatedUser,
    get_current_user,
    get_db,
    get_session_manager,
    require_role,
)
from campusgate.auth.models import Role
from campusgate.config import settings
from campusgate.gateway.identity import get_client_ip, get_user_agent
from campusgate.logging import get_logger


logger = get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])

# Called by the scheduler, authenticated by CLEANUP_SECRET instead of a user
cron_router = APIRouter(prefix="/cron", tags=["admin"])


# =============================================================================
# Request/Response Models
# =============================================================================

class CleanupResponse(BaseModel):
    success: bool
    cleaned_sessions: int
    timestamp: datetime


# =============================================================================
# Helpers
# =============================================================================

def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Stored timestamps are naive UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _paginate(db, statement, count_statement, page: int, limit: int):
    total = db.exec(count_statement).one()
    rows = db.exec(statement.offset((page - 1) * limit).limit(limit)).all()
    pagination = Pagination(
        page=page,
        limit=limit,
        total=total,
        pages=math.ceil(total / limit) if total else 0,
    )
    return rows, pagination


# =============================================================================
# Audit Log Endpoints
# =============================================================================

@router.get("/audit-logs", response_model=AuditLogPage, summary="Get Audit Logs")
@require_role(Role.SBTE_ADMIN, Role.EDUCATION_DEPARTMENT)
async def get_audit_logs(
    request: Request,
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(50, ge=1, le=100, description="Items per page"),
    action: Optional[str] = Query(None, max_length=64, description="Action contains"),
    filter_user_id: Optional[str] = Query(None, alias="userId", description="Filter by user ID"),
    audit_status: Optional[AuditStatus] = Query(None, alias="status"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    user: AuthenticatedUser = Depends(get_current_user),
):
    """
    Audit trail, newest first. Supports pagination and filtering.
    """
    start_date, end_date = _naive_utc(start_date), _naive_utc(end_date)
    conditions = []
    if action:
        conditions.append(func.lower(col(AuditLog.action)).contains(action.lower()))
    if filter_user_id:
        conditions.append(col(AuditLog.user_id) == filter_user_id)
    if audit_status:
        conditions.append(col(AuditLog.status) == audit_status)
    if start_date:
        conditions.append(col(AuditLog.timestamp) >= start_date)
    if end_date:
        conditions.append(col(AuditLog.timestamp) <= end_date)

    statement = select(AuditLog).where(*conditions).order_by(col(AuditLog.timestamp).desc())
    count_statement = select(func.count()).select_from(AuditLog).where(*conditions)

    db = get_db(request)
    try:
        rows, pagination = _paginate(db, statement, count_statement, page, limit)
    finally:
        db.close()

    return AuditLogPage(
        audit_logs=[AuditLogEntry.model_validate(r) for r in rows],
        pagination=pagination,
    )


@router.get("/security-events", response_model=SecurityEventPage, summary="Get Security Events")
@require_role(Role.SBTE_ADMIN, Role.EDUCATION_DEPARTMENT)
async def get_security_events(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    event_type: Optional[str] = Query(None, alias="eventType", max_length=64),
    severity: Optional[Severity] = Query(None),
    filter_user_id: Optional[str] = Query(None, alias="userId"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    user: AuthenticatedUser = Depends(get_current_user),
):
    start_date, end_date = _naive_utc(start_date), _naive_utc(end_date)
    conditions = []
    if event_type:
        conditions.append(func.lower(col(SecurityEvent.event_type)).contains(event_type.lower()))
    if severity:
        conditions.append(col(SecurityEvent.severity) == severity)
    if filter_user_id:
        conditions.append(col(SecurityEvent.user_id) == filter_user_id)
    if start_date:
        conditions.append(col(SecurityEvent.timestamp) >= start_date)
    if end_date:
        conditions.append(col(SecurityEvent.timestamp) <= end_date)

    statement = (
        select(SecurityEvent)
        .where(*conditions)
        .order_by(col(SecurityEvent.timestamp).desc())
    )
    count_statement = select(func.count()).select_from(SecurityEvent).where(*conditions)

    db = get_db(request)
    try:
        rows, pagination = _paginate(db, statement, count_statement, page, limit)
    finally:
        db.close()

    return SecurityEventPage(
        security_events=[SecurityEventEntry.model_validate(r) for r in rows],
        pagination=pagination,
    )


# =============================================================================
# Session Cleanup Endpoints
# =============================================================================

@router.get("/session-cleanup", response_model=CleanupResponse, summary="Run Session Cleanup")
@require_role(Role.SBTE_ADMIN, Role.EDUCATION_DEPARTMENT)
async def manual_session_cleanup(
    request: Request,
    user: AuthenticatedUser = Depends(get_current_user),
):
    """Sweep expired and idle sessions now."""
    manager = get_session_manager(request)
    cleaned = await manager.cleanup_expired_sessions()

    await manager.audit.log_audit_event(
        action="MANUAL_SESSION_CLEANUP",
        resource="USER_SESSION",
        details=f"Manual cleanup removed {cleaned} sessions",
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
        status=AuditStatus.SUCCESS,
        user_id=user.user_id,
    )

    return CleanupResponse(success=True, cleaned_sessions=cleaned, timestamp=manager.clock())


@cron_router.post("/session-cleanup", response_model=CleanupResponse, summary="Scheduled Session Cleanup")
async def scheduled_session_cleanup(
    request: Request,
    authorization: Optional[str] = Header(None),
):
    """
    Entry point for an external scheduler.

    Requires `Authorization: Bearer <CLEANUP_SECRET>`; rejected outright
    when no secret is configured.
    """
    expected = settings.CLEANUP_SECRET
    scheme, _, presented = (authorization or "").partition(" ")
    if (
        not expected
        or scheme.lower() != "bearer"
        or not secrets.compare_digest(presented.strip().encode(), expected.encode())
    ):
        logger.warning("cleanup_secret_rejected", ip_address=get_client_ip(request))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )

    manager = get_session_manager(request)
    cleaned = await manager.cleanup_expired_sessions()

    await manager.audit.log_audit_event(
        action="SCHEDULED_SESSION_CLEANUP",
        resource="USER_SESSION",
        details=f"Scheduled cleanup removed {cleaned} sessions",
        ip_address=get_client_ip(request),
        user_agent="cron-job",
        status=AuditStatus.SUCCESS,
    )

    return CleanupResponse(success=True, cleaned_sessions=cleaned, timestamp=manager.clock())
