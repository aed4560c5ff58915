"""
CampusGate - Session Lifecycle

Server-side sessions with a single live session per user.

Security:
- A new login supersedes the previous session before the new one is written
- Sessions expire a fixed time after creation, whatever the activity
- Sessions also end after a period of inactivity (sliding window)
- The origin fingerprint (IP + user agent) is fixed at login; any drift
  terminates the session as a suspected hijack
- Termination is final; the only way back is a fresh login

Failure policy:
- Validation fails closed: storage errors mean "invalid"
- Audit writes fail open: they are logged locally and never raised
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, List, Optional
import secrets

from pydantic import BaseModel

from campusgate.audit.models import AuditStatus, Severity
from campusgate.audit.sink import AuditSink
from campusgate.auth.models import utcnow
from campusgate.auth.store import SessionRecord, SessionStore
from campusgate.auth.sweeper import SessionSweeper
from campusgate.auth.tokens import generate_session_token
from campusgate.config import settings
from campusgate.logging import get_logger


logger = get_logger(__name__)

RESOURCE = "USER_SESSION"


class SessionRejection(str, Enum):
    """Why a session failed validation. Values are shown to the UI."""
    NOT_LOGGED_IN = "not logged in"
    INVALID_TOKEN = "invalid token"
    EXPIRED = "expired"
    INACTIVE = "inactivity timeout"
    SECURITY_VIOLATION = "security violation"
    VALIDATION_ERROR = "validation error"


class SessionValidation(BaseModel):
    valid: bool
    reason: Optional[SessionRejection] = None

    @classmethod
    def ok(cls) -> "SessionValidation":
        return cls(valid=True)

    @classmethod
    def reject(cls, reason: SessionRejection) -> "SessionValidation":
        return cls(valid=False, reason=reason)


class SessionInfo(BaseModel):
    """A live session as handed back to callers."""
    session_token: str
    created_at: datetime
    expires_at: datetime
    ip_address: str
    user_agent: str
    last_activity: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: SessionRecord) -> "SessionInfo":
        return cls(
            session_token=record.session_token,
            created_at=record.created_at,
            expires_at=record.expires_at,
            ip_address=record.ip_address or "unknown",
            user_agent=record.user_agent or "unknown",
            last_activity=record.last_activity,
        )


def _tokens_match(stored: str, presented: Optional[str]) -> bool:
    if not presented:
        return False
    return secrets.compare_digest(stored.encode("utf-8"), presented.encode("utf-8"))


class SessionManager:
    """
    Creates, validates and terminates user sessions.

    Usage:
        manager = SessionManager(SQLSessionStore(factory), SQLAuditSink(factory))
        info = await manager.create_session(user.id, ip, user_agent)
        result = await manager.validate_session(user.id, info.session_token, ip, user_agent)
    """

    def __init__(
        self,
        store: SessionStore,
        audit: AuditSink,
        session_duration: Optional[timedelta] = None,
        activity_timeout: Optional[timedelta] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.audit = audit
        self.session_duration = session_duration or timedelta(
            minutes=settings.SESSION_DURATION_MINUTES
        )
        self.activity_timeout = activity_timeout or timedelta(
            minutes=settings.ACTIVITY_TIMEOUT_MINUTES
        )
        self.clock = clock
        self.sweeper = SessionSweeper(store, audit, self.activity_timeout, clock)

    async def create_session(
        self,
        user_id: str,
        ip_address: str,
        user_agent: str,
        terminate_others: bool = True,
    ) -> Optional[SessionInfo]:
        """
        Start a new session for a user whose credentials were just verified.

        Returns:
            SessionInfo, or None if the session could not be stored. Callers
            must treat None as a failed login.
        """
        if terminate_others:
            await self.terminate_all_user_sessions(user_id, ip_address, user_agent)

        try:
            session_token = generate_session_token()
            now = self.clock()
            record = self.store.open(
                user_id=user_id,
                session_token=session_token,
                created_at=now,
                expires_at=now + self.session_duration,
                ip_address=ip_address,
                user_agent=user_agent,
            )
        except Exception as e:
            logger.error("session_create_failed", user_id=user_id, error=str(e))
            return None

        await self.audit.log_audit_event(
            action="SESSION_CREATED",
            resource=RESOURCE,
            details=f"New session created with token: {session_token[:8]}...",
            ip_address=ip_address,
            user_agent=user_agent,
            status=AuditStatus.SUCCESS,
            user_id=user_id,
            session_id=session_token,
        )
        logger.info("session_created", user_id=user_id, expires_at=record.expires_at.isoformat())

        return SessionInfo.from_record(record)

    async def validate_session(
        self,
        user_id: str,
        presented_token: Optional[str],
        ip_address: str,
        user_agent: str,
    ) -> SessionValidation:
        """
        Check a presented session token, first failure wins:

        1. no live session          -> not logged in
        2. token differs            -> invalid token (session left alone)
        3. past expires_at          -> expired (terminated)
        4. idle past the timeout    -> inactivity timeout (terminated)
        5. IP or user agent changed -> security violation (terminated)

        A valid session gets its last_activity bumped.
        """
        try:
            return await self._validate(user_id, presented_token, ip_address, user_agent)
        except Exception as e:
            logger.error("session_validation_failed", user_id=user_id, error=str(e))
            return SessionValidation.reject(SessionRejection.VALIDATION_ERROR)

    async def _validate(self, user_id, presented_token, ip_address, user_agent) -> SessionValidation:
        record = self.store.get(user_id)

        if record is None or not record.is_logged_in or not record.session_token:
            return SessionValidation.reject(SessionRejection.NOT_LOGGED_IN)

        if not _tokens_match(record.session_token, presented_token):
            await self.audit.log_security_event(
                event_type="INVALID_SESSION_TOKEN",
                severity=Severity.HIGH,
                ip_address=ip_address,
                user_agent=user_agent,
                user_id=user_id,
                details="Session token mismatch detected",
            )
            return SessionValidation.reject(SessionRejection.INVALID_TOKEN)

        now = self.clock()

        if record.expires_at is None or now >= record.expires_at:
            await self.terminate_session(
                user_id, ip_address, user_agent, "Session expired",
                session_token=record.session_token,
            )
            return SessionValidation.reject(SessionRejection.EXPIRED)

        if record.last_activity is None or now - record.last_activity > self.activity_timeout:
            await self.terminate_session(
                user_id, ip_address, user_agent, "Session timed out due to inactivity",
                session_token=record.session_token,
            )
            return SessionValidation.reject(SessionRejection.INACTIVE)

        if record.ip_address != ip_address or record.user_agent != user_agent:
            await self.audit.log_security_event(
                event_type="POTENTIAL_SESSION_HIJACKING",
                severity=Severity.CRITICAL,
                ip_address=ip_address,
                user_agent=user_agent,
                user_id=user_id,
                details=(
                    f"Session IP/UA change detected. "
                    f"Original: {record.ip_address}/{record.user_agent}, "
                    f"Current: {ip_address}/{user_agent}"
                ),
            )
            await self.terminate_session(
                user_id, ip_address, user_agent, "Potential session hijacking detected",
                session_token=record.session_token,
            )
            return SessionValidation.reject(SessionRejection.SECURITY_VIOLATION)

        await self.update_activity(user_id, now)
        return SessionValidation.ok()

    async def update_activity(self, user_id: str, at: Optional[datetime] = None) -> None:
        try:
            self.store.touch(user_id, at or self.clock())
        except Exception as e:
            logger.error("session_activity_update_failed", user_id=user_id, error=str(e))

    async def terminate_session(
        self,
        user_id: str,
        ip_address: str,
        user_agent: str,
        reason: Optional[str] = None,
        session_token: Optional[str] = None,
    ) -> None:
        """
        Log the user out. Idempotent and never raises.

        With session_token, only that session is cleared; a newer login that
        raced in after validation read the record survives.
        """
        try:
            cleared = self.store.clear(user_id, self.clock(), expected_token=session_token)
        except Exception as e:
            logger.error("session_terminate_failed", user_id=user_id, reason=reason, error=str(e))
            return

        if session_token is not None and not cleared:
            # The named session is already gone or was replaced by a newer login
            logger.info("session_terminate_skipped", user_id=user_id, reason=reason)
            return

        await self.audit.log_audit_event(
            action="SESSION_TERMINATED",
            resource=RESOURCE,
            details=reason or "Session terminated",
            ip_address=ip_address,
            user_agent=user_agent,
            status=AuditStatus.SUCCESS,
            user_id=user_id,
        )

    async def terminate_all_user_sessions(
        self,
        user_id: str,
        ip_address: str,
        user_agent: str,
        details: str = "Previous session terminated due to new login",
    ) -> bool:
        """
        Clear whatever session the user holds (single-session enforcement).

        Returns:
            True if a live session was terminated
        """
        try:
            cleared = self.store.clear(user_id, self.clock())
        except Exception as e:
            logger.error("session_terminate_all_failed", user_id=user_id, error=str(e))
            return False

        if cleared:
            await self.audit.log_security_event(
                event_type="CONCURRENT_SESSION_TERMINATED",
                severity=Severity.MEDIUM,
                ip_address=ip_address,
                user_agent=user_agent,
                user_id=user_id,
                details=details,
            )
        return cleared

    async def cleanup_expired_sessions(self) -> int:
        return await self.sweeper.sweep()

    async def get_session_info(self, user_id: str) -> Optional[SessionInfo]:
        try:
            record = self.store.get(user_id)
        except Exception as e:
            logger.error("session_info_failed", user_id=user_id, error=str(e))
            return None

        if record is None or not record.is_logged_in or not record.session_token:
            return None
        return SessionInfo.from_record(record)

    async def get_active_sessions(self, user_id: str) -> List[SessionInfo]:
        """At most one entry under the single-session policy."""
        info = await self.get_session_info(user_id)
        return [info] if info else []

    async def has_active_session(self, user_id: str) -> bool:
        """A logged-in session exists and has not passed its expiry."""
        info = await self.get_session_info(user_id)
        return info is not None and self.clock() < info.expires_at

    async def has_active_session_elsewhere(self, user_id: str, current_token: str) -> bool:
        info = await self.get_session_info(user_id)
        return info is not None and not _tokens_match(info.session_token, current_token)
