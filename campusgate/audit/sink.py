"""
CampusGate - Audit Event Sink

Append-only writer for audit and security events.

Writes are best-effort: a failing sink is reported to local diagnostics
and swallowed, so a broken audit store can never lock users out or abort
the operation being audited.
"""

from typing import Callable, List, Optional

from sqlmodel import Session as DBSession

from campusgate.audit.models import AuditLog, AuditStatus, SecurityEvent, Severity
from campusgate.logging import get_logger


logger = get_logger(__name__)

# Only this many characters of a session token are ever recorded
TOKEN_PREFIX_LENGTH = 8


def token_prefix(token: Optional[str]) -> Optional[str]:
    if not token:
        return None
    return token[:TOKEN_PREFIX_LENGTH]


class AuditSink:
    """
    Base sink. Subclasses implement _append_audit / _append_security.

    Usage:
        sink = SQLAuditSink(session_factory)
        await sink.log_security_event(
            "POTENTIAL_SESSION_HIJACKING", Severity.CRITICAL,
            ip_address="9.9.9.9", user_agent="curl", user_id=user_id,
        )
    """

    async def log_audit_event(
        self,
        action: str,
        resource: str,
        ip_address: str = "unknown",
        user_agent: str = "unknown",
        status: AuditStatus = AuditStatus.SUCCESS,
        user_id: Optional[str] = None,
        user_email: Optional[str] = None,
        details: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> None:
        try:
            entry = AuditLog(
                user_id=user_id,
                user_email=user_email,
                action=action,
                resource=resource,
                details=details,
                ip_address=ip_address or "unknown",
                user_agent=(user_agent or "unknown")[:512],
                status=status,
                session_id=token_prefix(session_id),
            )
            self._append_audit(entry)
        except Exception as e:
            logger.error("audit_write_failed", action=action, user_id=user_id, error=str(e))

    async def log_security_event(
        self,
        event_type: str,
        severity: Severity,
        ip_address: str = "unknown",
        user_agent: str = "unknown",
        user_id: Optional[str] = None,
        user_email: Optional[str] = None,
        details: Optional[str] = None,
    ) -> None:
        try:
            entry = SecurityEvent(
                event_type=event_type,
                user_id=user_id,
                user_email=user_email,
                ip_address=ip_address or "unknown",
                user_agent=(user_agent or "unknown")[:512],
                details=details,
                severity=severity,
            )
            self._append_security(entry)
        except Exception as e:
            logger.error(
                "security_event_write_failed",
                event_type=event_type,
                user_id=user_id,
                error=str(e),
            )

    def _append_audit(self, entry: AuditLog) -> None:
        raise NotImplementedError

    def _append_security(self, entry: SecurityEvent) -> None:
        raise NotImplementedError


class SQLAuditSink(AuditSink):
    """Persists events to the audit_logs / security_events tables."""

    def __init__(self, session_factory: Callable[[], DBSession]):
        self._session_factory = session_factory

    def _append(self, row) -> None:
        with self._session_factory() as db:
            db.add(row)
            db.commit()

    def _append_audit(self, entry: AuditLog) -> None:
        self._append(entry)

    def _append_security(self, entry: SecurityEvent) -> None:
        self._append(entry)


class MemoryAuditSink(AuditSink):
    """Keeps events in lists. Used by tests and when no database is wired."""

    def __init__(self):
        self.audit_logs: List[AuditLog] = []
        self.security_events: List[SecurityEvent] = []

    def _append_audit(self, entry: AuditLog) -> None:
        self.audit_logs.append(entry)

    def _append_security(self, entry: SecurityEvent) -> None:
        self.security_events.append(entry)

    def actions(self) -> List[str]:
        return [e.action for e in self.audit_logs]

    def event_types(self) -> List[str]:
        return [e.event_type for e in self.security_events]
