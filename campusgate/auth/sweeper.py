"""
CampusGate - Session Cleanup Sweeper

Finds every logged-in session that has expired or gone idle and clears
them in one batch. Run it from cron (scripts/cleanup_sessions.py), from
the admin endpoint, or as a background task inside the app.

Safe to run alongside live traffic: it only ever moves a session from
logged-in to logged-out, and clearing an already cleared record is a no-op.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Callable

from campusgate.audit.models import AuditStatus
from campusgate.audit.sink import AuditSink
from campusgate.auth.store import SessionStore
from campusgate.logging import get_logger


logger = get_logger(__name__)


class SessionSweeper:
    def __init__(
        self,
        store: SessionStore,
        audit: AuditSink,
        activity_timeout: timedelta,
        clock: Callable[[], datetime],
    ):
        self.store = store
        self.audit = audit
        self.activity_timeout = activity_timeout
        self.clock = clock

    async def sweep(self) -> int:
        """
        Clear expired or inactive sessions.

        Returns:
            Number of sessions cleared (0 on storage failure)
        """
        now = self.clock()
        try:
            cleared = self.store.clear_stale(now, now - self.activity_timeout)
        except Exception as e:
            logger.error("session_cleanup_failed", error=str(e))
            return 0

        if cleared:
            await self.audit.log_audit_event(
                action="BULK_SESSION_CLEANUP",
                resource="USER_SESSION",
                details=f"Cleaned up {len(cleared)} expired sessions",
                ip_address="system",
                user_agent="system",
                status=AuditStatus.SUCCESS,
            )
            logger.info("session_cleanup_completed", cleared=len(cleared))

        return len(cleared)

    async def run_forever(self, interval_seconds: float) -> None:
        """Sweep every interval_seconds until cancelled."""
        logger.info("session_sweeper_started", interval_seconds=interval_seconds)
        while True:
            await asyncio.sleep(interval_seconds)
            await self.sweep()
