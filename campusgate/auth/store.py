"""
CampusGate - Session Store

Read/write access to the single session record of each user.

Two implementations share one interface:
- SQLSessionStore: the user_sessions table (production)
- InMemorySessionStore: a dict keyed by user id (tests, single process dev)

Every clear writes all session-specific fields at once, so a logged-out
record never keeps a stale token, timestamp or fingerprint.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Dict, List, Optional

from sqlalchemy import update
from sqlmodel import Session as DBSession

from campusgate.auth.models import UserSession


@dataclass(frozen=True)
class SessionRecord:
    """Snapshot of a user's session row."""
    user_id: str
    session_token: Optional[str] = None
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    last_activity: Optional[datetime] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    is_logged_in: bool = False
    last_login_at: Optional[datetime] = None
    last_logout: Optional[datetime] = None

    def is_stale(self, now: datetime, inactive_before: datetime) -> bool:
        """Expired, or idle since before inactive_before."""
        if not self.is_logged_in:
            return False
        if self.expires_at is not None and self.expires_at < now:
            return True
        return self.last_activity is not None and self.last_activity < inactive_before


def _cleared(record: SessionRecord, at: datetime) -> SessionRecord:
    return SessionRecord(
        user_id=record.user_id,
        is_logged_in=False,
        last_login_at=record.last_login_at,
        last_logout=at,
    )


class SessionStore:
    """
    Interface for session persistence.

    Implementations may raise on storage failure; SessionManager turns
    those into safe negative results.
    """

    def get(self, user_id: str) -> Optional[SessionRecord]:
        raise NotImplementedError

    def open(
        self,
        user_id: str,
        session_token: str,
        created_at: datetime,
        expires_at: datetime,
        ip_address: str,
        user_agent: str,
    ) -> SessionRecord:
        """Write a fresh logged-in session, replacing whatever was stored."""
        raise NotImplementedError

    def clear(self, user_id: str, at: datetime, expected_token: Optional[str] = None) -> bool:
        """
        Log the user out.

        With expected_token, only a session holding that token is cleared,
        so a late termination cannot wipe a newer login.

        Returns:
            True if a logged-in session was cleared
        """
        raise NotImplementedError

    def touch(self, user_id: str, at: datetime) -> None:
        """Record activity on a logged-in session."""
        raise NotImplementedError

    def clear_stale(self, now: datetime, inactive_before: datetime) -> List[str]:
        """
        Clear every logged-in session that expired before now or has been
        idle since before inactive_before.

        Returns:
            User ids whose sessions were cleared
        """
        raise NotImplementedError


class InMemorySessionStore(SessionStore):
    """Dict-backed store; records are immutable snapshots."""

    def __init__(self):
        self._records: Dict[str, SessionRecord] = {}

    def get(self, user_id: str) -> Optional[SessionRecord]:
        return self._records.get(user_id)

    def open(self, user_id, session_token, created_at, expires_at, ip_address, user_agent):
        record = SessionRecord(
            user_id=user_id,
            session_token=session_token,
            created_at=created_at,
            expires_at=expires_at,
            last_activity=created_at,
            ip_address=ip_address,
            user_agent=user_agent,
            is_logged_in=True,
            last_login_at=created_at,
            last_logout=self._records[user_id].last_logout if user_id in self._records else None,
        )
        self._records[user_id] = record
        return record

    def clear(self, user_id, at, expected_token=None):
        record = self._records.get(user_id)
        if record is None:
            return False
        if expected_token is not None and record.session_token != expected_token:
            return False
        was_live = record.is_logged_in
        self._records[user_id] = _cleared(record, at)
        return was_live

    def touch(self, user_id, at):
        record = self._records.get(user_id)
        if record is not None and record.is_logged_in:
            self._records[user_id] = replace(record, last_activity=at)

    def clear_stale(self, now, inactive_before):
        stale = [
            user_id for user_id, record in self._records.items()
            if record.is_stale(now, inactive_before)
        ]
        for user_id in stale:
            self._records[user_id] = _cleared(self._records[user_id], now)
        return stale

    def all(self) -> List[SessionRecord]:
        return list(self._records.values())


def _to_record(row: UserSession) -> SessionRecord:
    return SessionRecord(
        user_id=row.user_id,
        session_token=row.session_token,
        created_at=row.created_at,
        expires_at=row.expires_at,
        last_activity=row.last_activity,
        ip_address=row.ip_address,
        user_agent=row.user_agent,
        is_logged_in=row.is_logged_in,
        last_login_at=row.last_login_at,
        last_logout=row.last_logout,
    )


def _cleared_values(at: datetime) -> dict:
    return {
        "session_token": None,
        "created_at": None,
        "expires_at": None,
        "last_activity": None,
        "ip_address": None,
        "user_agent": None,
        "is_logged_in": False,
        "last_logout": at,
    }


def _clear_row(row: UserSession, at: datetime) -> None:
    for field, value in _cleared_values(at).items():
        setattr(row, field, value)


class SQLSessionStore(SessionStore):
    """user_sessions table accessed through SQLModel sessions."""

    def __init__(self, session_factory: Callable[[], DBSession]):
        self._session_factory = session_factory

    def get(self, user_id: str) -> Optional[SessionRecord]:
        with self._session_factory() as db:
            row = db.get(UserSession, user_id)
            return _to_record(row) if row else None

    def open(self, user_id, session_token, created_at, expires_at, ip_address, user_agent):
        with self._session_factory() as db:
            row = db.get(UserSession, user_id)
            if row is None:
                row = UserSession(user_id=user_id)
            row.session_token = session_token
            row.created_at = created_at
            row.expires_at = expires_at
            row.last_activity = created_at
            row.ip_address = ip_address
            row.user_agent = user_agent
            row.is_logged_in = True
            row.last_login_at = created_at
            db.add(row)
            db.commit()
            db.refresh(row)
            return _to_record(row)

    def clear(self, user_id, at, expected_token=None):
        with self._session_factory() as db:
            row = db.get(UserSession, user_id)
            if row is None:
                return False
            if expected_token is not None and row.session_token != expected_token:
                return False
            was_live = row.is_logged_in
            _clear_row(row, at)
            db.add(row)
            db.commit()
            return was_live

    def touch(self, user_id, at):
        with self._session_factory() as db:
            row = db.get(UserSession, user_id)
            if row is None or not row.is_logged_in:
                return
            row.last_activity = at
            db.add(row)
            db.commit()

    def clear_stale(self, now, inactive_before):
        # Single conditional UPDATE; a row re-opened by a login mid-sweep no
        # longer matches and is left alone
        statement = (
            update(UserSession)
            .where(
                UserSession.is_logged_in == True,  # noqa: E712
                (UserSession.expires_at < now) | (UserSession.last_activity < inactive_before),
            )
            .values(**_cleared_values(now))
            .returning(UserSession.user_id)
        )
        with self._session_factory() as db:
            cleared = list(db.connection().execute(statement).scalars())
            db.commit()
            return cleared
