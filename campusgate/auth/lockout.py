"""
CampusGate - Account Lockout

Counts failed logins per account and locks the account once
MAX_LOGIN_ATTEMPTS failures land inside the attempt window.
Each successive lockout doubles the lock duration, capped at
LOCKOUT_MAX_HOURS.
"""

import math
from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel
from sqlmodel import Session as DBSession

from campusgate.auth.models import User
from campusgate.config import settings


class LockStatus(BaseModel):
    is_locked: bool
    failed_attempts: int
    max_attempts: int
    lockout_count: int = 0
    locked_until: Optional[datetime] = None
    remaining_seconds: Optional[int] = None


def get_lockout_duration(lockout_count: int) -> timedelta:
    """30 min, 60 min, 120 min, ... never more than the configured maximum."""
    base = timedelta(minutes=settings.LOCKOUT_BASE_MINUTES)
    cap = timedelta(hours=settings.LOCKOUT_MAX_HOURS)
    return min(base * (2 ** max(lockout_count - 1, 0)), cap)


def _status(user: User, now: datetime) -> LockStatus:
    remaining = None
    if user.is_locked and user.locked_until:
        remaining = max(0, math.ceil((user.locked_until - now).total_seconds()))
    return LockStatus(
        is_locked=user.is_locked,
        failed_attempts=user.failed_login_attempts,
        max_attempts=settings.MAX_LOGIN_ATTEMPTS,
        lockout_count=user.lockout_count,
        locked_until=user.locked_until if user.is_locked else None,
        remaining_seconds=remaining,
    )


def check_lock_status(db: DBSession, user: User, now: datetime) -> LockStatus:
    """
    Current lock state, releasing locks that have run out and forgetting
    failures older than the attempt window.
    """
    changed = False

    if user.is_locked and user.locked_until and now >= user.locked_until:
        user.is_locked = False
        user.locked_until = None
        user.failed_login_attempts = 0
        changed = True

    window = timedelta(minutes=settings.ATTEMPT_WINDOW_MINUTES)
    if (
        not user.is_locked
        and user.failed_login_attempts
        and user.last_failed_login_at
        and now - user.last_failed_login_at > window
    ):
        user.failed_login_attempts = 0
        changed = True

    if changed:
        db.add(user)
        db.commit()
        db.refresh(user)

    return _status(user, now)


def record_failed_login(db: DBSession, user: User, now: datetime) -> LockStatus:
    """Count a failure; lock the account when the maximum is reached."""
    check_lock_status(db, user, now)

    user.failed_login_attempts += 1
    user.last_failed_login_at = now
    if user.failed_login_attempts >= settings.MAX_LOGIN_ATTEMPTS:
        user.lockout_count += 1
        user.is_locked = True
        user.locked_until = now + get_lockout_duration(user.lockout_count)

    db.add(user)
    db.commit()
    db.refresh(user)
    return _status(user, now)


def record_successful_login(db: DBSession, user: User) -> None:
    if user.failed_login_attempts or user.is_locked:
        user.failed_login_attempts = 0
        user.last_failed_login_at = None
        user.is_locked = False
        user.locked_until = None
        db.add(user)
        db.commit()
