#!/usr/bin/env python3
"""
Run one session cleanup sweep against DATABASE_URL.

For deployments that schedule cleanup with the system cron instead of
calling POST /api/cron/session-cleanup.

Usage: python -m scripts.cleanup_sessions
"""

import asyncio
import sys

from rich import print as rprint

from campusgate.audit.sink import SQLAuditSink
from campusgate.auth.database import get_engine, get_session_factory, init_db
from campusgate.auth.sessions import SessionManager
from campusgate.auth.store import SQLSessionStore
from campusgate.config import settings


async def run_cleanup() -> int:
    engine = get_engine(settings.DATABASE_URL)
    init_db(engine)
    factory = get_session_factory(engine)

    manager = SessionManager(SQLSessionStore(factory), SQLAuditSink(factory))
    try:
        return await manager.cleanup_expired_sessions()
    finally:
        engine.dispose()


if __name__ == "__main__":
    try:
        cleaned = asyncio.run(run_cleanup())
    except KeyboardInterrupt:
        sys.exit(130)

    if cleaned:
        rprint(f"[green]Cleaned up {cleaned} stale sessions.[/green]")
    else:
        rprint("[dim]No stale sessions.[/dim]")
