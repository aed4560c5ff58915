"""
CampusGate - SQL Session Store and Audit Sink Tests

Same behaviour as the in-memory store, against SQLite via SQLModel.

Run with: pytest tests/test_sql_store.py -v
"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import event
from sqlmodel import select

from campusgate.audit.models import AuditLog, AuditStatus, SecurityEvent, Severity
from campusgate.audit.sink import SQLAuditSink
from campusgate.auth.database import get_engine, get_session_factory, init_db
from campusgate.auth.models import User, UserSession
from campusgate.auth.store import SQLSessionStore


T0 = datetime(2026, 1, 15, 9, 0, 0)


@pytest.fixture
def engine():
    engine = get_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def factory(engine):
    return get_session_factory(engine)


@pytest.fixture
def sql_store(factory):
    with factory() as db:
        for user_id in ("u1", "u2", "u3"):
            db.add(User(id=user_id, email=f"{user_id}@college.test", password_hash="x"))
        db.commit()
    return SQLSessionStore(factory)


def _open(store, user_id, token, at, minutes=60):
    return store.open(user_id, token, at, at + timedelta(minutes=minutes), "1.2.3.4", "Chrome")


class TestSQLSessionStore:

    def test_open_and_get(self, sql_store):
        _open(sql_store, "u1", "a" * 64, T0)

        record = sql_store.get("u1")
        assert record.is_logged_in is True
        assert record.session_token == "a" * 64
        assert record.last_activity == T0
        assert record.expires_at == T0 + timedelta(minutes=60)

    def test_get_missing_user(self, sql_store):
        assert sql_store.get("nobody") is None

    def test_reopen_replaces_token(self, sql_store):
        _open(sql_store, "u1", "a" * 64, T0)
        _open(sql_store, "u1", "b" * 64, T0 + timedelta(minutes=5))

        assert sql_store.get("u1").session_token == "b" * 64

    def test_clear_resets_every_session_field(self, sql_store):
        _open(sql_store, "u1", "a" * 64, T0)
        at = T0 + timedelta(minutes=10)

        assert sql_store.clear("u1", at) is True

        record = sql_store.get("u1")
        assert record.is_logged_in is False
        assert record.session_token is None
        assert record.created_at is None
        assert record.expires_at is None
        assert record.last_activity is None
        assert record.ip_address is None
        assert record.user_agent is None
        assert record.last_logout == at
        assert record.last_login_at == T0

    def test_clear_with_stale_token_is_refused(self, sql_store):
        _open(sql_store, "u1", "b" * 64, T0)

        assert sql_store.clear("u1", T0, expected_token="a" * 64) is False
        assert sql_store.get("u1").is_logged_in is True

    def test_touch(self, sql_store):
        _open(sql_store, "u1", "a" * 64, T0)
        sql_store.touch("u1", T0 + timedelta(minutes=7))

        assert sql_store.get("u1").last_activity == T0 + timedelta(minutes=7)

    def test_clear_stale_in_one_batch(self, sql_store, factory):
        _open(sql_store, "u1", "a" * 64, T0)                          # expired
        _open(sql_store, "u2", "b" * 64, T0, minutes=600)             # idle
        _open(sql_store, "u3", "c" * 64, T0 + timedelta(minutes=50))  # fresh

        now = T0 + timedelta(minutes=70)
        cleared = sql_store.clear_stale(now, now - timedelta(minutes=60))

        assert sorted(cleared) == ["u1", "u2"]
        assert sql_store.get("u3").is_logged_in is True

        with factory() as db:
            live = db.exec(select(UserSession).where(UserSession.is_logged_in == True)).all()  # noqa: E712
            assert [row.user_id for row in live] == ["u3"]

    def test_clear_stale_is_a_single_conditional_update(self, sql_store, engine):
        _open(sql_store, "u1", "a" * 64, T0)
        _open(sql_store, "u2", "b" * 64, T0 + timedelta(minutes=50))

        statements = []

        def capture(conn, cursor, statement, parameters, context, executemany):
            statements.append(statement.strip().upper())

        event.listen(engine, "before_cursor_execute", capture)
        try:
            now = T0 + timedelta(minutes=70)
            cleared = sql_store.clear_stale(now, now - timedelta(minutes=60))
        finally:
            event.remove(engine, "before_cursor_execute", capture)

        assert cleared == ["u1"]
        assert not [s for s in statements if s.startswith("SELECT")]
        updates = [s for s in statements if s.startswith("UPDATE")]
        assert len(updates) == 1
        assert "EXPIRES_AT <" in updates[0]
        assert "RETURNING" in updates[0]

    def test_clear_stale_resets_every_session_field(self, sql_store):
        _open(sql_store, "u1", "a" * 64, T0)
        now = T0 + timedelta(minutes=70)

        sql_store.clear_stale(now, now - timedelta(minutes=60))

        record = sql_store.get("u1")
        assert record.is_logged_in is False
        assert record.session_token is None
        assert record.expires_at is None
        assert record.ip_address is None
        assert record.last_logout == now
        assert record.last_login_at == T0


class TestSQLAuditSink:

    async def test_writes_audit_and_security_rows(self, factory):
        sink = SQLAuditSink(factory)

        await sink.log_audit_event(
            action="SESSION_CREATED",
            resource="USER_SESSION",
            ip_address="1.2.3.4",
            user_agent="Chrome",
            user_id="u1",
            session_id="abcdefghijklmnop",
        )
        await sink.log_security_event(
            event_type="POTENTIAL_SESSION_HIJACKING",
            severity=Severity.CRITICAL,
            ip_address="9.9.9.9",
            user_agent="curl",
            user_id="u1",
        )

        with factory() as db:
            log = db.exec(select(AuditLog)).one()
            event = db.exec(select(SecurityEvent)).one()

        assert log.session_id == "abcdefgh"
        assert log.status == AuditStatus.SUCCESS
        assert event.severity == Severity.CRITICAL
        assert event.ip_address == "9.9.9.9"

    async def test_write_failure_is_swallowed(self):
        def broken_factory():
            raise RuntimeError("no database")

        sink = SQLAuditSink(broken_factory)

        await sink.log_audit_event(action="LOGIN_SUCCESS", resource="AUTHENTICATION")
        await sink.log_security_event("ACCOUNT_LOCKED", Severity.HIGH)
