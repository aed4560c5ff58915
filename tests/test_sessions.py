"""
CampusGate - Session Lifecycle Test Suite

Covers the SessionManager against the in-memory store with a fake clock:
- Single live session per user
- Fixed expiry and sliding inactivity timeout
- Fingerprint pinning (hijack detection)
- Idempotent termination
- Fail-closed validation and fail-open auditing

Run with: pytest tests/test_sessions.py -v
"""

from datetime import timedelta

import pytest

from campusgate.audit.models import Severity
from campusgate.audit.sink import MemoryAuditSink
from campusgate.auth.sessions import SessionManager, SessionRejection
from campusgate.auth.store import InMemorySessionStore


USER = "user-1"
IP = "1.2.3.4"
UA = "Chrome"


# =============================================================================
# CREATION
# =============================================================================

class TestCreateSession:

    async def test_returns_info_with_fixed_expiry(self, manager, clock):
        info = await manager.create_session(USER, IP, UA)

        assert info is not None
        assert len(info.session_token) == 64
        assert info.created_at == clock.now
        assert info.expires_at == clock.now + timedelta(minutes=60)
        assert info.ip_address == IP
        assert info.user_agent == UA

    async def test_record_is_logged_in_with_activity_at_creation(self, manager, store, clock):
        info = await manager.create_session(USER, IP, UA)

        record = store.get(USER)
        assert record.is_logged_in is True
        assert record.session_token == info.session_token
        assert record.last_activity == clock.now
        assert record.last_login_at == clock.now

    async def test_audit_records_only_token_prefix(self, manager, audit):
        info = await manager.create_session(USER, IP, UA)

        created = [e for e in audit.audit_logs if e.action == "SESSION_CREATED"]
        assert len(created) == 1
        assert created[0].session_id == info.session_token[:8]
        assert info.session_token not in (created[0].details or "")

    async def test_tokens_are_unique(self, manager):
        tokens = {(await manager.create_session(USER, IP, UA)).session_token for _ in range(5)}
        assert len(tokens) == 5

    async def test_store_failure_returns_none(self, audit, clock):
        class BrokenStore(InMemorySessionStore):
            def open(self, *args, **kwargs):
                raise RuntimeError("database is down")

        manager = SessionManager(BrokenStore(), audit, clock=clock)

        assert await manager.create_session(USER, IP, UA) is None
        assert "SESSION_CREATED" not in audit.actions()


# =============================================================================
# SINGLE-SESSION INVARIANT
# =============================================================================

class TestSingleSession:

    async def test_new_login_supersedes_previous(self, manager, audit):
        """Scenario: concurrent login supersedes."""
        first = await manager.create_session(USER, IP, UA)
        second = await manager.create_session(USER, IP, UA)

        old = await manager.validate_session(USER, first.session_token, IP, UA)
        new = await manager.validate_session(USER, second.session_token, IP, UA)

        assert old.valid is False
        assert old.reason == SessionRejection.INVALID_TOKEN
        assert new.valid is True
        assert "CONCURRENT_SESSION_TERMINATED" in audit.event_types()

    async def test_only_last_of_many_logins_is_valid(self, manager):
        tokens = [(await manager.create_session(USER, IP, UA)).session_token for _ in range(4)]

        for token in tokens[:-1]:
            result = await manager.validate_session(USER, token, IP, UA)
            assert result.reason == SessionRejection.INVALID_TOKEN

        assert (await manager.validate_session(USER, tokens[-1], IP, UA)).valid is True

    async def test_first_login_does_not_report_supersession(self, manager, audit):
        await manager.create_session(USER, IP, UA)
        assert "CONCURRENT_SESSION_TERMINATED" not in audit.event_types()

    async def test_sessions_of_different_users_are_independent(self, manager):
        a = await manager.create_session("user-a", IP, UA)
        b = await manager.create_session("user-b", IP, UA)

        assert (await manager.validate_session("user-a", a.session_token, IP, UA)).valid
        assert (await manager.validate_session("user-b", b.session_token, IP, UA)).valid


# =============================================================================
# VALIDATION
# =============================================================================

class TestValidateSession:

    async def test_fresh_login_then_reuse(self, manager, audit):
        """Scenario: fresh login then reuse."""
        info = await manager.create_session(USER, IP, UA)

        assert (await manager.validate_session(USER, info.session_token, IP, UA)).valid is True

        result = await manager.validate_session(USER, "B", IP, UA)
        assert result.valid is False
        assert result.reason == SessionRejection.INVALID_TOKEN

        mismatch = [e for e in audit.security_events if e.event_type == "INVALID_SESSION_TOKEN"]
        assert mismatch and mismatch[0].severity == Severity.HIGH

    async def test_token_mismatch_leaves_session_alone(self, manager):
        info = await manager.create_session(USER, IP, UA)

        await manager.validate_session(USER, "not-the-token", IP, UA)

        assert (await manager.validate_session(USER, info.session_token, IP, UA)).valid is True

    async def test_unknown_user_is_not_logged_in(self, manager):
        result = await manager.validate_session("nobody", "x" * 64, IP, UA)
        assert result.reason == SessionRejection.NOT_LOGGED_IN

    async def test_missing_token_is_invalid(self, manager):
        await manager.create_session(USER, IP, UA)
        result = await manager.validate_session(USER, None, IP, UA)
        assert result.reason == SessionRejection.INVALID_TOKEN

    async def test_valid_request_bumps_last_activity(self, manager, store, clock):
        info = await manager.create_session(USER, IP, UA)
        clock.advance(minutes=10)

        await manager.validate_session(USER, info.session_token, IP, UA)

        assert store.get(USER).last_activity == clock.now


class TestExpiry:

    async def test_expired_exactly_at_expiry(self, manager, clock):
        info = await manager.create_session(USER, IP, UA)
        clock.advance(minutes=60)

        result = await manager.validate_session(USER, info.session_token, IP, UA)
        assert result.reason == SessionRejection.EXPIRED

    async def test_activity_does_not_extend_expiry(self, manager, clock):
        info = await manager.create_session(USER, IP, UA)

        for _ in range(5):
            clock.advance(minutes=11)
            assert (await manager.validate_session(USER, info.session_token, IP, UA)).valid

        clock.advance(minutes=5)  # 60 minutes after creation
        result = await manager.validate_session(USER, info.session_token, IP, UA)
        assert result.reason == SessionRejection.EXPIRED

    async def test_expired_session_is_terminated(self, manager, store, clock, audit):
        info = await manager.create_session(USER, IP, UA)
        clock.advance(hours=2)

        await manager.validate_session(USER, info.session_token, IP, UA)

        record = store.get(USER)
        assert record.is_logged_in is False
        assert record.session_token is None
        assert "SESSION_TERMINATED" in audit.actions()

        again = await manager.validate_session(USER, info.session_token, IP, UA)
        assert again.reason == SessionRejection.NOT_LOGGED_IN


class TestInactivity:

    @pytest.fixture
    def manager(self, store, audit, clock):
        return SessionManager(
            store,
            audit,
            session_duration=timedelta(hours=8),
            activity_timeout=timedelta(minutes=30),
            clock=clock,
        )

    async def test_idle_session_times_out_before_expiry(self, manager, clock):
        info = await manager.create_session(USER, IP, UA)
        clock.advance(minutes=31)

        result = await manager.validate_session(USER, info.session_token, IP, UA)

        assert clock.now < info.expires_at
        assert result.reason == SessionRejection.INACTIVE

    async def test_idle_exactly_at_timeout_is_still_valid(self, manager, clock):
        info = await manager.create_session(USER, IP, UA)
        clock.advance(minutes=30)

        assert (await manager.validate_session(USER, info.session_token, IP, UA)).valid

    async def test_activity_keeps_session_alive(self, manager, clock):
        info = await manager.create_session(USER, IP, UA)

        for _ in range(6):
            clock.advance(minutes=25)
            assert (await manager.validate_session(USER, info.session_token, IP, UA)).valid


class TestFingerprint:

    async def test_hijack_detection(self, manager, audit):
        """Scenario: hijack detection."""
        info = await manager.create_session(USER, IP, UA)

        result = await manager.validate_session(USER, info.session_token, "9.9.9.9", UA)
        assert result.valid is False
        assert result.reason == SessionRejection.SECURITY_VIOLATION

        hijack = [e for e in audit.security_events if e.event_type == "POTENTIAL_SESSION_HIJACKING"]
        assert len(hijack) == 1
        assert hijack[0].severity == Severity.CRITICAL

        after = await manager.validate_session(USER, info.session_token, IP, UA)
        assert after.valid is False
        assert after.reason == SessionRejection.NOT_LOGGED_IN

    async def test_user_agent_change_terminates(self, manager):
        info = await manager.create_session(USER, IP, UA)

        result = await manager.validate_session(USER, info.session_token, IP, "Firefox")

        assert result.reason == SessionRejection.SECURITY_VIOLATION
        assert await manager.get_session_info(USER) is None

    async def test_termination_is_sticky(self, manager):
        info = await manager.create_session(USER, IP, UA)
        await manager.validate_session(USER, info.session_token, "9.9.9.9", UA)

        for _ in range(3):
            result = await manager.validate_session(USER, info.session_token, IP, UA)
            assert result.reason == SessionRejection.NOT_LOGGED_IN


# =============================================================================
# TERMINATION
# =============================================================================

class TestTerminateSession:

    async def test_terminate_twice_leaves_identical_state(self, manager, store, clock):
        await manager.create_session(USER, IP, UA)

        await manager.terminate_session(USER, IP, UA, "Manual logout")
        first = store.get(USER)
        await manager.terminate_session(USER, IP, UA, "Manual logout")
        second = store.get(USER)

        assert first == second
        assert first.is_logged_in is False
        assert first.session_token is None
        assert first.expires_at is None
        assert first.ip_address is None
        assert first.last_logout == clock.now

    async def test_terminate_unknown_user_does_not_raise(self, manager):
        await manager.terminate_session("nobody", IP, UA)

    async def test_terminate_logs_reason(self, manager, audit):
        await manager.create_session(USER, IP, UA)
        await manager.terminate_session(USER, IP, UA, "Manual logout")

        terminated = [e for e in audit.audit_logs if e.action == "SESSION_TERMINATED"]
        assert terminated[-1].details == "Manual logout"

    async def test_stale_termination_spares_newer_login(self, manager):
        old = await manager.create_session(USER, IP, UA)
        new = await manager.create_session(USER, IP, UA)

        await manager.terminate_session(USER, IP, UA, "late", session_token=old.session_token)

        assert (await manager.validate_session(USER, new.session_token, IP, UA)).valid

    async def test_stale_termination_is_not_audited(self, manager, audit):
        old = await manager.create_session(USER, IP, UA)
        await manager.create_session(USER, IP, UA)

        await manager.terminate_session(USER, IP, UA, "late", session_token=old.session_token)

        assert "late" not in [e.details for e in audit.audit_logs if e.action == "SESSION_TERMINATED"]

    async def test_store_failure_is_swallowed(self, audit, clock):
        class BrokenStore(InMemorySessionStore):
            def clear(self, *args, **kwargs):
                raise RuntimeError("database is down")

        manager = SessionManager(BrokenStore(), audit, clock=clock)
        await manager.terminate_session(USER, IP, UA)

    async def test_terminate_all_reports_whether_anything_ended(self, manager):
        assert await manager.terminate_all_user_sessions(USER, IP, UA) is False

        await manager.create_session(USER, IP, UA)
        assert await manager.terminate_all_user_sessions(USER, IP, UA) is True
        assert await manager.terminate_all_user_sessions(USER, IP, UA) is False


# =============================================================================
# QUERIES
# =============================================================================

class TestSessionQueries:

    async def test_active_sessions_has_at_most_one_entry(self, manager):
        assert await manager.get_active_sessions(USER) == []

        await manager.create_session(USER, IP, UA)
        info = await manager.create_session(USER, IP, UA)

        active = await manager.get_active_sessions(USER)
        assert len(active) == 1
        assert active[0].session_token == info.session_token

    async def test_has_active_session_respects_expiry(self, manager, clock):
        await manager.create_session(USER, IP, UA)
        assert await manager.has_active_session(USER) is True

        clock.advance(minutes=61)
        assert await manager.has_active_session(USER) is False

    async def test_active_elsewhere(self, manager):
        info = await manager.create_session(USER, IP, UA)

        assert await manager.has_active_session_elsewhere(USER, info.session_token) is False
        assert await manager.has_active_session_elsewhere(USER, "other-token") is True

    async def test_query_errors_give_safe_negatives(self, audit, clock):
        class BrokenStore(InMemorySessionStore):
            def get(self, user_id):
                raise RuntimeError("database is down")

        manager = SessionManager(BrokenStore(), audit, clock=clock)

        assert await manager.get_session_info(USER) is None
        assert await manager.get_active_sessions(USER) == []
        assert await manager.has_active_session(USER) is False


# =============================================================================
# FAILURE POLICY
# =============================================================================

class TestFailurePolicy:

    async def test_validation_fails_closed(self, audit, clock):
        class BrokenStore(InMemorySessionStore):
            def get(self, user_id):
                raise RuntimeError("database is down")

        manager = SessionManager(BrokenStore(), audit, clock=clock)

        result = await manager.validate_session(USER, "x" * 64, IP, UA)
        assert result.valid is False
        assert result.reason == SessionRejection.VALIDATION_ERROR

    async def test_broken_audit_sink_does_not_break_sessions(self, store, clock):
        class BrokenSink(MemoryAuditSink):
            def _append_audit(self, entry):
                raise RuntimeError("audit store is down")

            def _append_security(self, entry):
                raise RuntimeError("audit store is down")

        manager = SessionManager(store, BrokenSink(), clock=clock)

        first = await manager.create_session(USER, IP, UA)
        second = await manager.create_session(USER, IP, UA)
        assert first is not None and second is not None

        assert (await manager.validate_session(USER, first.session_token, IP, UA)).reason == (
            SessionRejection.INVALID_TOKEN
        )
        assert (await manager.validate_session(USER, second.session_token, "9.9.9.9", UA)).reason == (
            SessionRejection.SECURITY_VIOLATION
        )
        await manager.terminate_session(USER, IP, UA)
