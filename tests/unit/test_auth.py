"""Unit tests for session tokens and path containment.

Total: 15 tests
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone

import pytest

from testbridge.core.security.auth import (
    issue_session,
    parse_bearer,
    to_base36,
    token_issued_at,
    validate_token,
)
from testbridge.core.security.paths import is_within, resolve_within
from testbridge.exceptions import SecurityError, TokenError

_FIXED = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


# ── Issuing ───────────────────────────────────────────────────────────────────

class TestIssueSession:
    def test_token_format(self):
        session = issue_session()
        assert re.fullmatch(r"[0-9a-z]+-[0-9a-f]{64}", session.token)

    def test_timestamp_prefix_decodes_to_issue_time(self):
        session = issue_session(now=_FIXED)
        assert token_issued_at(session.token) == _FIXED

    def test_tokens_are_unique(self):
        assert issue_session().token != issue_session().token

    def test_base36(self):
        assert to_base36(0) == "0"
        assert to_base36(35) == "z"
        assert to_base36(36) == "10"


# ── Validation ────────────────────────────────────────────────────────────────

class TestValidateToken:
    def test_live_token_accepted(self):
        session = issue_session(now=_FIXED)
        validate_token(session, session.token, now=_FIXED + timedelta(hours=1))

    def test_malformed_token_rejected(self):
        session = issue_session()
        with pytest.raises(TokenError) as exc_info:
            validate_token(session, "not-a-token")
        assert exc_info.value.reason == "invalid_format"
        assert exc_info.value.status_code == 401

    def test_expired_token_rejected_even_when_matching(self):
        session = issue_session(now=_FIXED)
        with pytest.raises(TokenError) as exc_info:
            validate_token(session, session.token, now=_FIXED + timedelta(hours=24, seconds=1))
        assert exc_info.value.reason == "expired"

    def test_well_formed_mismatch_rejected(self):
        session = issue_session(now=_FIXED)
        other = issue_session(now=_FIXED)
        with pytest.raises(TokenError) as exc_info:
            validate_token(session, other.token, now=_FIXED)
        assert exc_info.value.reason == "mismatch"
        assert exc_info.value.message == "Invalid token"

    def test_session_validate_uses_max_age(self):
        session = issue_session(now=datetime.now(timezone.utc) - timedelta(minutes=10))
        with pytest.raises(TokenError):
            session.validate(session.token, max_age=timedelta(minutes=5))


class TestParseBearer:
    def test_extracts_token(self):
        assert parse_bearer("Bearer abc-123") == "abc-123"

    def test_missing_header(self):
        with pytest.raises(TokenError) as exc_info:
            parse_bearer(None)
        assert exc_info.value.reason == "missing"

    def test_wrong_scheme(self):
        with pytest.raises(TokenError):
            parse_bearer("Basic dXNlcjpwYXNz")


# ── Path containment ──────────────────────────────────────────────────────────

class TestResolveWithin:
    def test_inside_path_resolves(self, tmp_path):
        (tmp_path / "tests").mkdir()
        assert resolve_within(tmp_path, "tests/a.spec.ts") == (tmp_path / "tests" / "a.spec.ts").resolve()

    def test_parent_escape_rejected(self, tmp_path):
        with pytest.raises(SecurityError):
            resolve_within(tmp_path, "../outside.txt")
        assert not is_within(tmp_path, "tests/../../outside.txt")

    def test_absolute_path_outside_rejected(self, tmp_path):
        with pytest.raises(SecurityError):
            resolve_within(tmp_path / "project", "/etc/passwd")
