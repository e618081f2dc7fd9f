"""Bearer token issuance and validation for the single bridge session."""

from __future__ import annotations

import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from testbridge.exceptions import TokenError

_TOKEN_RE = re.compile(r"^([0-9a-z]+)-([0-9a-f]{64})$")
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"

DEFAULT_MAX_AGE = timedelta(hours=24)


def to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Session:
    """The one authenticated session an agent process serves.

    Created once when a transport starts and never mutated afterwards, so it
    can be shared by every request without locking.
    """

    token: str
    issued_at: datetime

    def validate(self, token: str | None, max_age: timedelta = DEFAULT_MAX_AGE) -> None:
        validate_token(self, token, max_age=max_age)


def issue_session(now: datetime | None = None) -> Session:
    """Generate ``<base36 ms timestamp>-<64 hex chars>`` and wrap it in a Session."""
    issued_at = now or _now()
    stamp = to_base36(int(issued_at.timestamp() * 1000))
    token = f"{stamp}-{secrets.token_hex(32)}"
    return Session(token=token, issued_at=issued_at)


def token_issued_at(token: str) -> datetime:
    """Decode the timestamp embedded in a well-formed token."""
    match = _TOKEN_RE.match(token)
    if not match:
        raise TokenError("invalid_format", "Invalid token format")
    millis = int(match.group(1), 36)
    try:
        return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as exc:
        raise TokenError("invalid_format", "Invalid token format") from exc


def validate_token(
    session: Session,
    token: str | None,
    *,
    max_age: timedelta = DEFAULT_MAX_AGE,
    now: datetime | None = None,
) -> None:
    """Raise TokenError unless *token* is well-formed, fresh and the live one.

    Checks run in order: format, age, equality. Age is computed from the
    token's own timestamp at validation time; nothing is evicted.
    """
    if not token or not isinstance(token, str):
        raise TokenError("invalid_format", "Invalid token format")

    issued_at = token_issued_at(token)
    if (now or _now()) - issued_at > max_age:
        raise TokenError("expired", "Token expired")

    if not secrets.compare_digest(token, session.token):
        raise TokenError("mismatch", "Invalid token")


def parse_bearer(header: str | None) -> str:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    if not header or not header.startswith("Bearer "):
        raise TokenError("missing", "Authorization header required")
    return header[len("Bearer "):].strip()
