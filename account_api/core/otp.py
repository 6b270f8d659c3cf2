"""
One-time password service.

Codes are never stored. A code is derived from a server secret, the subject it
was issued for (the user id) and the issuance instant:

    HMAC-SHA256(secret, "<subject>:<issued_at epoch seconds>")

then dynamically truncated to ``length`` digits (same truncation as HOTP). Only
the issuance instant is persisted, on the user's credential. Issuing a new
code moves the instant forward, which invalidates the previous code.
"""

from __future__ import annotations

import hmac
from datetime import datetime, timezone
from hashlib import sha256


def _as_utc(value: datetime) -> datetime:
    # Naive datetimes come back from SQLite; they are stored as UTC.
    return value.astimezone(timezone.utc) if value.tzinfo else value.replace(tzinfo=timezone.utc)


class OTPService:
    """Issues and verifies numeric one-time codes bound to a subject."""

    def __init__(self, secret: str, validity_ms: int, length: int = 6) -> None:
        if not secret:
            raise ValueError("OTP secret must not be empty")
        if not 4 <= length <= 9:
            raise ValueError("OTP length must be between 4 and 9 digits")
        self._secret = secret.encode("utf-8")
        self.validity_ms = validity_ms
        self.length = length

    def derive(self, subject: str, issued_at: datetime) -> str:
        stamp = int(_as_utc(issued_at).timestamp())
        digest = hmac.new(self._secret, f"{subject}:{stamp}".encode("utf-8"), sha256).digest()
        offset = digest[-1] & 0x0F
        value = int.from_bytes(digest[offset : offset + 4], "big") & 0x7FFFFFFF
        return str(value % (10**self.length)).zfill(self.length)

    def issue(self, subject: str, now: datetime | None = None) -> tuple[str, datetime]:
        """Return ``(code, issued_at)``; issued_at is truncated to whole seconds."""
        issued_at = _as_utc(now or datetime.now(timezone.utc)).replace(microsecond=0)
        return self.derive(subject, issued_at), issued_at

    def is_expired(self, issued_at: datetime, now: datetime | None = None) -> bool:
        current = _as_utc(now or datetime.now(timezone.utc))
        elapsed_ms = (current - _as_utc(issued_at)).total_seconds() * 1000
        return elapsed_ms > self.validity_ms

    def verify(self, code: str, issued_at: datetime | None, subject: str, now: datetime | None = None) -> bool:
        if issued_at is None:
            return False
        if self.is_expired(issued_at, now):
            return False
        submitted = (code or "").strip()
        if not submitted.isdigit():
            return False
        return hmac.compare_digest(submitted, self.derive(subject, issued_at))
