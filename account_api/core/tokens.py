"""
Signed token helpers (PyJWT).

Two kinds of token share the signing key and are told apart by the
``purpose`` claim:

- session tokens carry the user profile claims and authenticate requests;
- reset tokens carry only the user id and authorise one password change.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

PURPOSE_SESSION = "session"
PURPOSE_RESET = "reset"


class TokenError(Exception):
    """Raised when a token cannot be decoded for the expected purpose."""


class TokenService:
    """Issues and decodes session and password-reset JWTs."""

    def __init__(self, secret: str, *, algorithm: str = "HS256", session_ttl_seconds: int = 86400, reset_ttl_seconds: int = 900) -> None:
        if not secret:
            raise ValueError("JWT secret must not be empty")
        self._secret = secret
        self.algorithm = algorithm
        self.session_ttl_seconds = session_ttl_seconds
        self.reset_ttl_seconds = reset_ttl_seconds

    def _encode(self, claims: dict[str, Any], ttl_seconds: int) -> str:
        now = datetime.now(timezone.utc)
        payload = dict(claims)
        payload["iat"] = int(now.timestamp())
        payload["exp"] = int((now + timedelta(seconds=ttl_seconds)).timestamp())
        return jwt.encode(payload, self._secret, algorithm=self.algorithm)

    def _decode(self, token: str, purpose: str) -> dict[str, Any]:
        if not token:
            raise TokenError("Token missing")
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                options={"require": ["exp", "sub"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise TokenError("Token expired") from exc
        except jwt.InvalidTokenError as exc:
            raise TokenError("Token invalid") from exc
        if payload.get("purpose") != purpose:
            raise TokenError("Token issued for another purpose")
        return payload

    # -------------------------- session tokens --------------------------
    def generate_token(self, profile: dict[str, Any]) -> str:
        user_id = str(profile.get("user") or "")
        if not user_id:
            raise ValueError("Profile must carry the user id")
        claims = {k: v for k, v in profile.items() if v is not None}
        claims.update({"sub": user_id, "purpose": PURPOSE_SESSION})
        return self._encode(claims, self.session_ttl_seconds)

    def verify_token(self, token: str) -> dict[str, Any]:
        """Decode a session token back into the profile it was issued for."""
        payload = self._decode(token, PURPOSE_SESSION)
        profile = {k: v for k, v in payload.items() if k not in {"sub", "purpose", "iat", "exp"}}
        profile["user"] = payload["sub"]
        return profile

    # -------------------------- reset tokens --------------------------
    def generate_reset_password_token(self, user) -> str:
        claims = {"sub": str(user.id), "purpose": PURPOSE_RESET, "jti": uuid.uuid4().hex}
        return self._encode(claims, self.reset_ttl_seconds)

    def decode_reset_password_token(self, token: str) -> str:
        """Return the user id bound to a reset token."""
        return str(self._decode(token, PURPOSE_RESET)["sub"])
