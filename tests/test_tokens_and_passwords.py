from __future__ import annotations

from types import SimpleNamespace

import jwt
import pytest

from account_api.core.security import hash_password, password_needs_rehash, verify_password
from account_api.core.tokens import TokenError, TokenService

SECRET = "token-secret-for-tests-0123456789abcdef"


def test_session_token_round_trip():
    svc = TokenService(SECRET)
    token = svc.generate_token({"user": "abc", "mobile": "0123456789", "email": None, "name": "Ann"})
    profile = svc.verify_token(token)

    assert profile["user"] == "abc"
    assert profile["mobile"] == "0123456789"
    assert profile["name"] == "Ann"
    assert "email" not in profile


def test_reset_token_maps_back_to_user_id():
    svc = TokenService(SECRET)
    token = svc.generate_reset_password_token(SimpleNamespace(id="user-42"))

    assert svc.decode_reset_password_token(token) == "user-42"


def test_tokens_are_not_interchangeable():
    svc = TokenService(SECRET)
    session = svc.generate_token({"user": "abc"})
    reset = svc.generate_reset_password_token(SimpleNamespace(id="abc"))

    with pytest.raises(TokenError):
        svc.decode_reset_password_token(session)
    with pytest.raises(TokenError):
        svc.verify_token(reset)


def test_expired_tampered_and_foreign_tokens_fail():
    svc = TokenService(SECRET, reset_ttl_seconds=-10)
    expired = svc.generate_reset_password_token(SimpleNamespace(id="abc"))
    with pytest.raises(TokenError, match="expired"):
        svc.decode_reset_password_token(expired)

    foreign = jwt.encode({"sub": "abc", "purpose": "reset", "exp": 9999999999}, "another-secret-0123456789abcdefgh", algorithm="HS256")
    with pytest.raises(TokenError):
        TokenService(SECRET).decode_reset_password_token(foreign)

    with pytest.raises(TokenError):
        TokenService(SECRET).decode_reset_password_token("not-a-token")
    with pytest.raises(TokenError):
        TokenService(SECRET).decode_reset_password_token("")


def test_generate_token_requires_user_id():
    with pytest.raises(ValueError):
        TokenService(SECRET).generate_token({"mobile": "0123456789"})


def test_password_hash_and_verify():
    stored = hash_password("s3cret-pass")

    assert stored.startswith("argon2$")
    assert verify_password("s3cret-pass", stored) is True
    assert verify_password("wrong-pass", stored) is False
    assert verify_password("s3cret-pass", None) is False
    assert verify_password("s3cret-pass", "plain-text") is False
    assert password_needs_rehash(stored) is False
    assert password_needs_rehash("plain-text") is True
