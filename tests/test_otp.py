from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from account_api.core.otp import OTPService

SECRET = "otp-secret"


def test_issue_returns_numeric_code_and_whole_second_instant():
    svc = OTPService(SECRET, validity_ms=60000)
    now = datetime(2024, 5, 1, 12, 0, 0, 987654, tzinfo=timezone.utc)
    code, issued_at = svc.issue("user-1", now=now)

    assert len(code) == 6 and code.isdigit()
    assert issued_at == now.replace(microsecond=0)
    assert svc.derive("user-1", issued_at) == code


def test_verify_within_window_and_after_expiry():
    svc = OTPService(SECRET, validity_ms=60000)
    code, issued_at = svc.issue("user-1")

    assert svc.verify(code, issued_at, "user-1", now=issued_at + timedelta(seconds=59)) is True
    # same code, but submitted after the window
    assert svc.verify(code, issued_at, "user-1", now=issued_at + timedelta(seconds=61)) is False


def test_verify_rejects_wrong_code_other_subject_and_missing_instant():
    svc = OTPService(SECRET, validity_ms=60000)
    code, issued_at = svc.issue("user-1")
    wrong = str((int(code) + 1) % 1000000).zfill(6)

    assert svc.verify(wrong, issued_at, "user-1") is False
    assert svc.verify(code, issued_at, "user-2") is False
    assert svc.verify(code, None, "user-1") is False
    assert svc.verify("", issued_at, "user-1") is False


def test_reissue_invalidates_previous_code():
    svc = OTPService(SECRET, validity_ms=600000)
    first_at = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)
    first, _ = svc.issue("user-1", now=first_at)
    second, second_at = svc.issue("user-1", now=first_at + timedelta(seconds=30))

    assert svc.verify(second, second_at, "user-1", now=second_at) is True
    if first != second:
        assert svc.verify(first, second_at, "user-1", now=second_at) is False


def test_naive_instant_is_treated_as_utc():
    svc = OTPService(SECRET, validity_ms=60000)
    aware = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)
    code = svc.derive("user-1", aware)

    naive = aware.replace(tzinfo=None)
    assert svc.verify(code, naive, "user-1", now=aware + timedelta(seconds=10)) is True


def test_custom_length_and_invalid_configuration():
    assert len(OTPService(SECRET, 1000, length=8).issue("u")[0]) == 8
    with pytest.raises(ValueError):
        OTPService("", 1000)
    with pytest.raises(ValueError):
        OTPService(SECRET, 1000, length=3)
