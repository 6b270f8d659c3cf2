"""Domain helpers for mobile number normalisation and validation."""
from __future__ import annotations

import re

MOBILE_PATTERN = re.compile(r"\+?[0-9]{6,15}")
_SEPARATORS = re.compile(r"[\s().-]")


def normalize_mobile(value: str | None) -> str:
    """Strip whitespace and common separators ("012 345-6789" -> "0123456789")."""
    return _SEPARATORS.sub("", (value or "").strip())


def is_valid_mobile(value: str | None) -> bool:
    """Return True when the normalised value is 6-15 digits, optionally prefixed by '+'."""
    if not value:
        return False
    return bool(MOBILE_PATTERN.fullmatch(value))
