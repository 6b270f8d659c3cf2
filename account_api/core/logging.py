"""Logging setup shared by the app factory and CLI helpers."""
from __future__ import annotations

import logging

from .config import get_settings

LOGGER_ROOT = "account_api"
_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> logging.Logger:
    """Attach a single stream handler to the package logger (idempotent)."""
    logger = logging.getLogger(LOGGER_ROOT)
    logger.setLevel(level or get_settings().log_level)
    if not any(getattr(h, "_account_api", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT))
        handler._account_api = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
    return logger


def mask_mobile(mobile: str | None) -> str:
    value = (mobile or "").strip()
    if len(value) <= 4:
        return "***"
    return "***" + value[-4:]


def mask_email(email: str | None) -> str:
    value = (email or "").strip()
    if "@" not in value:
        return "***"
    local, domain = value.split("@", 1)
    return f"{local[:2]}***@{domain}"
