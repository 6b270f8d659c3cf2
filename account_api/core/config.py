"""
Configuration helpers for the account backend.

Settings is a frozen view of the environment (database, JWT, OTP, SMS and SMTP
gateways, feature flags) so that routers/services never read os.environ
directly. Tests call ``get_settings.cache_clear()`` after patching the env.
"""

from dataclasses import dataclass
from functools import lru_cache
import os


@dataclass(frozen=True)
class Settings:
    """Typed view of environment variables."""

    app_env: str
    database_url: str
    public_base_url: str
    log_level: str
    jwt_secret: str
    jwt_algorithm: str
    session_ttl_seconds: int
    password_reset_ttl: int
    expose_reset_token: bool
    password_min_length: int
    otp_secret: str
    otp_validity_ms: int
    otp_length: int
    sms_provider: str
    sms_api_url: str
    sms_api_key: str
    sms_sender: str
    sms_timeout_seconds: float
    smtp_host: str
    smtp_port: int
    smtp_user: str
    smtp_password: str
    smtp_from: str
    smtp_timeout_seconds: float
    gateway_retries: int
    rate_limit_enabled: bool

    @property
    def otp_validity_minutes(self) -> float:
        """Validity window as shown to users (the env value is milliseconds)."""
        return self.otp_validity_ms / 60000


@lru_cache
def get_settings() -> Settings:
    """Read the current environment and build a Settings instance."""
    def _int(value: str, default: int = 0) -> int:
        try:
            return int(value)
        except (TypeError, ValueError):
            return default

    def _float(value: str, default: float = 0.0) -> float:
        try:
            return float(value)
        except (TypeError, ValueError):
            return default

    def _bool(value: str | None, default: bool = False) -> bool:
        if value is None:
            return default
        return value.strip().lower() in {"1", "true", "yes", "on"}

    app_env = (os.getenv("APP_ENV") or "dev").lower()
    jwt_secret = os.getenv("JWT_SECRET", "")
    return Settings(
        app_env=app_env,
        database_url=os.getenv("DATABASE_URL", "sqlite:///./account_api.db"),
        public_base_url=os.getenv("PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/"),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
        jwt_secret=jwt_secret,
        jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
        session_ttl_seconds=_int(os.getenv("SESSION_TTL_SECONDS", "86400"), 86400),
        password_reset_ttl=_int(os.getenv("PASSWORD_RESET_TTL", "900"), 900),
        expose_reset_token=_bool(os.getenv("EXPOSE_RESET_TOKEN"), app_env != "prod"),
        password_min_length=_int(os.getenv("PASSWORD_MIN_LENGTH", "8"), 8),
        otp_secret=os.getenv("OTP_SECRET") or jwt_secret,
        otp_validity_ms=_int(os.getenv("OTP_VALIDITY", "300000"), 300000),
        otp_length=_int(os.getenv("OTP_LENGTH", "6"), 6),
        sms_provider=(os.getenv("SMS_PROVIDER") or "stub").lower(),
        sms_api_url=os.getenv("SMS_API_URL", ""),
        sms_api_key=os.getenv("SMS_API_KEY", ""),
        sms_sender=os.getenv("SMS_SENDER", ""),
        sms_timeout_seconds=_float(os.getenv("SMS_TIMEOUT_SECONDS", "10"), 10.0),
        smtp_host=os.getenv("SMTP_HOST", ""),
        smtp_port=_int(os.getenv("SMTP_PORT", "465"), 465),
        smtp_user=os.getenv("SMTP_USER", ""),
        smtp_password=os.getenv("SMTP_PASSWORD", ""),
        smtp_from=os.getenv("SMTP_FROM", os.getenv("SMTP_USER", "")),
        smtp_timeout_seconds=_float(os.getenv("SMTP_TIMEOUT_SECONDS", "10"), 10.0),
        gateway_retries=max(0, _int(os.getenv("GATEWAY_RETRIES", "1"), 1)),
        rate_limit_enabled=_bool(os.getenv("RATE_LIMIT_ENABLED"), True),
    )
