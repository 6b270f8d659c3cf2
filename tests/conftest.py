"""Shared fixtures: temporary SQLite database, fake gateways, wired service and client."""
from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure the package is importable when tests run from a source checkout
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from account_api.core import config as core_config  # noqa: E402
from account_api.core.mailer import Email  # noqa: E402
from account_api.core.otp import OTPService  # noqa: E402
from account_api.core.rate_limiter import reset_rate_limits  # noqa: E402
from account_api.core.sms import SMSGateway  # noqa: E402
from account_api.core.tokens import TokenService  # noqa: E402
from account_api.db import models  # noqa: E402
from account_api.db import session as db_session  # noqa: E402
from account_api.repositories.sql_repository import SQLRepository  # noqa: E402
from account_api.services.account_service import AccountService  # noqa: E402

TEST_SECRET = "test-secret-for-testing-only-not-production"


class FakeSMS(SMSGateway):
    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []
        self.fail = False

    def send(self, mobile: str, message: str, code: str) -> bool:
        if self.fail:
            return False
        self.sent.append((mobile, message, code))
        return True

    def get_provider_name(self) -> str:
        return "fake"

    @property
    def last_code(self) -> str:
        return self.sent[-1][2]


class FakeMailer:
    def __init__(self) -> None:
        self.outbox: list[Email] = []

    def send(self, email: Email) -> bool:
        self.outbox.append(email)
        return True


def _clear_caches() -> None:
    core_config.get_settings.cache_clear()
    db_session.get_engine.cache_clear()
    db_session._get_sessionmaker.cache_clear()  # type: ignore[attr-defined]


@pytest.fixture()
def db_env(tmp_path, monkeypatch):
    """Point the app at a temporary SQLite file and reset settings/engine caches."""
    db_file = tmp_path / "test.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_file}")
    monkeypatch.setenv("JWT_SECRET", TEST_SECRET)
    monkeypatch.setenv("OTP_VALIDITY", "300000")
    monkeypatch.setenv("SMS_PROVIDER", "stub")
    monkeypatch.setenv("RATE_LIMIT_ENABLED", "off")
    monkeypatch.setenv("APP_ENV", "test")
    for name in ("SMTP_HOST", "SMTP_USER", "SMTP_PASSWORD", "OTP_SECRET", "EXPOSE_RESET_TOKEN"):
        monkeypatch.delenv(name, raising=False)
    _clear_caches()
    reset_rate_limits()

    engine = db_session.get_engine()
    models.Base.metadata.drop_all(bind=engine)
    models.Base.metadata.create_all(bind=engine)

    yield db_file

    models.Base.metadata.drop_all(bind=engine)
    engine.dispose()
    _clear_caches()


@pytest.fixture()
def repo(db_env) -> SQLRepository:
    return SQLRepository()


@pytest.fixture()
def sms() -> FakeSMS:
    return FakeSMS()


@pytest.fixture()
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture()
def service(repo, sms, mailer) -> AccountService:
    settings = core_config.get_settings()
    return AccountService(
        repository=repo,
        tokens=TokenService(TEST_SECRET, session_ttl_seconds=3600, reset_ttl_seconds=900),
        otp=OTPService(TEST_SECRET, validity_ms=settings.otp_validity_ms),
        sms=sms,
        mailer=mailer,  # type: ignore[arg-type]
        settings=settings,
    )


@pytest.fixture()
def client(service):
    from fastapi.testclient import TestClient

    from account_api.app import create_app

    app = create_app(account_service=service)
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def registered(service):
    """A registered user and the password it was created with."""
    user = service.register("0123456789", "alice@example.com", "Alice", "correct-horse")
    return user, "correct-horse"
