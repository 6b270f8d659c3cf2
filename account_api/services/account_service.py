"""
Account lifecycle use cases: registration with SMS OTP, login, OTP
verification and password reset.

Collaborators are passed in explicitly (see ``build_account_service``) so the
service never reaches for a global registry.
"""

from __future__ import annotations

from dataclasses import dataclass
from hashlib import sha256
import logging

from account_api.core.config import Settings, get_settings
from account_api.core.logging import mask_mobile
from account_api.core.mailer import Email, EmailGateway
from account_api.core.otp import OTPService
from account_api.core.security import hash_password, password_needs_rehash, verify_password
from account_api.core.sms import SMSGateway, get_sms_gateway
from account_api.core.tokens import TokenError, TokenService
from account_api.core.utils import absolute_url
from account_api.db.models import User
from account_api.domain.mobile import is_valid_mobile, normalize_mobile
from account_api.repositories.sql_repository import DuplicateEntryError, SQLRepository

log = logging.getLogger("account_api.accounts")


class AuthError(Exception):
    """Base class for account lifecycle exceptions."""


class RegistrationError(AuthError):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AccountExistsError(AuthError):
    pass


class InvalidCredentialsError(AuthError):
    pass


class AccountNotFoundError(AuthError):
    pass


class InvalidOTPError(AuthError):
    pass


class InvalidResetTokenError(AuthError):
    pass


@dataclass
class LoginResult:
    token: str
    user_id: str


@dataclass
class OTPRefreshResult:
    refresh: bool
    sent: bool


@dataclass
class PasswordResetIssued:
    result: bool
    token: str
    email_sent: bool


def _reset_marker(token: str) -> str:
    return sha256(token.encode("utf-8")).hexdigest()


class AccountService:
    """Handles registration, login, OTP verification and password reset flows."""

    def __init__(
        self,
        repository: SQLRepository,
        tokens: TokenService,
        otp: OTPService,
        sms: SMSGateway,
        mailer: EmailGateway,
        settings: Settings | None = None,
    ) -> None:
        self.repository = repository
        self.tokens = tokens
        self.otp = otp
        self.sms = sms
        self.mailer = mailer
        self.settings = settings or get_settings()

    # -------------------------------------- helpers --------------------------------------
    @staticmethod
    def user_profile(user: User) -> dict:
        """Claims carried by the session token (and returned by ``/me``)."""
        return {"user": user.id, "mobile": user.mobile, "email": user.email, "name": user.name}

    def _otp_message(self, code: str) -> str:
        minutes = self.settings.otp_validity_minutes
        shown = int(minutes) if float(minutes).is_integer() else round(minutes, 1)
        return f"Your verification token is {code}. Only valid for {shown} minute."

    def _send_otp(self, user: User, code: str) -> bool:
        # SMS is best-effort; the credential already records the issuance instant.
        try:
            sent = self.sms.send(user.mobile, self._otp_message(code), code)
        except Exception:
            log.exception("SMS gateway %s raised for %s", self.sms.get_provider_name(), mask_mobile(user.mobile))
            return False
        if not sent:
            log.warning("OTP SMS not delivered to %s", mask_mobile(user.mobile))
        return sent

    # -------------------------------------- registration --------------------------------------
    def register(self, mobile: str, email: str | None, name: str | None, password: str) -> User:
        raw_mobile = normalize_mobile(mobile)
        if not is_valid_mobile(raw_mobile):
            raise RegistrationError("Invalid mobile number")
        if len(password or "") < self.settings.password_min_length:
            raise RegistrationError(f"Password must have at least {self.settings.password_min_length} characters")
        if self.repository.find_user_by_mobile(raw_mobile):
            raise AccountExistsError("This mobile already exists")
        try:
            user = self.repository.create_user(
                raw_mobile,
                email=(email or "").strip() or None,
                name=(name or "").strip() or None,
            )
        except DuplicateEntryError as exc:
            raise AccountExistsError("This mobile already exists") from exc

        code, issued_at = self.otp.issue(user.id)
        self._send_otp(user, code)
        self.repository.create_credential(user.id, hash_password(password), token_created_at=issued_at)
        log.info("Registered user %s (%s)", user.id, mask_mobile(user.mobile))
        return user

    # -------------------------------------- login --------------------------------------
    def verify_credentials(self, mobile: str, password: str) -> User:
        raw_mobile = normalize_mobile(mobile)
        user = self.repository.find_user_by_mobile(raw_mobile) if raw_mobile else None
        credential = self.repository.find_credentials(user.id) if user else None
        if not user or not credential or not verify_password(password or "", credential.password):
            raise InvalidCredentialsError("Invalid mobile or password")
        if password_needs_rehash(credential.password):
            self.repository.update_credential(user.id, password=hash_password(password))
        return user

    def login(self, mobile: str, password: str, device: str | None = None) -> LoginResult:
        user = self.verify_credentials(mobile, password)
        token = self.tokens.generate_token(self.user_profile(user))
        self.repository.open_user_session(user.id, device=(device or "")[:255] or None)
        return LoginResult(token=token, user_id=user.id)

    # -------------------------------------- OTP --------------------------------------
    def verify_otp(self, user_id: str, code: str) -> User:
        credential = self.repository.find_credentials(user_id)
        if not credential or not credential.token_created_at:
            raise InvalidOTPError("Invalid credentials")
        if not self.otp.verify(code, credential.token_created_at, user_id):
            raise InvalidOTPError("Invalid credentials")
        if not self.repository.consume_otp(user_id, credential.token_created_at):
            raise InvalidOTPError("Invalid credentials")
        self.repository.set_user_verified(user_id)
        user = self.repository.get_user(user_id)
        if not user:
            raise InvalidOTPError("Invalid credentials")
        return user

    def refresh_otp(self, user_id: str) -> OTPRefreshResult:
        user = self.repository.get_user(user_id)
        if not user or not self.repository.find_credentials(user_id):
            raise AccountNotFoundError("No valid users")
        code, issued_at = self.otp.issue(user.id)
        self.repository.update_credential(user.id, token_created_at=issued_at)
        return OTPRefreshResult(refresh=True, sent=self._send_otp(user, code))

    # -------------------------------------- password reset --------------------------------------
    def _reset_email(self, user: User, token: str) -> Email:
        reset_url = absolute_url(f"/reset?token={token}")
        return Email(
            to=user.email or "",
            subject="Reset your password",
            content=(
                "We received a request to reset your password.\n"
                f"Use this token or link within {self.settings.password_reset_ttl // 60} minutes:\n\n"
                f"{token}\n{reset_url}\n\n"
                "If you did not ask for this, ignore this message."
            ),
        )

    def forget_password(self, mobile: str) -> PasswordResetIssued:
        user = self.repository.find_user_by_mobile(normalize_mobile(mobile))
        if not user:
            raise AccountNotFoundError("No valid users")
        if not self.repository.find_credentials(user.id):
            raise AccountNotFoundError("No valid users")
        token = self.tokens.generate_reset_password_token(user)
        self.repository.update_credential(user.id, reset_token=_reset_marker(token))
        email_sent = False
        if user.email:
            email_sent = self.mailer.send(self._reset_email(user, token))
        else:
            log.warning("User %s has no email; reset token not delivered", user.id)
        return PasswordResetIssued(result=True, token=token, email_sent=email_sent)

    def set_new_password(self, token: str, password: str) -> bool:
        try:
            user_id = self.tokens.decode_reset_password_token((token or "").strip())
        except TokenError as exc:
            raise InvalidResetTokenError("Invalid forget password token") from exc
        marker = _reset_marker(token.strip())
        credential = self.repository.find_credentials(user_id)
        if not credential or credential.reset_token != marker:
            raise InvalidResetTokenError("Invalid forget password token")
        if len(password or "") < self.settings.password_min_length:
            raise RegistrationError(f"Password must have at least {self.settings.password_min_length} characters")
        # conditional on the stored marker; a concurrent consume matches no row
        if not self.repository.consume_reset_token(user_id, marker, hash_password(password)):
            raise InvalidResetTokenError("Invalid forget password token")
        log.info("Password reset for user %s", user_id)
        return True


def build_account_service(settings: Settings | None = None, repository: SQLRepository | None = None) -> AccountService:
    """Wire the service with the gateways selected by ``settings``."""
    settings = settings or get_settings()
    if not settings.jwt_secret:
        raise RuntimeError("JWT_SECRET must be configured.")
    tokens = TokenService(
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        session_ttl_seconds=settings.session_ttl_seconds,
        reset_ttl_seconds=settings.password_reset_ttl,
    )
    otp = OTPService(settings.otp_secret, settings.otp_validity_ms, settings.otp_length)
    return AccountService(
        repository=repository or SQLRepository(),
        tokens=tokens,
        otp=otp,
        sms=get_sms_gateway(settings),
        mailer=EmailGateway(settings),
        settings=settings,
    )
