"""
Email adapter for the account backend.

The default implementation uses SMTP, reading credentials from Settings.
Delivery is best-effort: failures are logged and reported as ``False``.
"""

from __future__ import annotations

from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
import logging
import smtplib
import ssl

from .config import Settings, get_settings
from .logging import mask_email

log = logging.getLogger("account_api.mailer")


@dataclass(frozen=True)
class Email:
    to: str
    subject: str
    content: str
    html: str | None = None


class EmailGateway:
    """Sends :class:`Email` messages over SMTP (SSL on 465, STARTTLS otherwise)."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    def is_configured(self) -> bool:
        s = self.settings
        return bool(s.smtp_host and s.smtp_user and s.smtp_password and s.smtp_from and s.smtp_port)

    def _build(self, email: Email) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = email.subject
        msg["From"] = self.settings.smtp_from
        msg["To"] = email.to
        msg.attach(MIMEText(email.content, "plain", "utf-8"))
        if email.html:
            msg.attach(MIMEText(email.html, "html", "utf-8"))
        return msg

    def _deliver(self, email: Email) -> None:
        s = self.settings
        payload = self._build(email).as_string()
        port = s.smtp_port or 465
        if port == 465:
            context = ssl.create_default_context()
            with smtplib.SMTP_SSL(s.smtp_host, port, context=context, timeout=s.smtp_timeout_seconds) as server:
                server.login(s.smtp_user, s.smtp_password)
                server.sendmail(s.smtp_from, [email.to], payload)
        else:
            with smtplib.SMTP(s.smtp_host, port, timeout=s.smtp_timeout_seconds) as server:
                server.ehlo()
                server.starttls(context=ssl.create_default_context())
                server.login(s.smtp_user, s.smtp_password)
                server.sendmail(s.smtp_from, [email.to], payload)

    def send(self, email: Email) -> bool:
        if not email.to:
            log.warning("Email without recipient; skipping '%s'", email.subject)
            return False
        if not self.is_configured():
            log.info("SMTP not configured; skipping email to %s", mask_email(email.to))
            return False
        attempts = 1 + self.settings.gateway_retries
        for attempt in range(1, attempts + 1):
            try:
                self._deliver(email)
                log.info("Email '%s' sent to %s", email.subject, mask_email(email.to))
                return True
            except smtplib.SMTPAuthenticationError as exc:
                log.error("SMTP authentication failed: %s", exc)
                return False
            except (smtplib.SMTPException, OSError) as exc:
                log.warning("Email to %s failed (attempt %d/%d): %s", mask_email(email.to), attempt, attempts, exc)
        return False
