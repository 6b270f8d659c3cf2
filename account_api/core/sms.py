"""
SMS gateways used to deliver one-time codes.

Providers (``SMS_PROVIDER``):
- ``stub``: logs the message instead of sending it (development, tests)
- ``http``: POSTs the message to ``SMS_API_URL`` with a bearer ``SMS_API_KEY``

Delivery is best-effort: ``send`` returns ``False`` on failure and never raises.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

import httpx

from .config import Settings, get_settings
from .logging import mask_mobile

log = logging.getLogger("account_api.sms")


class SMSGateway(ABC):
    """Delivers a text message carrying a one-time code to a mobile number."""

    @abstractmethod
    def send(self, mobile: str, message: str, code: str) -> bool:
        """Return True when the provider accepted the message."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return provider name for logging."""


class StubSMSGateway(SMSGateway):
    """Logs messages instead of sending them. Never use in production."""

    def send(self, mobile: str, message: str, code: str) -> bool:
        log.info("[STUB SMS] to %s: %s", mask_mobile(mobile), message)
        return True

    def get_provider_name(self) -> str:
        return "stub"


class HttpSMSGateway(SMSGateway):
    """Generic HTTP SMS provider with a bounded timeout and retry on transient errors."""

    def __init__(self, settings: Settings | None = None, client: httpx.Client | None = None) -> None:
        self.settings = settings or get_settings()
        self._client = client
        if not self.settings.sms_api_url:
            log.warning("SMS_API_URL not set for http provider")

    def _post(self, payload: dict) -> httpx.Response:
        headers = {"Accept": "application/json"}
        if self.settings.sms_api_key:
            headers["Authorization"] = f"Bearer {self.settings.sms_api_key}"
        if self._client is not None:
            return self._client.post(self.settings.sms_api_url, data=payload, headers=headers)
        return httpx.post(
            self.settings.sms_api_url,
            data=payload,
            headers=headers,
            timeout=self.settings.sms_timeout_seconds,
        )

    def send(self, mobile: str, message: str, code: str) -> bool:
        if not self.settings.sms_api_url:
            log.error("Cannot send SMS: SMS_API_URL not configured")
            return False
        payload = {"to": mobile, "message": message, "code": code}
        if self.settings.sms_sender:
            payload["from"] = self.settings.sms_sender
        attempts = 1 + self.settings.gateway_retries
        for attempt in range(1, attempts + 1):
            try:
                response = self._post(payload)
            except httpx.TransportError as exc:
                log.warning("SMS to %s failed (attempt %d/%d): %s", mask_mobile(mobile), attempt, attempts, exc)
                continue
            if response.is_success:
                log.info("SMS sent to %s", mask_mobile(mobile))
                return True
            if response.status_code < 500:
                log.error("SMS provider rejected message: %s %s", response.status_code, response.text[:100])
                return False
            log.warning("SMS provider error %s (attempt %d/%d)", response.status_code, attempt, attempts)
        return False

    def get_provider_name(self) -> str:
        return "http"


def get_sms_gateway(settings: Settings | None = None) -> SMSGateway:
    """Build the gateway selected by ``SMS_PROVIDER``."""
    settings = settings or get_settings()
    if settings.sms_provider == "http":
        return HttpSMSGateway(settings)
    if settings.sms_provider != "stub":
        log.warning("Unknown SMS_PROVIDER %r, falling back to stub", settings.sms_provider)
    elif settings.app_env == "prod":
        log.warning("Stub SMS gateway active in production")
    return StubSMSGateway()
