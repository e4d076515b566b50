"""
Outbound SMS. Twilio's REST API over httpx when credentials are configured,
otherwise a sender that only logs the message.
"""
from __future__ import annotations

import logging
import re
from typing import Any, Optional, Protocol

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from config import settings

logger = logging.getLogger(__name__)

TEMPLATES: dict[str, str] = {
    "submission_no_docs": (
        "Hi {first_name}, thanks for applying with Boreal Financial for {business_name}. "
        "We still need your documents to review the application. Upload them here: {upload_url}"
    ),
    "documents_received": (
        "Hi {first_name}, we received your documents for {business_name}. Our team will be in touch shortly."
    ),
}


class SmsError(Exception):
    pass


class SmsSender(Protocol):
    async def send(self, to: str, body: str) -> dict[str, Any]: ...


def normalize_phone(phone: Optional[str], default_country_code: str = "1") -> Optional[str]:
    """Normalize to E.164. Ten-digit numbers are treated as North American."""
    if not phone:
        return None
    raw = str(phone).strip()
    digits = re.sub(r"\D", "", raw)
    if not digits:
        return None
    if raw.startswith("+"):
        return f"+{digits}" if 8 <= len(digits) <= 15 else None
    if len(digits) == 10:
        return f"+{default_country_code}{digits}"
    if len(digits) == 11 and digits.startswith(default_country_code):
        return f"+{digits}"
    return None


def render_template(name: str, **values: Any) -> str:
    try:
        template = TEMPLATES[name]
    except KeyError as e:
        raise SmsError(f"Unknown SMS template: {name}") from e
    return template.format(**values)


class TwilioSmsSender:
    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        base_url: str = "https://api.twilio.com/2010-04-01",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def send(self, to: str, body: str) -> dict[str, Any]:
        url = f"{self.base_url}/Accounts/{self.account_sid}/Messages.json"
        async with httpx.AsyncClient(
            auth=(self.account_sid, self.auth_token), timeout=self.timeout, transport=self._transport
        ) as client:
            response = await client.post(url, data={"To": to, "From": self.from_number, "Body": body})
        if response.status_code >= 400:
            raise SmsError(f"Twilio returned {response.status_code}: {response.text[:200]}")
        data = response.json()
        logger.info("SMS sent to %s sid=%s", to, data.get("sid"))
        return {"sid": data.get("sid"), "status": data.get("status")}


class LoggingSmsSender:
    """Used when Twilio is not configured."""

    async def send(self, to: str, body: str) -> dict[str, Any]:
        logger.info("SMS (not sent, Twilio not configured) to=%s body=%r", to, body)
        return {"sid": None, "status": "logged"}


def get_sms_sender() -> SmsSender:
    if settings.sms_enabled:
        return TwilioSmsSender(
            settings.twilio_account_sid,
            settings.twilio_auth_token,
            settings.twilio_from_number,
            base_url=settings.twilio_base_url,
            timeout=settings.sms_timeout_seconds,
        )
    return LoggingSmsSender()
