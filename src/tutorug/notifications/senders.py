"""
Notification senders with provider abstraction.

SMS goes through the Africa's Talking messaging API, email through SendGrid.
Both implement ``send(recipient, template_id, params) -> SendResult`` and never
raise: a failed delivery is logged and reported as ``success=False`` so it can
not roll back the business change that triggered it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from tutorug.auth.phone_validation import normalize_phone_number
from tutorug.config import get_settings
from tutorug.notifications.templates import render

logger = structlog.get_logger()


@dataclass
class SendResult:
    success: bool
    error: str | None = None
    message_id: str | None = None


class BaseSender(ABC):
    """Abstract base class for notification channels."""

    channel: str = "base"

    @abstractmethod
    async def deliver(self, recipient: str, subject: str, html_body: str, text_body: str) -> SendResult:
        """Deliver a rendered message."""
        ...

    async def send(self, recipient: str, template_id: str, params: dict[str, Any]) -> SendResult:
        """Render ``template_id`` and deliver it."""
        try:
            subject, html_body, text_body = render(template_id, params)
            return await self.deliver(recipient, subject, html_body, text_body)
        except Exception as e:
            logger.exception(
                "notification_send_failed",
                channel=self.channel,
                template=template_id,
            )
            return SendResult(success=False, error=str(e))


class SMSSender(BaseSender):
    """Send SMS via the Africa's Talking messaging API."""

    channel = "sms"

    def __init__(
        self,
        api_key: str,
        username: str,
        sender_id: str,
        base_url: str,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key
        self.username = username
        self.sender_id = sender_id
        self.base_url = base_url
        self.timeout = timeout
        self._client = client

    async def deliver(self, recipient: str, subject: str, html_body: str, text_body: str) -> SendResult:
        to = normalize_phone_number(recipient)
        client = self._client or httpx.AsyncClient()
        try:
            response = await client.post(
                self.base_url,
                headers={"apiKey": self.api_key, "Accept": "application/json"},
                data={
                    "username": self.username,
                    "to": to,
                    "message": text_body,
                    "from": self.sender_id,
                },
                timeout=self.timeout,
            )
            response.raise_for_status()
        finally:
            if self._client is None:
                await client.aclose()

        recipients = response.json().get("SMSMessageData", {}).get("Recipients", [])
        message_id = recipients[0].get("messageId") if recipients else None
        logger.info("sms_sent", to=to, subject=subject, message_id=message_id)
        return SendResult(success=True, message_id=message_id)


class EmailSender(BaseSender):
    """Send email via the SendGrid v3 API."""

    channel = "email"

    def __init__(
        self,
        api_key: str,
        from_address: str,
        from_name: str,
        base_url: str,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key
        self.from_address = from_address
        self.from_name = from_name
        self.base_url = base_url
        self.timeout = timeout
        self._client = client

    async def deliver(self, recipient: str, subject: str, html_body: str, text_body: str) -> SendResult:
        client = self._client or httpx.AsyncClient()
        try:
            response = await client.post(
                self.base_url,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json={
                    "personalizations": [{"to": [{"email": recipient}]}],
                    "from": {"email": self.from_address, "name": self.from_name},
                    "subject": subject,
                    "content": [
                        {"type": "text/plain", "value": text_body},
                        {"type": "text/html", "value": html_body},
                    ],
                },
                timeout=self.timeout,
            )
            response.raise_for_status()
        finally:
            if self._client is None:
                await client.aclose()

        message_id = response.headers.get("X-Message-Id")
        logger.info("email_sent", to=recipient, subject=subject, message_id=message_id)
        return SendResult(success=True, message_id=message_id)


def create_sms_sender() -> SMSSender:
    settings = get_settings()
    return SMSSender(
        api_key=settings.sms_api_key,
        username=settings.sms_username,
        sender_id=settings.sms_sender_id,
        base_url=settings.sms_base_url,
        timeout=settings.external_timeout_seconds,
    )


def create_email_sender() -> EmailSender:
    settings = get_settings()
    return EmailSender(
        api_key=settings.email_api_key,
        from_address=settings.email_from_address,
        from_name=settings.email_from_name,
        base_url=settings.email_base_url,
        timeout=settings.external_timeout_seconds,
    )
