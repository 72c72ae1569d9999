"""High-level notification fan-out (SMS first, email when the user has one)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import structlog

from tutorug.notifications.senders import BaseSender, SendResult, create_email_sender, create_sms_sender

logger = structlog.get_logger()


@dataclass
class Recipient:
    """Contact details captured inside a transaction, used after commit."""

    user_id: int
    phone_number: str
    email: str | None = None
    first_name: str | None = None


class NotificationService:
    def __init__(self, sms: BaseSender | None = None, email: BaseSender | None = None) -> None:
        self.sms = sms if sms is not None else create_sms_sender()
        self.email = email

    async def notify(
        self,
        recipient: Recipient,
        template_id: str,
        params: dict[str, Any] | None = None,
    ) -> dict[str, SendResult]:
        """Send ``template_id`` on every channel the recipient can be reached on."""
        context = {"first_name": recipient.first_name, **(params or {})}
        results = {"sms": await self.sms.send(recipient.phone_number, template_id, context)}
        if self.email is not None and recipient.email:
            results["email"] = await self.email.send(recipient.email, template_id, context)

        failed = [channel for channel, result in results.items() if not result.success]
        if failed:
            logger.warning(
                "notification_partially_failed",
                user_id=recipient.user_id,
                template=template_id,
                channels=failed,
            )
        return results


def create_notification_service() -> NotificationService:
    return NotificationService(sms=create_sms_sender(), email=create_email_sender())
