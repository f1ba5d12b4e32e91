"""Outbound notification channel.

Thin client for the notification gateway that fans a message out over
push, SMS and email. Channel-specific retries live in the gateway; a
single call here is a single delivery attempt.
"""

import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import httpx

from sos_api.config import settings
from sos_api.core.errors import NotificationChannelError
from sos_api.models.alert_notification import RecipientType


@dataclass(frozen=True)
class Recipient:
    """Someone a notification can be delivered to."""

    name: str
    recipient_type: RecipientType | None = None  # None for the alert owner
    phone: str | None = None
    email: str | None = None
    user_id: uuid.UUID | None = None  # push target for responders / account holders
    contact_id: uuid.UUID | None = None
    responder_id: uuid.UUID | None = None
    distance_km: float | None = None


NotificationSender = Callable[[Recipient, str], Awaitable[None]]


async def send_notification(recipient: Recipient, message: str) -> None:
    """Deliver one message to one recipient through the gateway.

    Raises:
        NotificationChannelError: If the gateway rejects the request, returns
            a non-2xx status or cannot be reached.
    """
    if not (recipient.phone or recipient.email or recipient.user_id):
        raise NotificationChannelError(
            "Recipient has no phone, email or account to notify",
            recipient=recipient.name,
        )

    payload = {
        "recipient_type": (
            recipient.recipient_type.value if recipient.recipient_type else "account_holder"
        ),
        "name": recipient.name,
        "phone": recipient.phone,
        "email": recipient.email,
        "user_id": str(recipient.user_id) if recipient.user_id else None,
        "message": message,
    }
    headers = {}
    if settings.notification_gateway_api_key:
        headers["Authorization"] = f"Bearer {settings.notification_gateway_api_key}"

    try:
        async with httpx.AsyncClient(
            timeout=settings.dispatch_recipient_timeout_seconds
        ) as client:
            response = await client.post(
                settings.notification_gateway_url,
                json=payload,
                headers=headers,
            )
    except httpx.HTTPError as exc:
        raise NotificationChannelError(str(exc) or type(exc).__name__) from exc

    if response.status_code >= 300:
        raise NotificationChannelError(
            f"Gateway returned {response.status_code}",
            status_code=response.status_code,
        )


def get_notification_sender() -> NotificationSender:
    """FastAPI dependency returning the sender used by request handlers."""
    return send_notification
