"""Mail sender contract consumed by the dispatcher.

Rendering and transport live in ``email_worker.services.mail_sender``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Protocol


class NotificationKind(str, Enum):
    """Message templates the mail sender knows how to render."""

    FIRST = "first"
    THANKYOU = "thankyou"
    REMINDER = "reminder"


@dataclass(frozen=True)
class NotificationContext:
    """Everything needed to render one notification."""

    product_title: str
    product_url: str
    shop_id: str
    shop_domain: str | None = None
    reminder_number: int | None = None


class MailSender(Protocol):
    """Renders and transmits a notification.

    Returns True only on confirmed transmission. Implementations should not
    raise, but the dispatcher treats an exception the same as False.
    """

    async def send(
        self,
        kind: NotificationKind,
        recipient: str,
        context: NotificationContext,
    ) -> bool: ...
