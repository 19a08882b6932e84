"""Render back-in-stock notifications and hand them to an email transport."""

from dataclasses import dataclass
from datetime import datetime, timezone
from html import escape
from typing import Any, Protocol

import structlog

from email_worker.services.mock_email_sender import MockEmailSender
from email_worker.services.smtp_email_sender import SmtpEmailSender
from notification_service.config import Settings, get_settings
from notification_service.services.mail import NotificationContext, NotificationKind

logger = structlog.get_logger()


class EmailTransport(Protocol):
    async def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: str | None = None,
        from_email: str = ...,
        from_name: str = ...,
        metadata: dict[str, Any] | None = None,
    ) -> dict[str, Any]: ...


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    html: str
    text: str


# =============================================================================
# Templates
# =============================================================================

_HTML_LAYOUT = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{subject}</title>
</head>
<body style="margin: 0; padding: 0; font-family: Arial, sans-serif; background-color: #f4f4f4;">
  <div style="max-width: 600px; margin: 20px auto; background-color: #ffffff; padding: 20px; border: 1px solid #e1e1e1; border-radius: 8px;">
    <h1 style="color: #333; font-size: 28px; text-align: center;">{headline}</h1>
    <p style="color: #666; font-size: 16px; line-height: 1.6;">{body}</p>
    <div style="text-align: center; margin: 30px 0;">
      <a href="{product_url}" style="display: inline-block; padding: 15px 30px; color: #ffffff; background-color: #000000; text-decoration: none; border-radius: 4px; font-weight: bold;">{button}</a>
    </div>
    <div style="background-color: #f9f9f9; padding: 20px; border-radius: 8px;">
      <p style="color: #666; font-size: 14px; margin: 5px 0;"><strong>Product:</strong> {product_title}</p>
      <p style="color: #666; font-size: 14px; margin: 5px 0;"><strong>Store:</strong> {store}</p>
    </div>
    <hr style="border: none; border-top: 1px solid #e1e1e1; margin: 30px 0;">
    <p style="color: #999; font-size: 12px; text-align: center;">
      This email was sent by {store} because you subscribed to back-in-stock notifications.<br>
      &copy; {year} {store}. All rights reserved.
    </p>
  </div>
</body>
</html>
"""

_TEXT_LAYOUT = """{headline}

{body}

Shop now: {product_url}

This email was sent by {store} because you subscribed to back-in-stock notifications.
"""


def _copy(kind: NotificationKind, context: NotificationContext) -> tuple[str, str, str, str]:
    """Subject, headline, body and button text for a notification kind."""
    title = context.product_title
    match kind:
        case NotificationKind.FIRST | NotificationKind.THANKYOU:
            return (
                f"{title} is back in stock!",
                "Good news!",
                f"{title} is back in stock. Grab it before it sells out again.",
                "Shop Now",
            )
        case NotificationKind.REMINDER:
            number = context.reminder_number or 1
            return (
                f"Reminder: {title} is still available",
                "Still thinking it over?",
                f"{title} is back in stock and still available. "
                f"This is reminder {number} about your back-in-stock alert.",
                "View Product",
            )


def render_notification(kind: NotificationKind, context: NotificationContext) -> RenderedEmail:
    """Render the subject, HTML and plain-text parts of a notification."""
    subject, headline, body, button = _copy(kind, context)
    store = context.shop_domain or context.shop_id or "Notyys"

    html = _HTML_LAYOUT.format(
        subject=escape(subject),
        headline=escape(headline),
        body=escape(body),
        product_url=escape(context.product_url, quote=True),
        button=escape(button),
        product_title=escape(context.product_title),
        store=escape(store),
        year=datetime.now(timezone.utc).year,
    )
    text = _TEXT_LAYOUT.format(
        headline=headline,
        body=body,
        product_url=context.product_url,
        store=store,
    )
    return RenderedEmail(subject=subject, html=html, text=text)


# =============================================================================
# Mail sender
# =============================================================================


class EmailNotificationSender:
    """Mail sender used by the dispatcher: render, then transmit."""

    def __init__(
        self,
        transport: EmailTransport,
        from_email: str = "noreply@notyys.app",
        from_name: str = "Back in Stock Notifications",
    ):
        self.transport = transport
        self.from_email = from_email
        self.from_name = from_name

    async def send(
        self,
        kind: NotificationKind,
        recipient: str,
        context: NotificationContext,
    ) -> bool:
        """Return True only when the transport confirms the send."""
        rendered = render_notification(kind, context)
        try:
            result = await self.transport.send_email(
                to_email=recipient,
                subject=rendered.subject,
                html_content=rendered.html,
                text_content=rendered.text,
                from_email=self.from_email,
                from_name=self.from_name,
                metadata={
                    "kind": kind.value,
                    "shop_id": context.shop_id,
                    "reminder_number": context.reminder_number,
                },
            )
        except Exception as e:
            logger.error("Error sending notification email", kind=kind.value, error=str(e))
            return False

        sent = bool(result.get("success"))
        if not sent:
            logger.warning("Notification email not sent", kind=kind.value, result=result)
        return sent


def get_mail_sender(settings: Settings | None = None) -> EmailNotificationSender:
    """Build the mail sender selected by ``EMAIL_SERVICE``."""
    settings = settings or get_settings()

    transport: EmailTransport
    if settings.email_service == "smtp":
        transport = SmtpEmailSender(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_user,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            timeout=settings.smtp_timeout_seconds,
        )
    else:
        transport = MockEmailSender(settings.mock_email_storage_path)

    return EmailNotificationSender(
        transport,
        from_email=settings.email_from_address,
        from_name=settings.email_from_name,
    )
