"""Unit tests for notification rendering and the mail sender."""

from pathlib import Path

import pytest

from email_worker.services.mail_sender import (
    EmailNotificationSender,
    get_mail_sender,
    render_notification,
)
from email_worker.services.mock_email_sender import MockEmailSender
from email_worker.services.smtp_email_sender import SmtpEmailSender
from notification_service.config import Settings
from notification_service.services.mail import NotificationContext, NotificationKind

CONTEXT = NotificationContext(
    product_title="Mug <Blue>",
    product_url="https://shop.test/products/mug?a=1&b=2",
    shop_id="shop.test",
    shop_domain="shop.test",
)


class RaisingTransport:
    async def send_email(self, **kwargs):
        raise OSError("connection refused")


class TestRender:
    def test_back_in_stock_subject(self) -> None:
        rendered = render_notification(NotificationKind.THANKYOU, CONTEXT)
        assert rendered.subject == "Mug <Blue> is back in stock!"

    def test_html_is_escaped(self) -> None:
        rendered = render_notification(NotificationKind.FIRST, CONTEXT)
        assert "Mug &lt;Blue&gt;" in rendered.html
        assert "Mug <Blue>" not in rendered.html
        assert 'href="https://shop.test/products/mug?a=1&amp;b=2"' in rendered.html

    def test_text_part_has_link(self) -> None:
        rendered = render_notification(NotificationKind.FIRST, CONTEXT)
        assert "https://shop.test/products/mug?a=1&b=2" in rendered.text

    def test_reminder_mentions_number(self) -> None:
        context = NotificationContext(
            product_title="Mug", product_url="https://x.test", shop_id="s", reminder_number=2
        )
        rendered = render_notification(NotificationKind.REMINDER, context)
        assert rendered.subject == "Reminder: Mug is still available"
        assert "reminder 2" in rendered.text


class TestEmailNotificationSender:
    @pytest.mark.asyncio
    async def test_sends_through_transport(self, tmp_path: Path) -> None:
        transport = MockEmailSender(str(tmp_path))
        sender = EmailNotificationSender(transport, from_email="alerts@shop.test")

        assert await sender.send(NotificationKind.THANKYOU, "a@example.com", CONTEXT) is True

        [email] = transport.get_sent_emails()
        assert email["to_email"] == "a@example.com"
        assert email["from_email"] == "alerts@shop.test"
        assert email["metadata"]["kind"] == "thankyou"
        assert transport.get_all_stored_emails()[0]["subject"] == email["subject"]

    @pytest.mark.asyncio
    async def test_transport_failure_returns_false(self, tmp_path: Path) -> None:
        sender = EmailNotificationSender(MockEmailSender(str(tmp_path), fail=True))
        assert await sender.send(NotificationKind.FIRST, "a@example.com", CONTEXT) is False

    @pytest.mark.asyncio
    async def test_transport_exception_returns_false(self) -> None:
        sender = EmailNotificationSender(RaisingTransport())
        assert await sender.send(NotificationKind.FIRST, "a@example.com", CONTEXT) is False


class TestFactory:
    def test_mock_by_default(self, tmp_path: Path) -> None:
        sender = get_mail_sender(Settings(mock_email_storage_path=str(tmp_path)))
        assert isinstance(sender.transport, MockEmailSender)

    def test_smtp_when_configured(self) -> None:
        sender = get_mail_sender(
            Settings(email_service="smtp", smtp_host="smtp.test", smtp_port=587, smtp_timeout_seconds=5)
        )
        assert isinstance(sender.transport, SmtpEmailSender)
        assert sender.transport.host == "smtp.test"
        assert sender.transport.timeout == 5


class TestMockStorage:
    @pytest.mark.asyncio
    async def test_clear_stored_emails(self, tmp_path: Path) -> None:
        transport = MockEmailSender(str(tmp_path))
        await transport.send_email("a@example.com", "Hi", "<p>Hi</p>")
        await transport.send_email("b@example.com", "Hi", "<p>Hi</p>")

        assert len(transport.get_sent_emails(to_email="b@example.com")) == 1
        assert transport.clear_stored_emails() == 2
        assert transport.get_all_stored_emails() == []
