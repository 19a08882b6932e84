"""Unit tests for the SMTP transport."""

import smtplib

import pytest

from email_worker.services import smtp_email_sender
from email_worker.services.smtp_email_sender import SmtpEmailSender


class FakeSMTP:
    instances: list["FakeSMTP"] = []
    fail_with: Exception | None = None

    def __init__(self, host: str, port: int, timeout: float):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.calls: list[str] = []
        self.messages = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        self.calls.append("starttls")

    def login(self, user, password):
        self.calls.append(f"login:{user}")

    def send_message(self, msg):
        if FakeSMTP.fail_with is not None:
            raise FakeSMTP.fail_with
        self.messages.append(msg)


@pytest.fixture
def fake_smtp(monkeypatch):
    FakeSMTP.instances = []
    FakeSMTP.fail_with = None
    monkeypatch.setattr(smtp_email_sender.smtplib, "SMTP", FakeSMTP)
    return FakeSMTP


class TestSmtpEmailSender:
    @pytest.mark.asyncio
    async def test_sends_multipart_message(self, fake_smtp) -> None:
        sender = SmtpEmailSender("smtp.test", 2525, "user", "secret", timeout=7)

        result = await sender.send_email(
            "a@example.com", "Back in stock", "<p>Hi</p>", "Hi",
            from_email="alerts@shop.test", from_name="Shop",
        )

        assert result["success"] is True
        [server] = fake_smtp.instances
        assert (server.host, server.port, server.timeout) == ("smtp.test", 2525, 7)
        assert server.calls == ["starttls", "login:user"]

        [msg] = server.messages
        assert msg["To"] == "a@example.com"
        assert msg["From"] == "Shop <alerts@shop.test>"
        assert msg["Subject"] == "Back in stock"
        assert msg.is_multipart()

    @pytest.mark.asyncio
    async def test_skips_login_without_credentials(self, fake_smtp) -> None:
        sender = SmtpEmailSender("smtp.test", 25, use_tls=False)

        await sender.send_email("a@example.com", "Hi", "<p>Hi</p>")

        assert fake_smtp.instances[0].calls == []

    @pytest.mark.asyncio
    async def test_smtp_error_is_reported(self, fake_smtp) -> None:
        fake_smtp.fail_with = smtplib.SMTPRecipientsRefused({"a@example.com": (550, b"no")})
        sender = SmtpEmailSender("smtp.test", 25)

        result = await sender.send_email("a@example.com", "Hi", "<p>Hi</p>")

        assert result["success"] is False
        assert result["status"] == "failed"
