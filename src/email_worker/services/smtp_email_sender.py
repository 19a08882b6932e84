"""SMTP email transport."""

import asyncio
import smtplib
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from typing import Any

import structlog

logger = structlog.get_logger()


class SmtpEmailSender:
    """
    Deliver mail through an SMTP relay (Mailtrap in development).

    smtplib is blocking, so each send runs in a worker thread and is bounded
    by ``timeout`` seconds.
    """

    def __init__(
        self,
        host: str,
        port: int,
        username: str | None = None,
        password: str | None = None,
        use_tls: bool = True,
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    def _build_message(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: str | None,
        from_email: str,
        from_name: str,
    ) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = formataddr((from_name, from_email))
        msg["To"] = to_email
        msg["Message-ID"] = make_msgid(domain=from_email.rsplit("@", 1)[-1])
        msg.set_content(text_content or subject)
        msg.add_alternative(html_content, subtype="html")
        return msg

    def _deliver(self, msg: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.use_tls:
                server.starttls()
            if self.username and self.password:
                server.login(self.username, self.password)
            server.send_message(msg)

    async def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: str | None = None,
        from_email: str = "noreply@notyys.app",
        from_name: str = "Back in Stock Notifications",
        metadata: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Send one message. Transport errors are reported, not raised."""
        msg = self._build_message(
            to_email, subject, html_content, text_content, from_email, from_name
        )
        try:
            await asyncio.wait_for(asyncio.to_thread(self._deliver, msg), self.timeout)
        except (smtplib.SMTPException, OSError, asyncio.TimeoutError) as e:
            logger.error("SMTP send failed", to_email=to_email, error=str(e))
            return {"success": False, "status": "failed", "error": str(e)}

        logger.info("Email sent", message_id=msg["Message-ID"], to_email=to_email)
        return {"success": True, "message_id": msg["Message-ID"], "status": "sent"}
