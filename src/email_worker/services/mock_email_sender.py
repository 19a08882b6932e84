"""Filesystem email transport for development and tests."""

from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from uuid import uuid4

import orjson
import structlog

logger = structlog.get_logger()

DEFAULT_STORAGE_PATH = "/tmp/restock_mock_emails"


class MockEmailSender:
    """
    Email transport that writes each message to a JSON file.

    Used when ``EMAIL_SERVICE=mock``. The files outlive the process, so a
    queue pass run from cron can be inspected from the API process or a
    shell. ``fail=True`` reports every send as failed, which drives the
    dispatcher's retry path without a broken SMTP server.
    """

    def __init__(self, storage_path: str | None = None, fail: bool = False):
        self.storage_path = Path(storage_path or DEFAULT_STORAGE_PATH)
        self.storage_path.mkdir(parents=True, exist_ok=True)
        self.fail = fail
        self.sent_emails: list[dict[str, Any]] = []

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
        if self.fail:
            logger.warning("Mock email failure", to_email=to_email, subject=subject)
            return {"success": False, "status": "failed"}

        sent_at = datetime.now(timezone.utc)
        record = {
            "message_id": str(uuid4()),
            "to_email": to_email,
            "from_email": from_email,
            "from_name": from_name,
            "subject": subject,
            "html_content": html_content,
            "text_content": text_content,
            "metadata": metadata or {},
            "sent_at": sent_at.isoformat(),
            "status": "sent",
        }
        path = self.storage_path / f"{sent_at:%Y%m%d_%H%M%S_%f}_{record['message_id']}.json"
        path.write_bytes(orjson.dumps(record, option=orjson.OPT_INDENT_2))
        self.sent_emails.append(record)

        logger.info(
            "Mock email stored",
            message_id=record["message_id"],
            to_email=to_email,
            subject=subject,
            path=str(path),
        )
        return {
            "success": True,
            "message_id": record["message_id"],
            "status": "sent",
            "stored_at": str(path),
        }

    def get_sent_emails(self, limit: int = 50, to_email: str | None = None) -> list[dict[str, Any]]:
        """Messages sent through this instance, newest last."""
        emails = [e for e in self.sent_emails if to_email is None or e["to_email"] == to_email]
        return emails[-limit:]

    def get_all_stored_emails(self) -> list[dict[str, Any]]:
        """Every stored message in the directory, oldest first."""
        return [orjson.loads(path.read_bytes()) for path in sorted(self.storage_path.glob("*.json"))]

    def clear_stored_emails(self) -> int:
        paths = list(self.storage_path.glob("*.json"))
        for path in paths:
            path.unlink()
        self.sent_emails.clear()

        logger.info("Cleared mock emails", count=len(paths))
        return len(paths)
