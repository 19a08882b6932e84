"""Read-only access to per-shop notification settings."""

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from notification_service.infrastructure.database.models import ShopNotificationSettings
from shared.constants import DEFAULT_REMINDER_DELAY_HOURS, DEFAULT_REMINDER_MAX_COUNT


@dataclass(frozen=True)
class NotificationSettings:
    """Resolved settings for one shop, with defaults applied."""

    shop_id: str
    auto_notification_enabled: bool = False
    first_email_enabled: bool = False
    reminder_email_enabled: bool = False
    reminder_sms_enabled: bool = False
    reminder_delay_hours: float = DEFAULT_REMINDER_DELAY_HOURS
    reminder_max_count: int = DEFAULT_REMINDER_MAX_COUNT


class ShopNotificationSettingsStore:
    """Looks up shop settings. Shops without a row get the defaults."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, shop_id: str) -> NotificationSettings:
        row = await self.session.get(ShopNotificationSettings, shop_id)
        if row is None:
            return NotificationSettings(shop_id=shop_id)

        return NotificationSettings(
            shop_id=shop_id,
            auto_notification_enabled=bool(row.auto_notification_enabled),
            first_email_enabled=bool(row.first_email_enabled),
            reminder_email_enabled=bool(row.reminder_email_enabled),
            reminder_sms_enabled=bool(row.reminder_sms_enabled),
            # Zero or unset falls back to the defaults
            reminder_delay_hours=row.reminder_delay_hours or DEFAULT_REMINDER_DELAY_HOURS,
            reminder_max_count=row.reminder_max_count or DEFAULT_REMINDER_MAX_COUNT,
        )
