"""Business logic services."""

from notification_service.services.dispatcher import NotificationDispatcher
from notification_service.services.queue_store import QueueStore
from notification_service.services.reminder_scheduler import ReminderScheduler
from notification_service.services.settings_store import ShopNotificationSettingsStore
from notification_service.services.subscription_store import SubscriptionStore

__all__ = [
    "NotificationDispatcher",
    "QueueStore",
    "ReminderScheduler",
    "ShopNotificationSettingsStore",
    "SubscriptionStore",
]
