"""Shared constants across the application."""

# Queue job limits
QUEUE_MAX_ATTEMPTS = 3
QUEUE_BATCH_SIZE = 10
QUEUE_RETRY_DELAY_MINUTES = 5
QUEUE_RETENTION_DAYS = 7

# Driver cadence
QUEUE_POLL_INTERVAL_SECONDS = 30
QUEUE_CLEANUP_INTERVAL_MINUTES = 60

# Reminder cadence defaults (used when a shop has no explicit value)
DEFAULT_REMINDER_DELAY_HOURS = 24.0
DEFAULT_REMINDER_MAX_COUNT = 2

# Fallbacks used when rendering a notification
DEFAULT_PRODUCT_TITLE = "Product"

# Error messages stored on queue jobs
ERROR_SUBSCRIPTION_NOT_FOUND = "Subscription not found"
ERROR_UNSUPPORTED_JOB_TYPE = "Unsupported job type"
ERROR_MAX_ATTEMPTS = "Max attempts reached"
ERROR_RETRYING = "Email sending failed, retrying"
ERROR_PURCHASE_DETECTED = "Purchase detected - reminders cancelled"
ERROR_SUBSCRIPTION_CANCELLED = "Subscription cancelled - reminders cancelled"
