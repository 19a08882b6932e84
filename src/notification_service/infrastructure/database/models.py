"""SQLAlchemy models for the notification queue.

Subscriptions and queue jobs are owned by this service. Shop notification
settings are written by the admin app and only read here.
"""

from datetime import datetime
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all models."""


def _enum_column(enum_cls: type[PyEnum]) -> Enum:
    # Store the lowercase values ("pending", "reminder_email") rather than member names
    return Enum(
        enum_cls,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        length=32,
        validate_strings=True,
    )


# =============================================================================
# Enums
# =============================================================================


class SubscriptionStatus(str, PyEnum):
    """Lifecycle of a back-in-stock subscription."""

    ACTIVE = "active"
    NOTIFIED = "notified"
    CANCELLED = "cancelled"


class QueueJobType(str, PyEnum):
    """Kinds of queued notification work."""

    FIRST_NOTIFICATION = "first_notification"
    THANKYOU_NOTIFICATION = "thankyou_notification"
    REMINDER_EMAIL = "reminder_email"
    REMINDER_SMS = "reminder_sms"


REMINDER_JOB_TYPES = (QueueJobType.REMINDER_EMAIL, QueueJobType.REMINDER_SMS)


class QueueJobStatus(str, PyEnum):
    """Queue job status. Completed, failed and cancelled are terminal."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


# =============================================================================
# Subscriptions
# =============================================================================


class Subscription(Base):
    """A shopper's request to be told when a product is back in stock.

    One row per (email, product_id, shop_id). Subscribing again reactivates
    the existing row instead of inserting a duplicate.
    """

    __tablename__ = "subscriptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    product_id: Mapped[str] = mapped_column(String(255), nullable=False)
    product_title: Mapped[Optional[str]] = mapped_column(String(500))
    product_url: Mapped[Optional[str]] = mapped_column(String(2048))
    shop_id: Mapped[str] = mapped_column(String(255), nullable=False)

    status: Mapped[SubscriptionStatus] = mapped_column(
        _enum_column(SubscriptionStatus),
        default=SubscriptionStatus.ACTIVE,
        nullable=False,
    )

    # Lifecycle timestamps
    subscribed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    reactivated_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    reactivation_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    notified_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    purchase_detected_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    # Reminder cadence state
    reminder_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_reminder_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    # Request metadata captured by the storefront widget
    source: Mapped[Optional[str]] = mapped_column(String(50))
    user_agent: Mapped[Optional[str]] = mapped_column(String(1024))
    ip_address: Mapped[Optional[str]] = mapped_column(String(64))

    jobs: Mapped[list["QueueJob"]] = relationship(back_populates="subscription")

    __table_args__ = (
        UniqueConstraint("email", "product_id", "shop_id", name="uq_subscriptions_email_product_shop"),
        Index("ix_subscriptions_product_shop_status", "product_id", "shop_id", "status"),
    )


# =============================================================================
# Notification Queue
# =============================================================================


class QueueJob(Base):
    """A scheduled, retryable unit of notification work for one subscription.

    ``data`` holds the serialized product snapshot; it is decoded into a typed
    payload by the dispatcher, never passed around as a raw mapping.
    """

    __tablename__ = "notification_queue"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    subscription_id: Mapped[int] = mapped_column(
        ForeignKey("subscriptions.id"), nullable=False, index=True
    )
    type: Mapped[QueueJobType] = mapped_column(_enum_column(QueueJobType), nullable=False)
    scheduled_for: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[QueueJobStatus] = mapped_column(
        _enum_column(QueueJobStatus),
        default=QueueJobStatus.PENDING,
        nullable=False,
    )
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_attempts: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    data: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )

    subscription: Mapped[Subscription] = relationship(back_populates="jobs")

    __table_args__ = (
        Index("ix_notification_queue_due", "status", "scheduled_for"),
        Index("ix_notification_queue_processed", "status", "processed_at"),
    )


# =============================================================================
# Delivery Log
# =============================================================================


class NotificationLog(Base):
    """Record of a back-in-stock notification that was delivered."""

    __tablename__ = "notification_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    subscription_id: Mapped[int] = mapped_column(
        ForeignKey("subscriptions.id"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="sent")
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[Optional[str]] = mapped_column(Text)
    recipient: Mapped[str] = mapped_column(String(320), nullable=False)
    sent_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


# =============================================================================
# Shop Notification Settings (owned by the admin app)
# =============================================================================


class ShopNotificationSettings(Base):
    """Per-shop notification switches and reminder cadence."""

    __tablename__ = "shop_notification_settings"

    shop_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    auto_notification_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    first_email_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    reminder_email_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    reminder_sms_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    # Fractional values below one hour are honoured as minutes
    reminder_delay_hours: Mapped[Optional[float]] = mapped_column(Float)
    reminder_max_count: Mapped[Optional[int]] = mapped_column(Integer)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )
