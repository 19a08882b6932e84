"""Typed queue job payloads.

The queue stores its payload as a JSON blob. It is decoded into
:class:`ProductSnapshot` as soon as a job is loaded so business logic never
handles untyped mappings.
"""

from datetime import datetime

import orjson
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator


class InvalidPayloadError(ValueError):
    """Raised when a stored job payload cannot be decoded."""


class ProductSnapshot(BaseModel):
    """Product details captured when a job was enqueued."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    product_id: str | None = None
    product_title: str | None = None
    product_handle: str | None = None
    product_url: str | None = None
    shop_domain: str | None = None
    variant_id: str | None = None
    inventory: int | None = None

    # Reminder bookkeeping
    reminder_number: int | None = None
    original_notification_sent_at: datetime | None = None

    @field_validator("product_id", "variant_id", mode="before")
    @classmethod
    def coerce_id(cls, v: object) -> object:
        # Shopify sends numeric ids
        if isinstance(v, int):
            return str(v)
        return v

    def resolve_product_url(self) -> str:
        """Storefront URL built from handle and domain, else the stored URL."""
        if self.product_handle and self.shop_domain:
            return f"https://{self.shop_domain}/products/{self.product_handle}"
        return self.product_url or ""

    def for_reminder(
        self,
        reminder_number: int,
        original_notification_sent_at: datetime | None = None,
    ) -> "ProductSnapshot":
        """Copy of this snapshot tagged for the given reminder ordinal."""
        update: dict[str, object] = {"reminder_number": reminder_number}
        if original_notification_sent_at is not None:
            update["original_notification_sent_at"] = original_notification_sent_at
        return self.model_copy(update=update)

    def dumps(self) -> str:
        return orjson.dumps(self.model_dump(mode="json", exclude_none=True)).decode()

    @classmethod
    def loads(cls, raw: str | bytes | None) -> "ProductSnapshot":
        if not raw:
            return cls()
        try:
            return cls.model_validate(orjson.loads(raw))
        except (orjson.JSONDecodeError, ValidationError) as e:
            raise InvalidPayloadError(f"Invalid job payload: {e}") from e
