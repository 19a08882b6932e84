"""Shopify webhook signature verification.

Shopify signs the raw request body with the app's shared secret
(HMAC-SHA256, base64) and sends it in ``X-Shopify-Hmac-Sha256``.
"""

import base64
import hashlib
import hmac
from dataclasses import dataclass
from typing import Mapping

from notification_service.config import Settings

HMAC_HEADER = "X-Shopify-Hmac-Sha256"
SHOP_DOMAIN_HEADER = "X-Shopify-Shop-Domain"
TOPIC_HEADER = "X-Shopify-Topic"


@dataclass(frozen=True)
class WebhookSignatureVerification:
    verified: bool
    reason: str | None = None


def compute_shopify_hmac(secret: str, body: bytes) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_shopify_webhook(
    *,
    settings: Settings,
    body: bytes,
    headers: Mapping[str, str],
) -> WebhookSignatureVerification:
    if not settings.shopify_webhook_verification:
        return WebhookSignatureVerification(verified=True)

    secret = settings.shopify_webhook_secret
    if not secret:
        return WebhookSignatureVerification(verified=False, reason="webhook_secret_missing")

    signature = (headers.get(HMAC_HEADER) or "").strip()
    if not signature:
        return WebhookSignatureVerification(verified=False, reason="signature_missing")

    expected = compute_shopify_hmac(secret, body)
    if not hmac.compare_digest(signature.encode("ascii", "replace"), expected.encode("ascii")):
        return WebhookSignatureVerification(verified=False, reason="signature_mismatch")

    return WebhookSignatureVerification(verified=True)
