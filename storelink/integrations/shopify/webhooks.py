"""Shopify webhook topics and HMAC verification."""

import base64
import hashlib
import hmac

HMAC_HEADER = "X-Shopify-Hmac-Sha256"
SHOP_DOMAIN_HEADER = "X-Shopify-Shop-Domain"
TOPIC_HEADER = "X-Shopify-Topic"
WEBHOOK_ID_HEADER = "X-Shopify-Webhook-Id"

# Mandatory for data-protection compliance
CUSTOMERS_DATA_REQUEST = "customers/data_request"
CUSTOMERS_REDACT = "customers/redact"
SHOP_REDACT = "shop/redact"

# Optional business events
ORDERS_CREATE = "orders/create"
PRODUCTS_UPDATE = "products/update"
APP_UNINSTALLED = "app/uninstalled"

MANDATORY_TOPICS: tuple[str, ...] = (CUSTOMERS_DATA_REQUEST, CUSTOMERS_REDACT, SHOP_REDACT)
BUSINESS_TOPICS: tuple[str, ...] = (ORDERS_CREATE, PRODUCTS_UPDATE, APP_UNINSTALLED)


def compute_signature(data: bytes, secret: str) -> str:
    """Base64-encoded HMAC-SHA256 of ``data``."""
    return base64.b64encode(
        hmac.new(
            secret.encode("utf-8"),
            data,
            hashlib.sha256,
        ).digest()
    ).decode("utf-8")


def verify_webhook(data: bytes, hmac_header: str | None, secret: str) -> bool:
    """Verify a Shopify webhook's HMAC-SHA256 signature.

    Args:
        data: The raw request body bytes, untouched.
        hmac_header: The X-Shopify-Hmac-Sha256 header value.
        secret: The webhook signing secret.

    Returns:
        True if the signature is valid.
    """
    if not hmac_header or not secret:
        return False

    computed = compute_signature(data, secret)
    return hmac.compare_digest(computed.encode("utf-8"), hmac_header.encode("utf-8"))
