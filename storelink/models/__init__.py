"""Domain models."""

from storelink.models.connection import (
    ConnectionStatus,
    OAuthState,
    ShopMetadata,
    StoreConnection,
    WebhookEvent,
)

__all__ = [
    "ConnectionStatus",
    "OAuthState",
    "ShopMetadata",
    "StoreConnection",
    "WebhookEvent",
]
