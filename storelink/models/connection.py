"""Domain models for connected stores, OAuth states and webhook deliveries."""

import enum
from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr


def utcnow() -> datetime:
    return datetime.now(UTC)


class ConnectionStatus(str, enum.Enum):
    """Connection lifecycle status."""

    CONNECTED = "connected"
    REVOKED = "revoked"


class ShopMetadata(BaseModel):
    """Public shop details fetched from the provider after token exchange."""

    name: str = ""
    email: str | None = None
    currency: str | None = None
    timezone: str | None = None
    plan_name: str | None = None

    @classmethod
    def from_shop_payload(cls, shop: dict[str, Any]) -> "ShopMetadata":
        """Build metadata from the provider's ``shop`` JSON object."""
        return cls(
            name=shop.get("name") or "",
            email=shop.get("email"),
            currency=shop.get("currency"),
            timezone=shop.get("iana_timezone") or shop.get("timezone"),
            plan_name=shop.get("plan_name"),
        )


class StoreConnection(BaseModel):
    """A shop that completed the OAuth exchange.

    Keyed by ``shop_domain``. A record only exists once a valid access token
    was obtained. ``access_token`` is a ``SecretStr`` so it never leaks through
    ``model_dump`` or ``repr``.
    """

    model_config = ConfigDict(frozen=True)

    shop_domain: str
    access_token: SecretStr
    granted_scopes: frozenset[str] = frozenset()
    shop_metadata: ShopMetadata = Field(default_factory=ShopMetadata)
    connected_at: datetime = Field(default_factory=utcnow)
    webhooks_registered: bool = False
    status: ConnectionStatus = ConnectionStatus.CONNECTED

    @property
    def provider_host(self) -> str:
        return provider_host(self.shop_domain)

    def with_changes(self, **changes: Any) -> "StoreConnection":
        """Return a validated copy with the given fields replaced."""
        return type(self).model_validate({**dict(self), **changes})


class OAuthState(BaseModel):
    """An in-flight authorization attempt awaiting its callback."""

    nonce: str
    shop_domain: str
    created_at: datetime = Field(default_factory=utcnow)
    ttl: int = 600  # seconds

    @property
    def expires_at(self) -> datetime:
        return self.created_at + timedelta(seconds=self.ttl)

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or utcnow()) >= self.expires_at


class WebhookEvent(BaseModel):
    """An inbound webhook delivery exactly as received on the wire."""

    topic: str
    shop_domain_claimed: str = ""
    raw_body: bytes
    signature_header: str | None = None
    webhook_id: str | None = None
    received_at: datetime = Field(default_factory=utcnow)


def parse_scopes(scope: str | None) -> frozenset[str]:
    """Split the provider's comma-joined scope string."""
    if not scope:
        return frozenset()
    return frozenset(s.strip() for s in scope.split(",") if s.strip())


def provider_host(shop_domain: str) -> str:
    """Host name of a shop's admin API, e.g. ``demo-store.myshopify.com``."""
    return f"{shop_domain}.myshopify.com"
