"""Pydantic schemas for the Shopify connection endpoints."""

from datetime import datetime
from typing import Any

from pydantic import Field

from storelink.models.connection import StoreConnection
from storelink.schemas.common import BaseSchema


class AuthorizeResponse(BaseSchema):
    """A started authorization attempt."""

    authorize_url: str
    state: str
    shop_domain: str


class ConnectRequest(BaseSchema):
    """Authorization callback relayed by the dashboard."""

    code: str = Field(..., min_length=1)
    shop: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)


class ShopInfo(BaseSchema):
    """Public shop metadata. Never carries credentials."""

    domain: str
    name: str
    email: str | None = None
    currency: str | None = None
    timezone: str | None = None
    plan: str | None = None

    @classmethod
    def from_connection(cls, connection: StoreConnection) -> "ShopInfo":
        meta = connection.shop_metadata
        return cls(
            domain=connection.provider_host,
            name=meta.name,
            email=meta.email,
            currency=meta.currency,
            timezone=meta.timezone,
            plan=meta.plan_name,
        )


class ConnectResponse(BaseSchema):
    """Result of a successful connect."""

    success: bool = True
    shop: ShopInfo
    scope: str
    connected_at: datetime
    webhooks_registered: bool

    @classmethod
    def from_connection(cls, connection: StoreConnection) -> "ConnectResponse":
        return cls(
            shop=ShopInfo.from_connection(connection),
            scope=",".join(sorted(connection.granted_scopes)),
            connected_at=connection.connected_at,
            webhooks_registered=connection.webhooks_registered,
        )


class StoreResponse(BaseSchema):
    """A connected store as shown to dashboard users."""

    shop_domain: str
    status: str
    shop: ShopInfo
    scopes: list[str]
    connected_at: datetime
    webhooks_registered: bool

    @classmethod
    def from_connection(cls, connection: StoreConnection) -> "StoreResponse":
        return cls(
            shop_domain=connection.shop_domain,
            status=connection.status.value,
            shop=ShopInfo.from_connection(connection),
            scopes=sorted(connection.granted_scopes),
            connected_at=connection.connected_at,
            webhooks_registered=connection.webhooks_registered,
        )


class StoreListResponse(BaseSchema):
    items: list[StoreResponse]
    total: int


class DisconnectResponse(BaseSchema):
    """Result of disconnecting a store."""

    shop_domain: str
    removed: bool
    remote_revoked: bool
    error: str | None = None


class StoreDataResponse(BaseSchema):
    """A page of the shop's orders, products or customers, as the provider returns them."""

    shop_domain: str
    type: str
    items: list[dict[str, Any]]
    count: int
