"""Connected store management endpoints."""

import logging

from fastapi import APIRouter, HTTPException, Query, status

from storelink.core.deps import CurrentUser, RegistryDep, RevocationDep
from storelink.core.errors import InvalidShopDomain
from storelink.integrations.shopify.client import STORE_RESOURCES, ShopifyClient
from storelink.integrations.shopify.oauth import normalize_shop_domain
from storelink.schemas.shopify import (
    DisconnectResponse,
    StoreDataResponse,
    StoreListResponse,
    StoreResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _shop_key(shop: str) -> str:
    try:
        return normalize_shop_domain(shop)
    except InvalidShopDomain:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Store not found")


@router.get("", response_model=StoreListResponse)
async def list_stores(_user: CurrentUser, registry: RegistryDep) -> StoreListResponse:
    """List connected stores."""
    connections = await registry.list_all()
    items = [StoreResponse.from_connection(c) for c in connections]
    return StoreListResponse(items=items, total=len(items))


@router.get("/{shop}", response_model=StoreResponse)
async def get_store(shop: str, _user: CurrentUser, registry: RegistryDep) -> StoreResponse:
    """Get a connected store's public details."""
    connection = await registry.get(_shop_key(shop))
    if connection is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Store not found")
    return StoreResponse.from_connection(connection)


@router.get("/{shop}/data", response_model=StoreDataResponse)
async def get_store_data(
    shop: str,
    _user: CurrentUser,
    registry: RegistryDep,
    data_type: str = Query("orders", alias="type"),
    limit: int = Query(50, ge=1, le=1000),
) -> StoreDataResponse:
    """Read orders, products or customers from a connected store.

    Provider failures surface as 502 without the provider's response body.
    """
    if data_type not in STORE_RESOURCES:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Invalid data type")

    connection = await registry.get(_shop_key(shop))
    if connection is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Store not found")

    client = ShopifyClient(connection.shop_domain, connection.access_token.get_secret_value())
    items = await client.get_resource(data_type, limit=limit)
    return StoreDataResponse(
        shop_domain=connection.shop_domain, type=data_type, items=items, count=len(items)
    )


@router.delete("/{shop}", response_model=DisconnectResponse)
async def disconnect_store(
    shop: str,
    _user: CurrentUser,
    service: RevocationDep,
) -> DisconnectResponse:
    """Disconnect a store.

    The provider token is revoked on a best-effort basis; the local record
    is removed either way.
    """
    result = await service.disconnect(_shop_key(shop))
    if not result.removed:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Store not found")
    return DisconnectResponse(
        shop_domain=result.shop_domain,
        removed=result.removed,
        remote_revoked=result.remote_revoked,
        error=result.error.value if result.error else None,
    )
