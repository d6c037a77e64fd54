"""Pydantic schemas for request/response validation."""

from storelink.schemas.common import ErrorResponse, HealthResponse
from storelink.schemas.shopify import (
    AuthorizeResponse,
    ConnectRequest,
    ConnectResponse,
    DisconnectResponse,
    ShopInfo,
    StoreDataResponse,
    StoreListResponse,
    StoreResponse,
)

__all__ = [
    "AuthorizeResponse",
    "ConnectRequest",
    "ConnectResponse",
    "DisconnectResponse",
    "ErrorResponse",
    "HealthResponse",
    "ShopInfo",
    "StoreDataResponse",
    "StoreListResponse",
    "StoreResponse",
]
