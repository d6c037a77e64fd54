"""API v1 router combining all route modules."""

from fastapi import APIRouter

from storelink.api.v1 import health, shopify, stores
from storelink.api.v1.webhooks import shopify as shopify_webhooks

api_router = APIRouter()

# Include health check routes (no prefix)
api_router.include_router(health.router)

# Shopify OAuth
api_router.include_router(
    shopify.router,
    prefix="/shopify",
    tags=["shopify"],
)

# Connected store management (requires auth)
api_router.include_router(
    stores.router,
    prefix="/stores",
    tags=["stores"],
)

# Shopify webhooks (no auth - verified via HMAC)
api_router.include_router(
    shopify_webhooks.router,
    prefix="/webhooks/shopify",
    tags=["webhooks"],
)
