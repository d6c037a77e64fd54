"""Shopify Admin API client using httpx."""

import logging
from typing import Any

import httpx

from storelink.core.config import settings
from storelink.core.errors import MetadataFetchFailed, RevocationFailed, StoreDataFetchFailed
from storelink.models.connection import ShopMetadata, provider_host

logger = logging.getLogger(__name__)

# Admin API listings readable with the granted scopes
STORE_RESOURCES: dict[str, str] = {
    "orders": "orders.json?status=any&limit=",
    "products": "products.json?limit=",
    "customers": "customers.json?limit=",
}
MAX_PAGE_SIZE = 250


class ShopifyClient:
    """Async client for the Shopify Admin REST API.

    Every request is bounded by ``settings.provider_timeout_seconds`` so a
    stalled shop never holds up unrelated work.
    """

    def __init__(self, shop_domain: str, access_token: str) -> None:
        self.shop_domain = shop_domain
        self.host = provider_host(shop_domain)
        self.base_url = f"https://{self.host}/admin/api/{settings.shopify_api_version}"
        self.headers = {
            "X-Shopify-Access-Token": access_token,
            "Content-Type": "application/json",
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            headers=self.headers, timeout=settings.provider_timeout_seconds
        )

    async def get_shop(self) -> ShopMetadata:
        """Fetch the shop's public metadata.

        Raises:
            MetadataFetchFailed: On any HTTP error, timeout or malformed body.
        """
        try:
            async with self._client() as client:
                response = await client.get(f"{self.base_url}/shop.json")
                response.raise_for_status()
                shop = response.json().get("shop")
        except httpx.HTTPStatusError as e:
            logger.warning(
                "Shop metadata fetch failed for %s: HTTP %s",
                self.shop_domain,
                e.response.status_code,
            )
            raise MetadataFetchFailed() from e
        except (httpx.HTTPError, ValueError, AttributeError) as e:
            logger.warning(
                "Shop metadata fetch failed for %s: %s", self.shop_domain, type(e).__name__
            )
            raise MetadataFetchFailed() from e

        if not isinstance(shop, dict):
            raise MetadataFetchFailed()
        return ShopMetadata.from_shop_payload(shop)

    async def register_webhook(self, topic: str, address: str) -> int:
        """Create one webhook subscription and return the HTTP status code.

        Transport errors and timeouts propagate as ``httpx.HTTPError``.
        """
        async with self._client() as client:
            response = await client.post(
                f"{self.base_url}/webhooks.json",
                json={
                    "webhook": {
                        "topic": topic,
                        "address": address,
                        "format": "json",
                    }
                },
            )
            return response.status_code

    async def revoke_access(self) -> None:
        """Uninstall the app from the shop, invalidating the access token.

        Raises:
            RevocationFailed: If the provider did not confirm the revocation.
        """
        try:
            async with self._client() as client:
                response = await client.delete(
                    f"https://{self.host}/admin/api_permissions/current.json"
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise RevocationFailed(
                f"Provider rejected revocation (HTTP {e.response.status_code})"
            ) from e
        except httpx.HTTPError as e:
            raise RevocationFailed(f"Revocation request failed ({type(e).__name__})") from e

    async def get_resource(self, resource: str, limit: int = 50) -> list[dict[str, Any]]:
        """Fetch up to ``limit`` orders, products or customers.

        Pages are followed through the cursor in the ``Link`` header.

        Raises:
            KeyError: If ``resource`` is not one of ``STORE_RESOURCES``.
            StoreDataFetchFailed: On any HTTP error, timeout or malformed body.
        """
        page_size = min(limit, MAX_PAGE_SIZE)
        url: str | None = f"{self.base_url}/{STORE_RESOURCES[resource]}{page_size}"
        items: list[dict[str, Any]] = []

        try:
            async with self._client() as client:
                while url and len(items) < limit:
                    response = await client.get(url)
                    response.raise_for_status()
                    page = response.json().get(resource)
                    if not isinstance(page, list):
                        raise StoreDataFetchFailed()
                    items.extend(page)
                    url = self._get_next_page_url(response)
        except httpx.HTTPStatusError as e:
            logger.warning(
                "Fetching %s failed for %s: HTTP %s",
                resource,
                self.shop_domain,
                e.response.status_code,
            )
            raise StoreDataFetchFailed() from e
        except (httpx.HTTPError, ValueError, AttributeError) as e:
            logger.warning(
                "Fetching %s failed for %s: %s", resource, self.shop_domain, type(e).__name__
            )
            raise StoreDataFetchFailed() from e

        return items[:limit]

    def _get_next_page_url(self, response: httpx.Response) -> str | None:
        """Extract next page URL from Link header for cursor pagination."""
        link_header = response.headers.get("link", "")
        if not link_header:
            return None

        for part in link_header.split(","):
            if 'rel="next"' in part:
                url: str = part.split(";")[0].strip().strip("<>")
                return url
        return None
