"""Store disconnection."""

import logging
from collections.abc import Callable
from dataclasses import dataclass

import httpx

from storelink.core.errors import ErrorKind, RevocationFailed
from storelink.integrations.shopify.client import ShopifyClient
from storelink.services.store_registry import StoreRegistry

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str, str], ShopifyClient]


@dataclass(frozen=True)
class RevocationResult:
    shop_domain: str
    removed: bool
    remote_revoked: bool = False
    error: ErrorKind | None = None
    detail: str | None = None


class RevocationService:
    """Disconnects a shop.

    Remote revocation is best effort. The local record is removed no matter
    how the remote call ends, because local state is authoritative.
    """

    def __init__(
        self,
        registry: StoreRegistry,
        *,
        client_factory: ClientFactory = ShopifyClient,
    ) -> None:
        self.registry = registry
        self.client_factory = client_factory

    async def disconnect(self, shop_domain: str) -> RevocationResult:
        connection = await self.registry.get(shop_domain)
        if connection is None:
            return RevocationResult(shop_domain=shop_domain, removed=False)

        remote_revoked = False
        error: RevocationFailed | None = None
        try:
            client = self.client_factory(
                shop_domain, connection.access_token.get_secret_value()
            )
            await client.revoke_access()
            remote_revoked = True
        except httpx.HTTPError as e:
            error = RevocationFailed(f"Revocation request failed ({type(e).__name__})")
            logger.warning("Token revocation failed for %s: %s", shop_domain, error.message)
        except RevocationFailed as e:
            error = e
            logger.warning("Token revocation failed for %s: %s", shop_domain, e.message)
        except Exception:
            error = RevocationFailed()
            logger.exception("Token revocation failed for %s", shop_domain)
        finally:
            removed = await self.registry.delete(shop_domain)

        logger.info("Disconnected shop %s", shop_domain)
        return RevocationResult(
            shop_domain=shop_domain,
            removed=removed,
            remote_revoked=remote_revoked,
            error=error.kind if error else None,
            detail=error.message if error else None,
        )
