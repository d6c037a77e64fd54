"""Authorization code exchange and store connection persistence."""

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime

from storelink.core.errors import StoreLinkError
from storelink.core.logging_config import shop_domain_var
from storelink.integrations.shopify.client import ShopifyClient
from storelink.integrations.shopify.oauth import (
    TokenGrant,
    exchange_code_for_token,
    normalize_shop_domain,
)
from storelink.models.connection import ConnectionStatus, StoreConnection, utcnow
from storelink.services.authorization import AuthorizationService
from storelink.services.store_registry import StoreRegistry

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str, str], ShopifyClient]
CodeExchange = Callable[[str, str], Awaitable[TokenGrant]]


class TokenExchanger:
    """Turns a validated authorization callback into a ``StoreConnection``."""

    def __init__(
        self,
        authorization: AuthorizationService,
        registry: StoreRegistry,
        *,
        client_factory: ClientFactory = ShopifyClient,
        code_exchange: CodeExchange = exchange_code_for_token,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.authorization = authorization
        self.registry = registry
        self.client_factory = client_factory
        self.code_exchange = code_exchange
        self.clock = clock

    async def exchange(
        self,
        shop: str,
        code: str,
        state: str | None,
        *,
        reset_connected_at: bool = False,
    ) -> StoreConnection:
        """Exchange ``code`` for a token and upsert the shop's connection.

        Nothing is written unless both the code exchange and the metadata
        fetch succeed. Codes are single-use, so failures are not retried.

        Raises:
            InvalidShopDomain: If ``shop`` is malformed.
            CsrfStateMismatch: If ``state`` does not validate.
            AuthCodeExchangeFailed: If the provider rejects the code.
            MetadataFetchFailed: If the shop lookup with the new token fails.
        """
        shop_domain = normalize_shop_domain(shop)
        shop_domain_var.set(shop_domain)
        await self.authorization.validate_callback(shop_domain, state)

        grant = await self.code_exchange(shop_domain, code)
        metadata = await self.client_factory(shop_domain, grant.access_token).get_shop()

        now = self.clock()

        def upsert(current: StoreConnection | None) -> StoreConnection:
            connected_at = now
            if current is not None and not reset_connected_at:
                connected_at = current.connected_at
            return StoreConnection(
                shop_domain=shop_domain,
                access_token=grant.access_token,
                granted_scopes=grant.scopes,
                shop_metadata=metadata,
                connected_at=connected_at,
                webhooks_registered=False,
                status=ConnectionStatus.CONNECTED,
            )

        connection = await self.registry.update(shop_domain, upsert)
        if connection is None:
            raise StoreLinkError("Connection could not be stored")
        logger.info("Connected shop %s (%s)", metadata.name, shop_domain)
        return connection
