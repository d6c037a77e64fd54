"""Authorization URL construction and CSRF state bookkeeping."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from storelink.core.config import settings
from storelink.core.errors import CsrfStateMismatch
from storelink.integrations.shopify.oauth import (
    build_auth_url,
    generate_nonce,
    normalize_shop_domain,
)
from storelink.models.connection import OAuthState, utcnow
from storelink.services.state_store import StateStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthorizationRequest:
    """A started authorization attempt."""

    shop_domain: str
    state: str
    authorize_url: str


class AuthorizationService:
    """Starts authorization attempts and validates their callbacks."""

    def __init__(
        self,
        state_store: StateStore,
        *,
        state_ttl: int | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.state_store = state_store
        self.state_ttl = state_ttl if state_ttl is not None else settings.oauth_state_ttl_seconds
        self.clock = clock

    async def begin(self, shop: str) -> AuthorizationRequest:
        """Validate ``shop``, persist a fresh state and build the authorize URL.

        Raises:
            InvalidShopDomain: Before anything is stored.
        """
        shop_domain = normalize_shop_domain(shop)
        nonce = generate_nonce()
        await self.state_store.save(
            OAuthState(
                nonce=nonce,
                shop_domain=shop_domain,
                created_at=self.clock(),
                ttl=self.state_ttl,
            )
        )
        logger.info("Authorization started for %s", shop_domain)
        return AuthorizationRequest(
            shop_domain=shop_domain,
            state=nonce,
            authorize_url=build_auth_url(shop_domain, nonce),
        )

    async def validate_callback(self, shop_domain: str, state: str | None) -> OAuthState:
        """Consume ``state`` and check it was issued for ``shop_domain``.

        The stored entry is removed by the lookup whether or not the
        remaining checks pass, so each state is usable once.

        Raises:
            CsrfStateMismatch: If the state is absent, expired or bound to
                another shop.
        """
        if not state:
            raise CsrfStateMismatch()

        stored = await self.state_store.consume(state)
        if stored is None:
            logger.warning("Callback for %s presented an unknown or expired state", shop_domain)
            raise CsrfStateMismatch()
        if stored.shop_domain != shop_domain:
            logger.warning(
                "Callback state issued for %s was presented for %s",
                stored.shop_domain,
                shop_domain,
            )
            raise CsrfStateMismatch()
        return stored
