"""Inbound webhook verification and topic dispatch.

``WebhookDispatcher.dispatch`` never raises for a delivery: every result is a
``DispatchOutcome`` carrying the HTTP status to answer with and, on failure,
the ``ErrorKind`` that caused it. The signature is checked against the raw
body before anything else touches it.
"""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from fastapi import status

from storelink.core.config import settings
from storelink.core.errors import (
    ErrorKind,
    HandlerFailed,
    InvalidShopDomain,
    PayloadParseFailed,
    SignatureVerificationFailed,
    StoreLinkError,
)
from storelink.core.logging_config import shop_domain_var
from storelink.integrations.shopify import webhooks as topics
from storelink.integrations.shopify.oauth import normalize_shop_domain
from storelink.integrations.shopify.webhooks import verify_webhook
from storelink.models.connection import ConnectionStatus, StoreConnection, WebhookEvent
from storelink.services.capabilities import (
    BusinessEventProcessor,
    CustomerErasureProcessor,
    DataRequestProcessor,
    ShopErasureProcessor,
    WorkItem,
)
from storelink.services.store_registry import StoreRegistry

logger = logging.getLogger(__name__)

Handler = Callable[[WorkItem], Awaitable[str]]


@dataclass(frozen=True)
class DispatchOutcome:
    """Tagged result of handling one webhook delivery."""

    topic: str
    status_code: int
    status: str
    error: ErrorKind | None = None
    detail: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, topic: str, result: str) -> "DispatchOutcome":
        return cls(topic=topic, status_code=status.HTTP_200_OK, status=result)

    @classmethod
    def failure(cls, topic: str, error: StoreLinkError) -> "DispatchOutcome":
        return cls(
            topic=topic,
            status_code=error.status_code,
            status="rejected" if error.status_code < 500 else "failed",
            error=error.kind,
            detail=error.message,
        )


class WebhookDispatcher:
    """Verifies deliveries and routes them to topic handlers.

    Compliance topics are acknowledged once the relevant capability accepted
    the work. Every handler is idempotent, because a failed handler answers
    500 and the provider re-delivers.
    """

    def __init__(
        self,
        registry: StoreRegistry,
        *,
        data_requests: DataRequestProcessor,
        customer_erasure: CustomerErasureProcessor,
        shop_erasure: ShopErasureProcessor,
        business_events: BusinessEventProcessor,
        secret: str | None = None,
        handoff_timeout: float | None = None,
    ) -> None:
        self.registry = registry
        self.data_requests = data_requests
        self.customer_erasure = customer_erasure
        self.shop_erasure = shop_erasure
        self.business_events = business_events
        self._secret = secret
        self.handoff_timeout = (
            handoff_timeout
            if handoff_timeout is not None
            else settings.webhook_handoff_timeout_seconds
        )
        self.handlers: dict[str, Handler] = {
            topics.CUSTOMERS_DATA_REQUEST: self._handle_data_request,
            topics.CUSTOMERS_REDACT: self._handle_customer_redact,
            topics.SHOP_REDACT: self._handle_shop_redact,
            topics.APP_UNINSTALLED: self._handle_app_uninstalled,
            topics.ORDERS_CREATE: self._handle_business_event,
            topics.PRODUCTS_UPDATE: self._handle_business_event,
        }

    @property
    def secret(self) -> str:
        return self._secret if self._secret is not None else settings.webhook_signing_secret

    async def dispatch(self, event: WebhookEvent) -> DispatchOutcome:
        """Verify, parse and handle one delivery."""
        if not verify_webhook(event.raw_body, event.signature_header, self.secret):
            logger.warning(
                "Rejected %s webhook claiming %s: signature mismatch",
                event.topic,
                event.shop_domain_claimed or "unknown shop",
            )
            return DispatchOutcome.failure(event.topic, SignatureVerificationFailed())

        handler = self.handlers.get(event.topic)
        try:
            payload = self._parse(event.raw_body)
            if handler is None:
                logger.info("Ignoring webhook with unhandled topic %s", event.topic)
                return DispatchOutcome.success(event.topic, "ignored")
            shop_domain = self._resolve_shop(event, payload)
        except StoreLinkError as e:
            logger.warning("Rejected %s webhook: %s", event.topic, e.message)
            return DispatchOutcome.failure(event.topic, e)

        shop_domain_var.set(shop_domain)
        item = WorkItem(
            topic=event.topic,
            shop_domain=shop_domain,
            payload=payload,
            received_at=event.received_at,
            webhook_id=event.webhook_id,
        )
        try:
            result = await handler(item)
        except Exception:
            logger.exception("Handler for %s failed for %s", event.topic, shop_domain)
            return DispatchOutcome.failure(event.topic, HandlerFailed())

        logger.info("Handled %s webhook for %s: %s", event.topic, shop_domain, result)
        return DispatchOutcome.success(event.topic, result)

    @staticmethod
    def _parse(raw_body: bytes) -> dict[str, Any]:
        try:
            payload = json.loads(raw_body)
        except (ValueError, UnicodeDecodeError) as e:
            raise PayloadParseFailed() from e
        if not isinstance(payload, dict):
            raise PayloadParseFailed()
        return payload

    @staticmethod
    def _resolve_shop(event: WebhookEvent, payload: dict[str, Any]) -> str:
        """Registry key for the shop this delivery is about.

        The signed payload wins over the unsigned header claim.
        """
        claimed = (
            payload.get("shop_domain")
            or payload.get("myshopify_domain")
            or event.shop_domain_claimed
        )
        try:
            return normalize_shop_domain(claimed if isinstance(claimed, str) else None)
        except InvalidShopDomain as e:
            raise PayloadParseFailed("Webhook does not identify a valid shop") from e

    async def _hand_off(self, submission: Awaitable[None]) -> None:
        async with asyncio.timeout(self.handoff_timeout):
            await submission

    async def _handle_data_request(self, item: WorkItem) -> str:
        await self._hand_off(self.data_requests.submit_data_request(item))
        return "accepted"

    async def _handle_customer_redact(self, item: WorkItem) -> str:
        await self._hand_off(self.customer_erasure.submit_customer_erasure(item))
        return "accepted"

    async def _handle_shop_redact(self, item: WorkItem) -> str:
        removed = await self.registry.delete(item.shop_domain)
        if removed:
            logger.info("Removed connection for %s", item.shop_domain)
        await self._hand_off(self.shop_erasure.submit_shop_erasure(item))
        return "redacted"

    async def _handle_app_uninstalled(self, item: WorkItem) -> str:
        def revoke(current: StoreConnection | None) -> StoreConnection | None:
            if current is None:
                return None
            return current.with_changes(status=ConnectionStatus.REVOKED)

        await self.registry.update(item.shop_domain, revoke)
        await self._hand_off(self.business_events.submit_business_event(item))
        return "accepted"

    async def _handle_business_event(self, item: WorkItem) -> str:
        await self._hand_off(self.business_events.submit_business_event(item))
        return "accepted"
