"""Webhook subscription management for newly connected shops."""

import enum
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

import httpx

from storelink.core.config import settings
from storelink.core.errors import ErrorKind, WebhookRegistrationFailed
from storelink.integrations.shopify.client import ShopifyClient
from storelink.integrations.shopify.webhooks import BUSINESS_TOPICS, MANDATORY_TOPICS
from storelink.models.connection import StoreConnection
from storelink.services.store_registry import StoreRegistry

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str, str], ShopifyClient]

ALREADY_EXISTS_STATUS = 422


class RegistrationStatus(str, enum.Enum):
    CREATED = "created"
    ALREADY_EXISTS = "already_exists"
    FAILED = "failed"

    @property
    def ok(self) -> bool:
        return self is not RegistrationStatus.FAILED


@dataclass(frozen=True)
class TopicRegistration:
    topic: str
    status: RegistrationStatus
    status_code: int | None = None
    error: ErrorKind | None = None


@dataclass
class RegistrationReport:
    """Per-topic registration results for one shop."""

    shop_domain: str
    results: list[TopicRegistration] = field(default_factory=list)
    mandatory_topics: Sequence[str] = MANDATORY_TOPICS

    @property
    def webhooks_registered(self) -> bool:
        by_topic = {r.topic: r for r in self.results}
        return all(t in by_topic and by_topic[t].status.ok for t in self.mandatory_topics)

    @property
    def failed_topics(self) -> list[str]:
        return [r.topic for r in self.results if not r.status.ok]


def webhook_address(topic: str) -> str:
    """Callback address for ``topic``, e.g. ``.../webhooks/shopify/shop/redact``."""
    return f"{settings.webhook_address_base}/{topic}"


def classify_status(status_code: int) -> RegistrationStatus:
    """Map the provider's response code to a registration status.

    422 means an identical subscription already exists.
    """
    if 200 <= status_code < 300:
        return RegistrationStatus.CREATED
    if status_code == ALREADY_EXISTS_STATUS:
        return RegistrationStatus.ALREADY_EXISTS
    return RegistrationStatus.FAILED


class WebhookRegistrar:
    """Registers compliance and business topics for a connected shop.

    Registration failures never invalidate the connection itself; they only
    leave ``webhooks_registered`` false.
    """

    def __init__(
        self,
        registry: StoreRegistry,
        *,
        client_factory: ClientFactory = ShopifyClient,
        include_business_topics: bool | None = None,
    ) -> None:
        self.registry = registry
        self.client_factory = client_factory
        if include_business_topics is None:
            include_business_topics = settings.register_business_webhooks
        self.topics: tuple[str, ...] = MANDATORY_TOPICS + (
            BUSINESS_TOPICS if include_business_topics else ()
        )

    async def _register_topic(self, client: ShopifyClient, topic: str) -> TopicRegistration:
        try:
            status_code = await client.register_webhook(topic, webhook_address(topic))
        except httpx.HTTPError as e:
            logger.warning(
                "%s: %s for %s (%s)",
                WebhookRegistrationFailed.message,
                topic,
                client.shop_domain,
                type(e).__name__,
            )
            return TopicRegistration(
                topic, RegistrationStatus.FAILED, error=ErrorKind.WEBHOOK_REGISTRATION_FAILED
            )

        result = classify_status(status_code)
        if result is RegistrationStatus.FAILED:
            logger.warning(
                "%s: %s for %s (HTTP %s)",
                WebhookRegistrationFailed.message,
                topic,
                client.shop_domain,
                status_code,
            )
            return TopicRegistration(
                topic, result, status_code, ErrorKind.WEBHOOK_REGISTRATION_FAILED
            )

        if result is RegistrationStatus.ALREADY_EXISTS:
            logger.info("Webhook %s already exists for %s", topic, client.shop_domain)
        else:
            logger.info("Created webhook %s for %s", topic, client.shop_domain)
        return TopicRegistration(topic, result, status_code)

    async def register(self, connection: StoreConnection) -> RegistrationReport:
        """Register every topic and record the outcome on the connection."""
        client = self.client_factory(
            connection.shop_domain, connection.access_token.get_secret_value()
        )
        report = RegistrationReport(shop_domain=connection.shop_domain)
        for topic in self.topics:
            report.results.append(await self._register_topic(client, topic))

        registered = report.webhooks_registered

        def mark(current: StoreConnection | None) -> StoreConnection | None:
            # Never resurrect a connection removed while we were registering
            if current is None:
                return None
            return current.with_changes(webhooks_registered=registered)

        await self.registry.update(connection.shop_domain, mark)
        if not registered:
            logger.warning(
                "Mandatory webhooks incomplete for %s: %s",
                connection.shop_domain,
                ", ".join(report.failed_topics),
            )
        return report
