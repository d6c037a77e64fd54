"""Capabilities the webhook dispatcher hands work off to.

The dispatcher acknowledges compliance and business webhooks as soon as the
matching capability has accepted the work. Implementations must therefore
return quickly (enqueue, don't process) and tolerate the same request being
submitted more than once, since deliveries are at-least-once.
"""

import hashlib
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol


@dataclass(frozen=True)
class WorkItem:
    """A verified webhook payload handed to a capability."""

    topic: str
    shop_domain: str
    payload: dict[str, Any]
    received_at: datetime
    webhook_id: str | None = None

    @property
    def idempotency_key(self) -> str:
        """Stable key for de-duplicating repeated deliveries."""
        if self.webhook_id:
            return self.webhook_id
        body = json.dumps(self.payload, sort_keys=True, default=str)
        digest = hashlib.sha256(body.encode()).hexdigest()
        return f"{self.topic}:{self.shop_domain}:{digest[:32]}"


class DataRequestProcessor(Protocol):
    async def submit_data_request(self, item: WorkItem) -> None: ...


class CustomerErasureProcessor(Protocol):
    async def submit_customer_erasure(self, item: WorkItem) -> None: ...


class ShopErasureProcessor(Protocol):
    async def submit_shop_erasure(self, item: WorkItem) -> None: ...


class BusinessEventProcessor(Protocol):
    async def submit_business_event(self, item: WorkItem) -> None: ...


class CeleryCapabilities:
    """Enqueues every capability call as a Celery task."""

    @staticmethod
    def _args(item: WorkItem) -> tuple[str, dict[str, Any], str, str]:
        return (
            item.shop_domain,
            item.payload,
            item.idempotency_key,
            item.received_at.isoformat(),
        )

    async def submit_data_request(self, item: WorkItem) -> None:
        from storelink.workers.tasks.compliance import process_customer_data_request

        process_customer_data_request.delay(*self._args(item))

    async def submit_customer_erasure(self, item: WorkItem) -> None:
        from storelink.workers.tasks.compliance import process_customer_redact

        process_customer_redact.delay(*self._args(item))

    async def submit_shop_erasure(self, item: WorkItem) -> None:
        from storelink.workers.tasks.compliance import process_shop_redact

        process_shop_redact.delay(*self._args(item))

    async def submit_business_event(self, item: WorkItem) -> None:
        from storelink.workers.tasks.compliance import process_business_event

        process_business_event.delay(item.topic, *self._args(item))
