"""Celery tasks receiving compliance and business webhook work.

The webhook endpoint only enqueues these. Each compliance task records the
request in a Redis ledger, keyed by the delivery's idempotency key, with the
date by which the erasure or export has to be completed. Duplicate
deliveries find the existing entry and are reported as such.
"""

import asyncio
import json
import logging
from datetime import UTC, datetime, timedelta
from typing import Any

import redis.asyncio as aioredis

from storelink.core.config import settings
from storelink.workers.celery_app import BaseTask, celery_app

logger = logging.getLogger(__name__)

COMPLIANCE_WINDOW = timedelta(days=30)
LEDGER_PREFIX = "compliance:"
DUE_INDEX_KEY = "compliance:due"

DATA_REQUEST = "customers/data_request"
CUSTOMER_REDACT = "customers/redact"
SHOP_REDACT = "shop/redact"


def _run(coro: Any) -> Any:
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


async def _with_redis(fn: Any, *args: Any) -> Any:
    client = aioredis.from_url(str(settings.redis_url), decode_responses=True)
    try:
        return await fn(client, *args)
    finally:
        await client.aclose()


def build_ledger_entry(
    kind: str,
    shop_domain: str,
    payload: dict[str, Any],
    received_at: datetime,
) -> dict[str, Any]:
    """Summarize a compliance payload for the ledger (no customer PII)."""
    customer = payload.get("customer") or {}
    orders = payload.get("orders_requested") or payload.get("orders_to_redact") or []
    data_request = payload.get("data_request") or {}
    return {
        "kind": kind,
        "shop_domain": shop_domain,
        "shop_id": payload.get("shop_id"),
        "customer_id": customer.get("id") if isinstance(customer, dict) else None,
        "data_request_id": data_request.get("id") if isinstance(data_request, dict) else None,
        "order_ids": list(orders),
        "received_at": received_at.isoformat(),
        "due_at": (received_at + COMPLIANCE_WINDOW).isoformat(),
        "status": "pending",
    }


async def record_compliance_request(
    redis: aioredis.Redis,
    kind: str,
    shop_domain: str,
    payload: dict[str, Any],
    idempotency_key: str,
    received_at: str,
) -> dict[str, Any]:
    """Store a ledger entry once per idempotency key."""
    received = datetime.fromisoformat(received_at)
    entry = build_ledger_entry(kind, shop_domain, payload, received)
    key = f"{LEDGER_PREFIX}{kind}:{idempotency_key}"

    due = received + COMPLIANCE_WINDOW
    # Entry and due-index member commit together. NX keeps an existing deadline.
    async with redis.pipeline(transaction=True) as pipe:
        pipe.set(key, json.dumps(entry), nx=True)
        pipe.zadd(DUE_INDEX_KEY, {key: due.timestamp()}, nx=True)
        created, _ = await pipe.execute()

    if not created:
        logger.info("Duplicate %s delivery for %s ignored", kind, shop_domain)
        return {"status": "duplicate", "key": key}

    logger.info("Recorded %s for %s, due %s", kind, shop_domain, entry["due_at"])
    return {"status": "recorded", "key": key, "due_at": entry["due_at"]}


async def list_due_requests(redis: aioredis.Redis, before: datetime) -> list[dict[str, Any]]:
    """Ledger entries whose completion deadline is at or before ``before``."""
    keys = await redis.zrangebyscore(DUE_INDEX_KEY, "-inf", before.timestamp())
    if not keys:
        return []
    raws = await redis.mget(keys)
    return [json.loads(raw) for raw in raws if raw is not None]


@celery_app.task(
    name="tasks.compliance.process_customer_data_request",
    base=BaseTask,
    bind=True,
)
def process_customer_data_request(
    self: BaseTask,  # noqa: ARG001
    shop_domain: str,
    payload: dict[str, Any],
    idempotency_key: str,
    received_at: str,
) -> dict[str, Any]:
    """Record a customer data access request."""
    return _run(
        _with_redis(
            record_compliance_request,
            DATA_REQUEST,
            shop_domain,
            payload,
            idempotency_key,
            received_at,
        )
    )


@celery_app.task(
    name="tasks.compliance.process_customer_redact",
    base=BaseTask,
    bind=True,
)
def process_customer_redact(
    self: BaseTask,  # noqa: ARG001
    shop_domain: str,
    payload: dict[str, Any],
    idempotency_key: str,
    received_at: str,
) -> dict[str, Any]:
    """Record a customer erasure request."""
    return _run(
        _with_redis(
            record_compliance_request,
            CUSTOMER_REDACT,
            shop_domain,
            payload,
            idempotency_key,
            received_at,
        )
    )


@celery_app.task(
    name="tasks.compliance.process_shop_redact",
    base=BaseTask,
    bind=True,
)
def process_shop_redact(
    self: BaseTask,  # noqa: ARG001
    shop_domain: str,
    payload: dict[str, Any],
    idempotency_key: str,
    received_at: str,
) -> dict[str, Any]:
    """Record a shop erasure request."""
    return _run(
        _with_redis(
            record_compliance_request,
            SHOP_REDACT,
            shop_domain,
            payload,
            idempotency_key,
            received_at,
        )
    )


@celery_app.task(
    name="tasks.business.process_business_event",
    base=BaseTask,
    bind=True,
)
def process_business_event(
    self: BaseTask,  # noqa: ARG001
    topic: str,
    shop_domain: str,
    payload: dict[str, Any],
    idempotency_key: str,
    received_at: str,
) -> dict[str, Any]:
    """Log a business event for downstream consumers."""
    logger.info(
        "Business event %s for %s (id=%s, received %s)",
        topic,
        shop_domain,
        payload.get("id"),
        received_at,
    )
    return {"status": "processed", "topic": topic, "key": idempotency_key}


@celery_app.task(
    name="tasks.compliance.report_overdue_requests",
    base=BaseTask,
    bind=True,
)
def report_overdue_requests(self: BaseTask) -> dict[str, Any]:  # noqa: ARG001
    """Log every compliance request past its deadline."""
    overdue = _run(_with_redis(list_due_requests, datetime.now(UTC)))
    for entry in overdue:
        logger.error(
            "Compliance request %s for %s overdue since %s",
            entry["kind"],
            entry["shop_domain"],
            entry["due_at"],
        )
    return {"overdue": len(overdue)}
