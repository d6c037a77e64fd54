"""Shopify webhook receiver.

Every topic is delivered to ``/{resource}/{event}``, matching the address
registered for it (e.g. ``/webhooks/shopify/customers/redact``). No auth:
deliveries are verified via HMAC by the dispatcher.
"""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from storelink.core.deps import DispatcherDep
from storelink.integrations.shopify.webhooks import (
    HMAC_HEADER,
    SHOP_DOMAIN_HEADER,
    TOPIC_HEADER,
    WEBHOOK_ID_HEADER,
)
from storelink.models.connection import WebhookEvent

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/{resource}/{event}")
async def receive_webhook(
    resource: str,
    event: str,
    request: Request,
    dispatcher: DispatcherDep,
) -> JSONResponse:
    """Verify and dispatch one webhook delivery."""
    # Raw bytes first: the signature covers the exact body
    body = await request.body()

    topic = f"{resource}/{event}"
    header_topic = request.headers.get(TOPIC_HEADER)
    if header_topic and header_topic != topic:
        # Routing follows the registered address, not the header
        logger.warning("Topic header %s does not match path topic %s", header_topic, topic)

    outcome = await dispatcher.dispatch(
        WebhookEvent(
            topic=topic,
            shop_domain_claimed=request.headers.get(SHOP_DOMAIN_HEADER, ""),
            raw_body=body,
            signature_header=request.headers.get(HMAC_HEADER),
            webhook_id=request.headers.get(WEBHOOK_ID_HEADER),
        )
    )
    if outcome.ok:
        return JSONResponse({"status": outcome.status}, status_code=outcome.status_code)
    return JSONResponse({"detail": outcome.detail}, status_code=outcome.status_code)
