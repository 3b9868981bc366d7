"""
Stripe webhook endpoint glue.

Verifies the signature on the raw body and hands the event to the
``WebhookProcessor``. Only verification problems are reported as errors;
processing outcomes are recorded on the event and acknowledged with 200.
"""

from typing import Any

from fastapi import HTTPException, Request, status

from common.core.config import settings
from common.core.otel_axiom_exporter import get_logger
from packages.entitlements.exceptions import InvalidSignature, MalformedEvent
from packages.entitlements.webhooks.processor import WebhookProcessor

logger = get_logger(__name__)


async def handle_stripe_webhook(request: Request) -> dict[str, Any]:
    """
    Handle incoming webhook from Stripe.

    Validates webhook signature and routes to the processor.
    """
    payload_bytes = await request.body()
    sig_header = request.headers.get("stripe-signature")

    if not sig_header:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing stripe-signature header",
        )

    if not settings.stripe_webhook_secret:
        logger.error("Stripe webhook received but no webhook secret is configured")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Webhook secret not configured",
        )

    processor = WebhookProcessor()

    try:
        event = processor.gateway.verify_signature(
            payload_bytes, sig_header, settings.stripe_webhook_secret
        )
    except InvalidSignature:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid signature"
        )
    except MalformedEvent as e:
        logger.error(f"Malformed Stripe webhook: {e.message}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid webhook payload"
        )

    result = await processor.handle(event)

    return {
        "status": "success",
        "event_id": result.event_id,
        "outcome": result.outcome.value,
        "duplicate": result.duplicate,
    }
