"""
Stripe webhook receiver.

SECURITY: The signature is verified over the raw request bytes before the
body is parsed. The body must not be decoded or re-serialized first.

Responses:
- 400 for a missing/invalid signature or malformed payload; Stripe retries
- 200 for processed, ignored and unknown-customer events
- 5xx if applying the event fails; Stripe retries

Documentation: https://docs.stripe.com/webhooks
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from docgate.api.dependencies import get_db_session, get_services
from docgate.services.container import ServiceContainer
from docgate.services.entitlements import EntitlementStateMachine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["webhooks"])


class WebhookResponse(BaseModel):
    """Standard webhook response."""
    received: bool = True
    processed: bool = False
    message: str = "Webhook processed"


@router.post("/webhook", response_model=WebhookResponse)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(default=None, alias="Stripe-Signature"),
    db: Session = Depends(get_db_session),
    services: ServiceContainer = Depends(get_services),
):
    payload = await request.body()

    event = services.billing.parse_webhook(payload, stripe_signature)

    logger.info("Stripe webhook received", extra={
        "event_id": event.get("id"),
        "event_type": event.get("type"),
    })

    machine = EntitlementStateMachine(db, billing_client=services.billing)
    result = await run_in_threadpool(machine.apply_event, event)

    return WebhookResponse(
        processed=result.processed,
        message=result.message,
    )
