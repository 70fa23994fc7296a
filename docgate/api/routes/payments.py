"""Stripe Checkout endpoint."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from docgate.api.dependencies import get_db_session, get_services, require_session
from docgate.auth.context import SessionContext
from docgate.services.container import ServiceContainer
from docgate.services.payments_service import PaymentsService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


class CheckoutRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    price_id: Optional[str] = Field(default=None, alias="priceId")
    success_url: str = Field(..., alias="successUrl")
    cancel_url: str = Field(..., alias="cancelUrl")


class CheckoutResponse(BaseModel):
    url: str


@router.post("/create-stripe-session", response_model=CheckoutResponse)
async def create_checkout_session(
    body: CheckoutRequest,
    session: SessionContext = Depends(require_session),
    db: Session = Depends(get_db_session),
    services: ServiceContainer = Depends(get_services),
):
    payments = PaymentsService(
        db,
        services.billing,
        default_price_id=services.settings.stripe_price_id,
    )
    url = await run_in_threadpool(
        payments.create_checkout,
        session.user_id,
        body.success_url,
        body.cancel_url,
        body.price_id,
    )
    return CheckoutResponse(url=url)
