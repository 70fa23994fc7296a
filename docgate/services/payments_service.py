"""Stripe Checkout flow for upgrading a user to the paid tier."""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from docgate.errors import BillingProviderError
from docgate.models.user import User
from docgate.repositories.users_repo import UsersRepository
from docgate.services.billing_client import StripeBillingClient

logger = logging.getLogger(__name__)


class PaymentsService:
    """
    Creates Checkout Sessions. The tier itself only changes when the
    resulting webhook events reach the entitlement state machine.
    """

    def __init__(
        self,
        db_session: Session,
        billing_client: StripeBillingClient,
        default_price_id: Optional[str] = None,
    ):
        self.db = db_session
        self._billing = billing_client
        self._default_price_id = default_price_id
        self._users = UsersRepository(db_session)

    def get_or_create_customer(self, user: User) -> str:
        """Return the user's Stripe customer id, creating and persisting one if needed."""
        if user.billing_customer_id:
            return user.billing_customer_id

        customer_id = self._billing.create_customer(email=user.email, user_id=user.id)
        user.billing_customer_id = customer_id
        self.db.commit()
        return customer_id

    def create_checkout(
        self,
        user_id: str,
        success_url: str,
        cancel_url: str,
        price_id: Optional[str] = None,
    ) -> str:
        """
        Start a subscription checkout and return the hosted page URL.

        Raises:
            UserNotFound: If the user does not exist.
            BillingProviderError: If no price is configured or Stripe fails.
        """
        price = price_id or self._default_price_id
        if not price:
            raise BillingProviderError("No price configured for checkout")

        user = self._users.require(user_id)
        customer_id = self.get_or_create_customer(user)

        url = self._billing.create_checkout_session(
            customer_id=customer_id,
            user_id=user.id,
            price_id=price,
            success_url=success_url,
            cancel_url=cancel_url,
        )

        logger.info("Checkout started", extra={"user_id": user.id})
        return url
