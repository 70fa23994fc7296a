"""
Stripe billing client.

Wraps the handful of Stripe calls DocGate makes:
- Webhook signature verification over the raw request bytes
- Customer creation for checkout
- Subscription-mode Checkout Session creation
- Subscription status lookup (to confirm invoice.payment_succeeded)

Stripe exceptions are mapped to WebhookSignatureInvalid / BillingProviderError
at this boundary. The secret key is passed per call instead of being written
to the module-global stripe.api_key.
"""

import json
import logging
from typing import Any, Optional

import stripe

from docgate.errors import BillingProviderError, WebhookSignatureInvalid

logger = logging.getLogger(__name__)

STRIPE_API_VERSION = "2024-06-20"

# Stripe's default tolerance for webhook timestamps
WEBHOOK_TOLERANCE_SECONDS = 300


class StripeBillingClient:

    def __init__(
        self,
        secret_key: str,
        webhook_secret: str,
        tolerance: int = WEBHOOK_TOLERANCE_SECONDS,
    ):
        self._secret_key = secret_key
        self._webhook_secret = webhook_secret
        self._tolerance = tolerance

    # =========================================================================
    # Webhooks
    # =========================================================================

    def parse_webhook(self, payload: bytes, signature: Optional[str]) -> dict[str, Any]:
        """
        Verify a webhook signature and decode the event.

        Args:
            payload: Raw request body, exactly as received.
            signature: Value of the Stripe-Signature header.

        Raises:
            WebhookSignatureInvalid: Missing/invalid signature or malformed JSON.
        """
        if not signature:
            raise WebhookSignatureInvalid("Missing Stripe-Signature header")

        try:
            payload_text = payload.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise WebhookSignatureInvalid("Webhook payload is not UTF-8") from exc

        try:
            stripe.WebhookSignature.verify_header(
                payload_text,
                signature,
                self._webhook_secret,
                self._tolerance,
            )
        except stripe.SignatureVerificationError as exc:
            logger.warning("Stripe webhook signature verification failed")
            raise WebhookSignatureInvalid("Invalid webhook signature") from exc

        try:
            event = json.loads(payload_text)
        except ValueError as exc:
            raise WebhookSignatureInvalid("Webhook payload is not valid JSON") from exc

        if not isinstance(event, dict) or "type" not in event:
            raise WebhookSignatureInvalid("Webhook payload is not a Stripe event")

        return event

    # =========================================================================
    # API calls
    # =========================================================================

    def create_customer(self, email: str, user_id: str) -> str:
        try:
            customer = stripe.Customer.create(
                email=email,
                metadata={"user_id": user_id},
                api_key=self._secret_key,
                stripe_version=STRIPE_API_VERSION,
            )
        except stripe.StripeError as exc:
            logger.error("Stripe customer creation failed", extra={"user_id": user_id})
            raise BillingProviderError("Failed to create billing customer") from exc

        logger.info("Stripe customer created", extra={"user_id": user_id, "customer_id": customer.id})
        return customer.id

    def create_checkout_session(
        self,
        customer_id: str,
        user_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
    ) -> str:
        """Create a subscription Checkout Session and return its hosted URL."""
        try:
            session = stripe.checkout.Session.create(
                mode="subscription",
                customer=customer_id,
                client_reference_id=user_id,
                line_items=[{"price": price_id, "quantity": 1}],
                success_url=success_url,
                cancel_url=cancel_url,
                metadata={"user_id": user_id},
                subscription_data={"metadata": {"user_id": user_id}},
                api_key=self._secret_key,
                stripe_version=STRIPE_API_VERSION,
            )
        except stripe.StripeError as exc:
            logger.error(
                "Stripe checkout session creation failed",
                extra={"user_id": user_id, "customer_id": customer_id},
            )
            raise BillingProviderError("Failed to create checkout session") from exc

        logger.info(
            "Stripe checkout session created",
            extra={"user_id": user_id, "checkout_session_id": session.id},
        )
        return session.url

    def retrieve_subscription_status(self, subscription_id: str) -> Optional[str]:
        try:
            subscription = stripe.Subscription.retrieve(
                subscription_id,
                api_key=self._secret_key,
                stripe_version=STRIPE_API_VERSION,
            )
        except stripe.StripeError as exc:
            logger.error(
                "Stripe subscription lookup failed",
                extra={"subscription_id": subscription_id},
            )
            raise BillingProviderError("Failed to retrieve subscription") from exc

        return subscription.status
