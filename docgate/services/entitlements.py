"""
Entitlement state machine driven by Stripe webhook events.

Reconciles each user's tier from billing events that may arrive late, out of
order, or more than once:
- Every transition writes an absolute tier, never a toggle, so replaying an
  event converges on the same state
- tier == "paid" exactly when the latest observed subscription status is
  active or trialing
- Events for an unknown billing customer are logged and dropped, never retried
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from docgate.errors import UnknownBillingCustomer
from docgate.models.user import Tier, User
from docgate.repositories.users_repo import UsersRepository
from docgate.services.billing_client import StripeBillingClient

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
SUBSCRIPTION_CREATED = "customer.subscription.created"
SUBSCRIPTION_UPDATED = "customer.subscription.updated"
SUBSCRIPTION_DELETED = "customer.subscription.deleted"
INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
INVOICE_PAYMENT_FAILED = "invoice.payment_failed"

PAID_STATUSES = frozenset({"active", "trialing"})


def tier_for_status(status: Optional[str]) -> str:
    """Map a Stripe subscription status to a tier."""
    return Tier.PAID.value if status in PAID_STATUSES else Tier.FREE.value


@dataclass
class EntitlementResult:
    """Result of applying one billing event."""
    processed: bool
    event_type: str
    message: str
    user_id: Optional[str] = None
    tier: Optional[str] = None
    skipped_reason: Optional[str] = None


class EntitlementStateMachine:
    """
    Applies Stripe events to user entitlements.

    One instance per database session; apply_event() commits once per event.
    """

    def __init__(self, db_session: Session, billing_client: Optional[StripeBillingClient] = None):
        self.db = db_session
        self._users = UsersRepository(db_session)
        self._billing = billing_client
        self._handlers = {
            CHECKOUT_COMPLETED: self._on_checkout_completed,
            SUBSCRIPTION_CREATED: self._on_subscription_changed,
            SUBSCRIPTION_UPDATED: self._on_subscription_changed,
            SUBSCRIPTION_DELETED: self._on_subscription_deleted,
            INVOICE_PAYMENT_SUCCEEDED: self._on_invoice_payment_succeeded,
            INVOICE_PAYMENT_FAILED: self._on_invoice_payment_failed,
        }

    def apply_event(self, event: Dict[str, Any]) -> EntitlementResult:
        """
        Apply a verified Stripe event.

        Raises:
            BillingProviderError: If a confirming Stripe lookup fails.
            sqlalchemy.exc.SQLAlchemyError: If the update cannot be persisted.
        """
        event_type = event.get("type", "")
        event_id = event.get("id")
        data_object = (event.get("data") or {}).get("object") or {}

        handler = self._handlers.get(event_type)
        if handler is None:
            logger.info("Ignoring unhandled billing event", extra={
                "event_id": event_id,
                "event_type": event_type,
            })
            return EntitlementResult(
                processed=False,
                event_type=event_type,
                message="Event type not handled",
                skipped_reason="unhandled_event_type",
            )

        try:
            result = handler(event_type, data_object)
            self.db.commit()
        except UnknownBillingCustomer as e:
            self.db.rollback()
            logger.warning("Billing event for unknown customer dropped", extra={
                "event_id": event_id,
                "event_type": event_type,
                "customer_id": e.customer_id,
            })
            return EntitlementResult(
                processed=False,
                event_type=event_type,
                message=e.message,
                skipped_reason="unknown_customer",
            )
        except Exception:
            self.db.rollback()
            logger.exception("Error applying billing event", extra={
                "event_id": event_id,
                "event_type": event_type,
            })
            raise

        logger.info("Billing event applied", extra={
            "event_id": event_id,
            "event_type": event_type,
            "user_id": result.user_id,
            "tier": result.tier,
        })
        return result

    # =========================================================================
    # Handlers
    # =========================================================================

    def _on_checkout_completed(self, event_type: str, session: Dict[str, Any]) -> EntitlementResult:
        customer_id = session.get("customer")
        subscription_id = session.get("subscription")
        customer_details = session.get("customer_details") or {}
        email = customer_details.get("email") or session.get("customer_email")
        metadata = session.get("metadata") or {}
        reference_user_id = session.get("client_reference_id") or metadata.get("user_id")

        user = self._users.get_by_email(email) if email else None
        if user is None and reference_user_id:
            user = self._users.get(reference_user_id)
        if user is None:
            if not email:
                raise UnknownBillingCustomer(customer_id)
            user = self._users.create_for_billing(email)

        if (
            subscription_id
            and user.billing_subscription_id == subscription_id
            and user.billing_status is not None
            and user.billing_status not in PAID_STATUSES
        ):
            # The subscription already moved past this checkout.
            logger.info("Stale checkout completion ignored", extra={
                "user_id": user.id,
                "billing_status": user.billing_status,
            })
            if customer_id:
                user.billing_customer_id = customer_id
            return EntitlementResult(
                processed=True,
                event_type=event_type,
                message="Checkout superseded by later subscription status",
                user_id=user.id,
                tier=user.tier,
            )

        if customer_id:
            user.billing_customer_id = customer_id
        if subscription_id:
            user.billing_subscription_id = subscription_id
        if user.billing_status is None or user.billing_status not in PAID_STATUSES:
            user.billing_status = "active"
        user.tier = Tier.PAID.value

        return EntitlementResult(
            processed=True,
            event_type=event_type,
            message="Checkout completed",
            user_id=user.id,
            tier=user.tier,
        )

    def _on_subscription_changed(self, event_type: str, subscription: Dict[str, Any]) -> EntitlementResult:
        user = self._user_for_customer(subscription.get("customer"))
        status = subscription.get("status")

        self._set_subscription_state(user, subscription.get("id"), status)

        return EntitlementResult(
            processed=True,
            event_type=event_type,
            message=f"Subscription status {status}",
            user_id=user.id,
            tier=user.tier,
        )

    def _on_subscription_deleted(self, event_type: str, subscription: Dict[str, Any]) -> EntitlementResult:
        user = self._user_for_customer(subscription.get("customer"))

        self._set_subscription_state(user, subscription.get("id"), "canceled")

        return EntitlementResult(
            processed=True,
            event_type=event_type,
            message="Subscription deleted",
            user_id=user.id,
            tier=user.tier,
        )

    def _on_invoice_payment_succeeded(self, event_type: str, invoice: Dict[str, Any]) -> EntitlementResult:
        user = self._user_for_customer(invoice.get("customer"))
        subscription_id = invoice.get("subscription")

        if not subscription_id or self._billing is None:
            return EntitlementResult(
                processed=True,
                event_type=event_type,
                message="Invoice paid without subscription to confirm",
                user_id=user.id,
                tier=user.tier,
            )

        status = self._billing.retrieve_subscription_status(subscription_id)
        if status in PAID_STATUSES:
            self._set_subscription_state(user, subscription_id, status)

        return EntitlementResult(
            processed=True,
            event_type=event_type,
            message=f"Invoice paid, subscription status {status}",
            user_id=user.id,
            tier=user.tier,
        )

    def _on_invoice_payment_failed(self, event_type: str, invoice: Dict[str, Any]) -> EntitlementResult:
        user = self._user_for_customer(invoice.get("customer"))

        # Stripe follows up with customer.subscription.updated once it gives up retrying.
        logger.warning("Invoice payment failed", extra={
            "user_id": user.id,
            "invoice_id": invoice.get("id"),
            "attempt_count": invoice.get("attempt_count"),
        })

        return EntitlementResult(
            processed=True,
            event_type=event_type,
            message="Invoice payment failed; tier unchanged",
            user_id=user.id,
            tier=user.tier,
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _user_for_customer(self, customer_id: Optional[str]) -> User:
        user = self._users.get_by_billing_customer(customer_id) if customer_id else None
        if user is None:
            raise UnknownBillingCustomer(customer_id)
        return user

    def _set_subscription_state(self, user: User, subscription_id: Optional[str], status: Optional[str]) -> None:
        if subscription_id:
            user.billing_subscription_id = subscription_id
        user.billing_status = status
        user.tier = tier_for_status(status)
