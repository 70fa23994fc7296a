"""
User model.

A User is created on the first successful Google sign-in, or by a
checkout-completed billing event for an email with no prior record. Users are
never hard-deleted.

Entitlement invariant: tier == "paid" exactly when the most recently observed
billing status is active or trialing. Only the entitlement state machine
changes tier.

SECURITY:
- encrypted_refresh_credential holds the JSON {iv, ciphertext, authTag} triple
  produced by AesGcmCipher. The plaintext Google refresh token is never stored.
"""

import enum

from sqlalchemy import Column, String, Text

from docgate.db_base import Base
from docgate.models.base import TimestampMixin, generate_uuid


class Tier(str, enum.Enum):
    FREE = "free"
    PAID = "paid"


class User(Base, TimestampMixin):
    """Local user record keyed by an internal UUID."""

    __tablename__ = "users"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid,
        comment="Internal UUID primary key"
    )

    email = Column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
        comment="User email address (from Google or Stripe checkout)"
    )

    external_subject_id = Column(
        String(255),
        nullable=True,
        unique=True,
        index=True,
        comment="Google account subject (sub). Null for users created by billing events"
    )

    tier = Column(
        String(16),
        nullable=False,
        default=Tier.FREE.value,
        comment="Entitlement tier: free or paid"
    )

    billing_customer_id = Column(
        String(255),
        nullable=True,
        unique=True,
        index=True,
        comment="Stripe customer id"
    )

    billing_subscription_id = Column(
        String(255),
        nullable=True,
        comment="Most recently observed Stripe subscription id"
    )

    billing_status = Column(
        String(32),
        nullable=True,
        comment="Most recently observed Stripe subscription status"
    )

    encrypted_refresh_credential = Column(
        Text,
        nullable=True,
        comment="AES-256-GCM encrypted Google refresh token (JSON triple)"
    )

    @property
    def is_paid(self) -> bool:
        return self.tier == Tier.PAID.value

    def __repr__(self) -> str:
        return f"<User(id={self.id}, tier={self.tier})>"
