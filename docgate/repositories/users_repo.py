"""
Repository for user records.

Lookups by every key the system resolves users with: internal id, email,
Google subject and Stripe customer id. Methods flush but never commit; the
calling service owns the transaction.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from docgate.errors import UserNotFound
from docgate.models.base import generate_uuid
from docgate.models.user import Tier, User

logger = logging.getLogger(__name__)


class UsersRepository:

    def __init__(self, db_session: Session):
        self.db_session = db_session

    def get(self, user_id: str) -> Optional[User]:
        return self.db_session.query(User).filter(User.id == user_id).first()

    def require(self, user_id: str) -> User:
        user = self.get(user_id)
        if user is None:
            raise UserNotFound(f"User {user_id} not found")
        return user

    def lock(self, user_id: str) -> User:
        """
        Load the user row with SELECT ... FOR UPDATE.

        Serializes quota decisions for one user until the transaction ends.
        SQLite ignores the clause and relies on its database-wide write lock.
        """
        user = (
            self.db_session.query(User)
            .filter(User.id == user_id)
            .with_for_update()
            .first()
        )
        if user is None:
            raise UserNotFound(f"User {user_id} not found")
        return user

    def get_by_email(self, email: str) -> Optional[User]:
        if not email:
            return None
        return self.db_session.query(User).filter(User.email == email.strip().lower()).first()

    def get_by_subject(self, subject_id: str) -> Optional[User]:
        return (
            self.db_session.query(User)
            .filter(User.external_subject_id == subject_id)
            .first()
        )

    def get_by_billing_customer(self, customer_id: str) -> Optional[User]:
        if not customer_id:
            return None
        return (
            self.db_session.query(User)
            .filter(User.billing_customer_id == customer_id)
            .first()
        )

    def upsert_from_identity(self, subject_id: str, email: str) -> User:
        """
        Create or update a user from a verified Google identity.

        Matches on subject first, then email, so an account created by a
        checkout webhook is linked to the Google account on first sign-in.
        """
        email = email.strip().lower()
        user = self.get_by_subject(subject_id) or self.get_by_email(email)

        if user is None:
            user = User(
                id=generate_uuid(),
                email=email,
                external_subject_id=subject_id,
                tier=Tier.FREE.value,
            )
            self.db_session.add(user)
            logger.info("User created from identity", extra={"user_id": user.id})
        else:
            if user.external_subject_id is None:
                user.external_subject_id = subject_id
            if user.email != email:
                self._update_email(user, email)

        self.db_session.flush()
        return user

    def _update_email(self, user: User, email: str) -> None:
        """
        Follow a changed Google email unless another user already holds it.

        The other row is typically one created by a checkout webhook for the
        new address; it is left untouched and the sign-in keeps its old email.
        """
        holder = self.get_by_email(email)
        if holder is not None and holder.id != user.id:
            logger.warning(
                "Google email already belongs to another user; keeping existing email",
                extra={"user_id": user.id, "other_user_id": holder.id},
            )
            return
        user.email = email

    def create_for_billing(self, email: str) -> User:
        """Create a user for a paying email that has never signed in."""
        user = User(
            id=generate_uuid(),
            email=email.strip().lower(),
            tier=Tier.FREE.value,
        )
        self.db_session.add(user)
        self.db_session.flush()
        logger.info("User created from billing event", extra={"user_id": user.id})
        return user
