"""
Document access gate with free-tier quota enforcement.

Quota model:
- Revisiting a document the user already opened is always allowed
- Paid users may open any number of new documents
- Free users may open new documents while their distinct-document count is
  below the configured limit

The tier is always read from the persisted user record. The tier carried in
the session token is advisory and is never consulted here.

Usage:
    gate = AccessGate(db_session, free_tier_limit=settings.free_tier_document_limit)
    decision = gate.request_access(user_id, document_id, document_title)
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from docgate.config import DEFAULT_FREE_TIER_DOCUMENT_LIMIT
from docgate.errors import QuotaExceeded
from docgate.models.document_access import DocumentAccess
from docgate.models.user import Tier
from docgate.repositories.document_access_repo import DocumentAccessRepository
from docgate.repositories.users_repo import UsersRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserStatus:
    """Snapshot of a user's tier and quota usage."""
    tier: str
    document_count: int
    document_limit: Optional[int]
    remaining_documents: Optional[int]

    def to_dict(self) -> dict:
        return {
            "subscriptionTier": self.tier,
            "documentCount": self.document_count,
            "documentLimit": self.document_limit,
            "remainingDocuments": self.remaining_documents,
        }


@dataclass(frozen=True)
class AccessDecision:
    granted: bool
    is_new_document: bool
    status: UserStatus


class AccessGate:

    def __init__(self, db_session: Session, free_tier_limit: int = DEFAULT_FREE_TIER_DOCUMENT_LIMIT):
        self.db = db_session
        self.free_tier_limit = free_tier_limit
        self._users = UsersRepository(db_session)
        self._records = DocumentAccessRepository(db_session)

    def user_status(self, user_id: str) -> UserStatus:
        """
        Current tier and usage for a user.

        remaining_documents and document_limit are None for paid users.
        """
        user = self._users.require(user_id)
        count = self._records.count_for_user(user_id)

        if user.is_paid:
            return UserStatus(
                tier=user.tier,
                document_count=count,
                document_limit=None,
                remaining_documents=None,
            )

        return UserStatus(
            tier=user.tier,
            document_count=count,
            document_limit=self.free_tier_limit,
            remaining_documents=max(0, self.free_tier_limit - count),
        )

    def check_access(self, user_id: str, document_id: str) -> AccessDecision:
        """Decide whether the user may open the document. Does not record anything."""
        status = self.user_status(user_id)
        existing = self._records.get(user_id, document_id)

        if existing is not None:
            return AccessDecision(granted=True, is_new_document=False, status=status)

        if status.tier == Tier.PAID.value:
            return AccessDecision(granted=True, is_new_document=True, status=status)

        granted = status.document_count < self.free_tier_limit
        return AccessDecision(granted=granted, is_new_document=True, status=status)

    def record_access(
        self,
        user_id: str,
        document_id: str,
        document_title: Optional[str] = None,
    ) -> DocumentAccess:
        """
        Create the access record, or bump last_accessed_at if it exists.

        The user row is locked first so quota decisions for one user are
        serialized. After a new record is inserted the distinct-document count
        is taken again; a free user pushed over the limit by a concurrent
        request is rolled back.

        A unique-constraint violation on insert means a concurrent request
        created the same row, so the existing row is updated instead.

        Raises:
            QuotaExceeded: If the insert would leave a free user above the limit.
        """
        user = self._users.lock(user_id)
        existing = self._records.get(user_id, document_id)
        if existing is None:
            try:
                record = self._records.insert(user_id, document_id, document_title)
            except IntegrityError:
                self.db.rollback()
                logger.info(
                    "Concurrent first access detected; updating existing record",
                    extra={"user_id": user_id, "document_id": document_id},
                )
                existing = self._records.get(user_id, document_id)
                if existing is None:
                    raise
            else:
                if not user.is_paid and self._records.count_for_user(user_id) > self.free_tier_limit:
                    self.db.rollback()
                    status = self.user_status(user_id)
                    logger.info(
                        "Concurrent new document pushed free user over quota; rolled back",
                        extra={"user_id": user_id, "document_id": document_id},
                    )
                    raise QuotaExceeded(status.to_dict())
                self.db.commit()
                return record

        record = self._records.touch(existing, document_title)
        self.db.commit()
        return record

    def request_access(
        self,
        user_id: str,
        document_id: str,
        document_title: Optional[str] = None,
    ) -> tuple[AccessDecision, DocumentAccess, UserStatus]:
        """
        Check quota and record the access in one step.

        Returns:
            The decision, the stored record and the post-access status.

        Raises:
            QuotaExceeded: If a free user has no remaining quota for a new document.
            UserNotFound: If the user does not exist.
        """
        self._users.lock(user_id)
        decision = self.check_access(user_id, document_id)

        if not decision.granted:
            logger.info(
                "Document access denied by quota",
                extra={
                    "user_id": user_id,
                    "document_count": decision.status.document_count,
                    "document_limit": decision.status.document_limit,
                },
            )
            raise QuotaExceeded(decision.status.to_dict())

        record = self.record_access(user_id, document_id, document_title)
        status = self.user_status(user_id)

        logger.info(
            "Document access granted",
            extra={
                "user_id": user_id,
                "is_new_document": decision.is_new_document,
                "document_count": status.document_count,
            },
        )
        return decision, record, status

    def list_documents(self, user_id: str) -> List[DocumentAccess]:
        """Accessed documents, most recently opened first."""
        self._users.require(user_id)
        return self._records.list_for_user(user_id)
