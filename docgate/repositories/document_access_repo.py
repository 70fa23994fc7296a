"""Repository for per-user document access records."""

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from docgate.models.document_access import DocumentAccess


class DocumentAccessRepository:

    def __init__(self, db_session: Session):
        self.db_session = db_session

    def get(self, user_id: str, document_id: str) -> Optional[DocumentAccess]:
        return (
            self.db_session.query(DocumentAccess)
            .filter(
                DocumentAccess.user_id == user_id,
                DocumentAccess.document_id == document_id,
            )
            .first()
        )

    def count_for_user(self, user_id: str) -> int:
        return (
            self.db_session.query(func.count(DocumentAccess.id))
            .filter(DocumentAccess.user_id == user_id)
            .scalar()
        ) or 0

    def list_for_user(self, user_id: str) -> List[DocumentAccess]:
        return (
            self.db_session.query(DocumentAccess)
            .filter(DocumentAccess.user_id == user_id)
            .order_by(DocumentAccess.last_accessed_at.desc())
            .all()
        )

    def insert(
        self,
        user_id: str,
        document_id: str,
        document_title: Optional[str] = None,
    ) -> DocumentAccess:
        """Insert a new record. Flushes, so a duplicate raises IntegrityError here."""
        now = datetime.now(timezone.utc)
        record = DocumentAccess(
            user_id=user_id,
            document_id=document_id,
            document_title=document_title,
            first_accessed_at=now,
            last_accessed_at=now,
        )
        self.db_session.add(record)
        self.db_session.flush()
        return record

    def touch(
        self,
        record: DocumentAccess,
        document_title: Optional[str] = None,
    ) -> DocumentAccess:
        record.last_accessed_at = datetime.now(timezone.utc)
        if document_title:
            record.document_title = document_title
        self.db_session.flush()
        return record
