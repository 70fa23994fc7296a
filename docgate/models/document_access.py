"""
Document access records.

One row per distinct (user, document) pair. The unique constraint is what
arbitrates two concurrent first accesses to the same document: the loser of
the insert race updates the winner's row instead. Quota usage is the number
of rows a user owns.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Index, String, UniqueConstraint

from docgate.db_base import Base
from docgate.models.base import generate_uuid


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DocumentAccess(Base):
    __tablename__ = "document_access"

    id = Column(String(36), primary_key=True, default=generate_uuid)

    user_id = Column(
        String(36),
        ForeignKey("users.id"),
        nullable=False,
        comment="Owning user"
    )

    document_id = Column(
        String(255),
        nullable=False,
        comment="Client-supplied document identifier"
    )

    document_title = Column(String(512), nullable=True)

    first_accessed_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    last_accessed_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "document_id", name="uq_document_access_user_document"),
        Index("ix_document_access_user_last_accessed", "user_id", "last_accessed_at"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "documentId": self.document_id,
            "documentTitle": self.document_title,
            "firstAccessedAt": self.first_accessed_at.isoformat() if self.first_accessed_at else None,
            "lastAccessedAt": self.last_accessed_at.isoformat() if self.last_accessed_at else None,
        }

    def __repr__(self) -> str:
        return f"<DocumentAccess(user_id={self.user_id}, document_id={self.document_id})>"
