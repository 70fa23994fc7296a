"""Database models. Importing this package registers every table on Base.metadata."""

from docgate.models.document_access import DocumentAccess
from docgate.models.user import Tier, User

__all__ = ["DocumentAccess", "Tier", "User"]
