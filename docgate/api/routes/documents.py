"""
Document access endpoints.

- POST /documents/access  Gate and record access to a document
- GET  /documents/list    Documents the user has opened, most recent first
- GET  /documents/status  Tier and quota usage
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from docgate.api.dependencies import get_db_session, get_services, require_session
from docgate.auth.context import SessionContext
from docgate.services.access_gate import AccessGate
from docgate.services.container import ServiceContainer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/documents", tags=["documents"])


class DocumentAccessRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    document_id: str = Field(..., alias="documentId", min_length=1, max_length=255)
    document_title: Optional[str] = Field(default=None, alias="documentTitle", max_length=512)


def _gate(db: Session, services: ServiceContainer) -> AccessGate:
    return AccessGate(db, free_tier_limit=services.settings.free_tier_document_limit)


@router.post("/access")
async def access_document(
    body: DocumentAccessRequest,
    session: SessionContext = Depends(require_session),
    db: Session = Depends(get_db_session),
    services: ServiceContainer = Depends(get_services),
):
    """
    Returns 403 with the current userStatus when a free user has no quota
    left for a document they have not opened before.
    """
    decision, record, user_status = _gate(db, services).request_access(
        session.user_id,
        body.document_id,
        body.document_title,
    )
    return {
        "success": True,
        "isNewDocument": decision.is_new_document,
        "documentAccess": record.to_dict(),
        "userStatus": user_status.to_dict(),
    }


@router.get("/list")
async def list_documents(
    session: SessionContext = Depends(require_session),
    db: Session = Depends(get_db_session),
    services: ServiceContainer = Depends(get_services),
):
    records = _gate(db, services).list_documents(session.user_id)
    return {"documents": [record.to_dict() for record in records]}


@router.get("/status")
async def document_status(
    session: SessionContext = Depends(require_session),
    db: Session = Depends(get_db_session),
    services: ServiceContainer = Depends(get_services),
):
    return _gate(db, services).user_status(session.user_id).to_dict()
