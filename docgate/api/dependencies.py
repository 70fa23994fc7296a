"""
FastAPI dependencies shared by all routers.

Usage:
    @router.get("/documents/list")
    async def list_documents(
        session: SessionContext = Depends(require_session),
        db: Session = Depends(get_db_session),
    ):
        ...
"""

import logging
from typing import Generator, Optional

from fastapi import Depends, Request, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from docgate.auth.context import SessionContext
from docgate.errors import InvalidToken
from docgate.services.container import ServiceContainer

logger = logging.getLogger(__name__)

RENEWED_TOKEN_HEADER = "X-Renewed-Session-Token"

security = HTTPBearer(auto_error=False)


async def get_services(request: Request) -> ServiceContainer:
    """The process-wide container, initialized on first use if the lifespan did not."""
    return await request.app.state.registry.get()


def get_db_session(services: ServiceContainer = Depends(get_services)) -> Generator[Session, None, None]:
    """One database session per request, always closed."""
    db = services.session_factory()
    try:
        yield db
    finally:
        db.close()


def require_session(
    response: Response,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    services: ServiceContainer = Depends(get_services),
) -> SessionContext:
    """
    Verify the bearer session credential.

    When the credential is close to expiry a replacement is returned in the
    X-Renewed-Session-Token response header; the presented one stays valid.

    Raises:
        InvalidToken: Missing, malformed, tampered or expired credential.
    """
    if credentials is None or not credentials.credentials:
        raise InvalidToken()

    token = credentials.credentials
    context = services.session_tokens.verify(token)

    renewed = services.session_tokens.renew_if_needed(token)
    if renewed:
        response.headers[RENEWED_TOKEN_HEADER] = renewed

    return context
