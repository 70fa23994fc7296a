"""
Authentication endpoints.

- GET  /auth/google/callback       OAuth callback; issues the session credential
- GET  /auth/google/refresh-token  Fresh Google access token from the stored refresh credential
- GET  /auth/session               Current session context
- GET  /auth/logout                Stateless logout
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from docgate.api.dependencies import get_db_session, get_services, require_session
from docgate.auth.context import SessionContext
from docgate.services.container import ServiceContainer
from docgate.services.login_service import LoginService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


# --- Response Models ---


class LoginUser(BaseModel):
    email: str
    sub: str
    subscription_tier: str


class LoginResponse(BaseModel):
    success: bool = True
    jwt_token: str
    user: LoginUser


class AccessTokenResponse(BaseModel):
    access_token: str
    expires_in: Optional[int] = None
    expiry_time: Optional[str] = None
    email: str
    userId: str


class LogoutResponse(BaseModel):
    success: bool = True
    message: str = "Logged out"


def _login_service(db: Session, services: ServiceContainer) -> LoginService:
    return LoginService(
        db_session=db,
        identity=services.identity,
        session_tokens=services.session_tokens,
        credential_cipher=services.credential_cipher,
    )


# --- Endpoints ---


@router.get("/google/callback", response_model=LoginResponse)
async def google_callback(
    code: Optional[str] = Query(default=None),
    db: Session = Depends(get_db_session),
    services: ServiceContainer = Depends(get_services),
):
    """
    Complete Google sign-in.

    Returns 400 if the code is missing and 401 if Google rejects the code,
    the ID token fails verification, or no refresh credential was granted.
    """
    if not code:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Authorization code is required",
        )

    result = await _login_service(db, services).complete_login(code)
    return result.to_dict()


@router.get("/google/refresh-token", response_model=AccessTokenResponse)
async def refresh_google_access_token(
    session: SessionContext = Depends(require_session),
    db: Session = Depends(get_db_session),
    services: ServiceContainer = Depends(get_services),
):
    result = await _login_service(db, services).refresh_access_token(session)
    return result.to_dict()


@router.get("/session")
async def current_session(session: SessionContext = Depends(require_session)):
    return session.to_dict()


@router.get("/logout", response_model=LogoutResponse)
async def logout(session: SessionContext = Depends(require_session)):
    """Sessions are stateless; the client discards its credential."""
    logger.info("User logged out", extra={"user_id": session.user_id, "session_id": session.session_id})
    return LogoutResponse()
