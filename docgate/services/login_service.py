"""
Google sign-in and Google access-token refresh flows.

complete_login() runs the whole callback sequence: code exchange, ID token
verification, refresh credential capture, user upsert and session issuance.
Nothing is persisted unless Google returned a refresh credential.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from docgate.auth.context import SessionContext
from docgate.auth.credential_store import CredentialStore
from docgate.auth.google_identity import GoogleIdentityAdapter
from docgate.auth.session_tokens import SessionTokenService
from docgate.errors import NoRefreshCredential, VerificationFailed
from docgate.models.user import User
from docgate.platform.encryption import AesGcmCipher
from docgate.repositories.users_repo import UsersRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoginResult:
    session_token: str
    user_id: str
    email: str
    subject_id: str
    tier: str

    def to_dict(self) -> dict:
        return {
            "success": True,
            "jwt_token": self.session_token,
            "user": {
                "email": self.email,
                "sub": self.subject_id,
                "subscription_tier": self.tier,
            },
        }


@dataclass(frozen=True)
class AccessTokenResult:
    access_token: str
    expires_in: Optional[int]
    expiry_time: Optional[datetime]
    email: str
    user_id: str

    def to_dict(self) -> dict:
        return {
            "access_token": self.access_token,
            "expires_in": self.expires_in,
            "expiry_time": self.expiry_time.isoformat() if self.expiry_time else None,
            "email": self.email,
            "userId": self.user_id,
        }


class LoginService:

    def __init__(
        self,
        db_session: Session,
        identity: GoogleIdentityAdapter,
        session_tokens: SessionTokenService,
        credential_cipher: AesGcmCipher,
    ):
        self.db = db_session
        self._identity = identity
        self._tokens = session_tokens
        self._users = UsersRepository(db_session)
        self._credentials = CredentialStore(db_session, credential_cipher)

    async def complete_login(self, code: str) -> LoginResult:
        """
        Finish the OAuth callback and issue a session credential.

        Raises:
            ExchangeFailed: Google rejected the code.
            VerificationFailed: The ID token is invalid or the email is unverified.
            NoRefreshCredential: Google returned no refresh token.
        """
        tokens = await self._identity.exchange(code)
        identity = await run_in_threadpool(self._identity.verify_identity, tokens.id_token)

        if not identity.email_verified:
            raise VerificationFailed("Google account email is not verified")

        if not tokens.refresh_token:
            logger.warning("Login aborted: no refresh credential returned")
            raise NoRefreshCredential()

        try:
            try:
                user = self._save_user(identity.subject_id, identity.email, tokens.refresh_token)
            except IntegrityError:
                # A concurrent first sign-in for the same account inserted the row.
                self.db.rollback()
                logger.info(
                    "Concurrent first sign-in detected; retrying against existing user",
                    extra={"subject_id": identity.subject_id},
                )
                user = self._save_user(identity.subject_id, identity.email, tokens.refresh_token)
        except Exception:
            self.db.rollback()
            raise

        session_id = str(uuid.uuid4())
        session_token = self._tokens.issue(user.id, user.email, session_id, user.tier)

        logger.info("User signed in", extra={"user_id": user.id, "session_id": session_id})

        return LoginResult(
            session_token=session_token,
            user_id=user.id,
            email=user.email,
            subject_id=identity.subject_id,
            tier=user.tier,
        )

    def _save_user(self, subject_id: str, email: str, refresh_token: str) -> User:
        user = self._users.upsert_from_identity(subject_id, email)
        self._credentials.store(user.id, refresh_token)
        self.db.commit()
        return user

    async def refresh_access_token(self, context: SessionContext) -> AccessTokenResult:
        """
        Get a fresh Google access token using the stored refresh credential.

        A refresh credential returned by Google replaces the stored one.

        Raises:
            CredentialNotFound / CredentialCorrupted: Re-authentication required.
            ExchangeFailed: Google rejected the refresh credential.
        """
        refresh_token = self._credentials.retrieve(context.user_id)
        tokens = await self._identity.refresh_access_token(refresh_token)

        if tokens.refresh_token and tokens.refresh_token != refresh_token:
            self._credentials.store(context.user_id, tokens.refresh_token)
            self.db.commit()
            logger.info("Refresh credential rotated", extra={"user_id": context.user_id})

        expiry_time = None
        if tokens.expires_in is not None:
            expiry_time = datetime.now(timezone.utc) + timedelta(seconds=tokens.expires_in)

        return AccessTokenResult(
            access_token=tokens.access_token,
            expires_in=tokens.expires_in,
            expiry_time=expiry_time,
            email=context.email,
            user_id=context.user_id,
        )
