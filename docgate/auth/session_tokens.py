"""
Session credential issuance, verification and silent renewal.

A session credential is an HS256 JWT whose payload carries user_id, email and
an encrypted nonce. The nonce binds the token to a session id and tier and
carries its own issue timestamp, so a token is rejected once the nonce is
older than 24 hours even if its exp claim were somehow extended.

Security Requirements:
- Lifetime: 24 hours
- Silent renewal when less than 1 hour remains
- Every verification failure is reported as the same InvalidToken error;
  the reason is only logged server-side
"""

import json
import logging
import time
from typing import Callable, Optional

import jwt
from pydantic import BaseModel

from docgate.auth.context import SessionContext
from docgate.errors import InvalidToken
from docgate.platform.encryption import AesGcmCipher, EncryptedPayload, IntegrityError

logger = logging.getLogger(__name__)

REQUIRED_CLAIMS = ["exp", "iat", "iss", "user_id", "email", "nonce"]

CLOCK_SKEW_SECONDS = 60


class SessionTokenConfig(BaseModel):
    """Configuration for session token generation."""
    jwt_secret: str
    algorithm: str = "HS256"
    issuer: str = "docgate"
    lifetime_seconds: int = 24 * 60 * 60
    refresh_threshold_seconds: int = 60 * 60
    nonce_max_age_seconds: int = 24 * 60 * 60


class _TokenRejected(Exception):
    """Internal reason for a rejection. Never leaves this module."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class SessionTokenService:
    """
    Issues and verifies session credentials.

    Pure CPU work; one instance is shared by all requests.
    """

    def __init__(
        self,
        config: SessionTokenConfig,
        nonce_cipher: AesGcmCipher,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self._nonce_cipher = nonce_cipher
        self._clock = clock

    def issue(self, user_id: str, email: str, session_id: str, tier: str) -> str:
        """Sign a new 24-hour session credential."""
        now = self._clock()
        nonce_body = {
            "user_id": user_id,
            "session_id": session_id,
            "tier": tier,
            "issued_at_ms": int(now * 1000),
        }
        nonce = self._nonce_cipher.encrypt_text(
            json.dumps(nonce_body, separators=(",", ":"))
        ).to_compact()

        payload = {
            "user_id": user_id,
            "email": email,
            "nonce": nonce,
            "iss": self.config.issuer,
            "iat": int(now),
            "exp": int(now) + self.config.lifetime_seconds,
        }

        token = jwt.encode(payload, self.config.jwt_secret, algorithm=self.config.algorithm)

        logger.info(
            "Issued session token",
            extra={"user_id": user_id, "session_id": session_id, "exp": payload["exp"]},
        )
        return token

    def verify(self, token: str) -> SessionContext:
        """
        Verify a session credential.

        Raises:
            InvalidToken: For any failure. The error is identical whatever the cause.
        """
        try:
            return self._verify(token)
        except (_TokenRejected, jwt.InvalidTokenError, IntegrityError) as exc:
            reason = exc.reason if isinstance(exc, _TokenRejected) else type(exc).__name__
            logger.info("Session token rejected", extra={"reason": reason})
            raise InvalidToken() from None

    def renew_if_needed(self, token: str) -> Optional[str]:
        """
        Return a replacement credential when less than the refresh threshold remains.

        Reads exp without checking the signature to decide; the old token is
        then fully verified before a new one is issued. The old token stays
        valid until its own expiry.

        Returns:
            A new token, or None if the current one is still fresh.

        Raises:
            InvalidToken: If the token cannot be decoded or fails verification.
        """
        try:
            unverified = jwt.decode(token, options={"verify_signature": False})
        except jwt.InvalidTokenError:
            raise InvalidToken() from None

        exp = unverified.get("exp")
        if not isinstance(exp, (int, float)):
            raise InvalidToken()

        remaining = exp - self._clock()
        if remaining >= self.config.refresh_threshold_seconds:
            return None

        context = self.verify(token)
        logger.info(
            "Renewing session token",
            extra={"user_id": context.user_id, "remaining_seconds": int(remaining)},
        )
        return self.issue(context.user_id, context.email, context.session_id, context.tier)

    def _verify(self, token: str) -> SessionContext:
        if not isinstance(token, str) or not token:
            raise _TokenRejected("empty_token")

        # exp and iat are checked against self._clock below so that expiry and
        # nonce age share a single time source.
        claims = jwt.decode(
            token,
            self.config.jwt_secret,
            algorithms=[self.config.algorithm],
            issuer=self.config.issuer,
            options={"require": REQUIRED_CLAIMS, "verify_exp": False, "verify_iat": False},
        )

        now = self._clock()
        if not isinstance(claims["exp"], (int, float)) or claims["exp"] <= now:
            raise _TokenRejected("expired")
        if not isinstance(claims["iat"], (int, float)) or claims["iat"] > now + CLOCK_SKEW_SECONDS:
            raise _TokenRejected("issued_in_future")

        nonce = self._open_nonce(claims["nonce"])

        if nonce.get("user_id") != claims["user_id"]:
            raise _TokenRejected("nonce_user_mismatch")

        issued_at_ms = nonce.get("issued_at_ms")
        if not isinstance(issued_at_ms, int):
            raise _TokenRejected("nonce_missing_timestamp")
        if now * 1000 - issued_at_ms > self.config.nonce_max_age_seconds * 1000:
            raise _TokenRejected("nonce_expired")

        session_id = nonce.get("session_id")
        tier = nonce.get("tier")
        if not isinstance(session_id, str) or not isinstance(tier, str):
            raise _TokenRejected("nonce_incomplete")

        return SessionContext(
            user_id=claims["user_id"],
            email=claims["email"],
            session_id=session_id,
            tier=tier,
        )

    def _open_nonce(self, raw_nonce) -> dict:
        payload = EncryptedPayload.from_compact(raw_nonce)
        plaintext = self._nonce_cipher.decrypt_text(payload)
        try:
            body = json.loads(plaintext)
        except ValueError:
            raise _TokenRejected("nonce_not_json") from None
        if not isinstance(body, dict):
            raise _TokenRejected("nonce_not_object")
        return body
