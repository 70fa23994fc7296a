"""
Google identity exchange adapter.

This module handles:
- Exchanging an OAuth authorization code for Google tokens
- Verifying Google ID tokens against Google's JWKS
- Refreshing a Google access token from a stored refresh credential

No retries are attempted; a failed exchange is surfaced to the caller as
ExchangeFailed and the user restarts sign-in.

Documentation: https://developers.google.com/identity/protocols/oauth2/web-server
"""

import logging
from dataclasses import dataclass
from threading import Lock
from typing import Optional

import httpx
import jwt
from jwt import PyJWKClient, PyJWKClientError

from docgate.errors import ExchangeFailed, VerificationFailed
from docgate.platform.redaction import redact_secrets

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_JWKS_URL = "https://www.googleapis.com/oauth2/v3/certs"
GOOGLE_ISSUERS = ("accounts.google.com", "https://accounts.google.com")


@dataclass(frozen=True)
class OAuthTokens:
    """Tokens returned by Google's token endpoint."""
    access_token: str
    refresh_token: Optional[str] = None
    id_token: Optional[str] = None
    expires_in: Optional[int] = None
    scope: Optional[str] = None


@dataclass(frozen=True)
class VerifiedIdentity:
    subject_id: str
    email: str
    email_verified: bool


def _error_body(response: httpx.Response):
    """Google's error payload with any echoed credentials redacted."""
    try:
        return redact_secrets(response.json())
    except ValueError:
        return redact_secrets(response.text[:500])


class GoogleIdentityAdapter:
    """
    Talks to Google's OAuth endpoints on behalf of the login flow.

    Usage:
        adapter = GoogleIdentityAdapter(client_id, client_secret, redirect_uri)
        tokens = await adapter.exchange(code)
        identity = adapter.verify_identity(tokens.id_token)
    """

    JWKS_CACHE_DURATION = 3600

    # Clock skew tolerance in seconds (for exp/iat validation)
    CLOCK_SKEW_SECONDS = 60

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        jwks_client: Optional[PyJWKClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
        token_url: str = GOOGLE_TOKEN_URL,
    ):
        self._client_id = client_id
        self._client_secret = client_secret
        self._redirect_uri = redirect_uri
        self._token_url = token_url
        self._transport = transport
        self._timeout = timeout

        self._jwks_client = jwks_client
        self._jwks_client_lock = Lock()

    # =========================================================================
    # Token endpoint
    # =========================================================================

    async def exchange(self, code: str) -> OAuthTokens:
        """
        Exchange an authorization code for tokens.

        Raises:
            ExchangeFailed: On any non-2xx response, network error or
                malformed body.
        """
        if not code:
            raise ExchangeFailed("Authorization code is required")

        tokens = await self._post_token_request({
            "code": code,
            "client_id": self._client_id,
            "client_secret": self._client_secret,
            "redirect_uri": self._redirect_uri,
            "grant_type": "authorization_code",
        })

        if not tokens.id_token:
            raise ExchangeFailed("Token response did not include an id_token")

        logger.info(
            "Authorization code exchanged",
            extra={"has_refresh_credential": tokens.refresh_token is not None},
        )
        return tokens

    async def refresh_access_token(self, refresh_token: str) -> OAuthTokens:
        """
        Obtain a fresh Google access token.

        Google may return a new refresh token, in which case the caller must
        rotate the stored one.
        """
        tokens = await self._post_token_request({
            "refresh_token": refresh_token,
            "client_id": self._client_id,
            "client_secret": self._client_secret,
            "grant_type": "refresh_token",
        })

        logger.info(
            "Google access token refreshed",
            extra={"rotated": tokens.refresh_token is not None},
        )
        return tokens

    async def _post_token_request(self, form: dict) -> OAuthTokens:
        grant_type = form.get("grant_type")
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(
                    self._token_url,
                    data=form,
                    headers={"Accept": "application/json"},
                )
                response.raise_for_status()
                body = response.json()

        except httpx.HTTPStatusError as e:
            logger.warning(
                "Google token endpoint rejected request",
                extra={
                    "grant_type": grant_type,
                    "status_code": e.response.status_code,
                    "error_body": _error_body(e.response),
                },
            )
            raise ExchangeFailed(
                f"Token request rejected with status {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            logger.warning(
                "Google token endpoint unreachable",
                extra={"grant_type": grant_type, "error": type(e).__name__},
            )
            raise ExchangeFailed("Token endpoint unreachable") from e
        except ValueError as e:
            raise ExchangeFailed("Token endpoint returned a malformed body") from e

        if not isinstance(body, dict) or not body.get("access_token"):
            raise ExchangeFailed("Token response did not include an access_token")

        expires_in = body.get("expires_in")
        return OAuthTokens(
            access_token=body["access_token"],
            refresh_token=body.get("refresh_token") or None,
            id_token=body.get("id_token") or None,
            expires_in=int(expires_in) if isinstance(expires_in, (int, float)) else None,
            scope=body.get("scope"),
        )

    # =========================================================================
    # ID token verification
    # =========================================================================

    def _get_jwks_client(self) -> PyJWKClient:
        with self._jwks_client_lock:
            if self._jwks_client is None:
                self._jwks_client = PyJWKClient(
                    GOOGLE_JWKS_URL,
                    cache_keys=True,
                    lifespan=self.JWKS_CACHE_DURATION,
                )
            return self._jwks_client

    def verify_identity(self, id_token: str) -> VerifiedIdentity:
        """
        Verify a Google ID token and extract the identity.

        Raises:
            VerificationFailed: If the signature, audience, issuer or expiry is
                invalid, or the token lacks sub/email.
        """
        if not id_token:
            raise VerificationFailed("ID token is required")

        try:
            signing_key = self._get_jwks_client().get_signing_key_from_jwt(id_token)
            claims = jwt.decode(
                id_token,
                signing_key.key,
                algorithms=["RS256"],
                audience=self._client_id,
                options={"require": ["sub", "iss", "aud", "exp", "iat"]},
                leeway=self.CLOCK_SKEW_SECONDS,
            )
        except jwt.ExpiredSignatureError as e:
            raise VerificationFailed("ID token has expired") from e
        except PyJWKClientError as e:
            logger.warning("Google signing key lookup failed", extra={"error": type(e).__name__})
            raise VerificationFailed("Unable to resolve ID token signing key") from e
        except jwt.InvalidTokenError as e:
            logger.warning("Google ID token rejected", extra={"error": type(e).__name__})
            raise VerificationFailed("ID token is invalid") from e

        if claims.get("iss") not in GOOGLE_ISSUERS:
            raise VerificationFailed("ID token issuer is not Google")

        subject_id = claims.get("sub")
        email = claims.get("email")
        if not subject_id or not email:
            raise VerificationFailed("ID token is missing sub or email")

        email_verified = claims.get("email_verified")
        if isinstance(email_verified, str):
            email_verified = email_verified.lower() == "true"

        return VerifiedIdentity(
            subject_id=subject_id,
            email=email.lower(),
            email_verified=bool(email_verified),
        )
