"""
Tests for GoogleIdentityAdapter.

Google's token endpoint is replaced with httpx.MockTransport and its JWKS
with a static key resolver backed by a locally generated RSA key.
"""

import json
import logging
from urllib.parse import parse_qs

import httpx
import pytest

from docgate.auth.google_identity import GOOGLE_TOKEN_URL, GoogleIdentityAdapter
from docgate.errors import ExchangeFailed, VerificationFailed
from docgate.platform.redaction import REDACTED_VALUE
from docgate.tests.conftest import GOOGLE_CLIENT_ID


def _adapter(handler=None, jwks_client=None) -> GoogleIdentityAdapter:
    transport = httpx.MockTransport(handler) if handler else None
    return GoogleIdentityAdapter(
        client_id=GOOGLE_CLIENT_ID,
        client_secret="test-client-secret",
        redirect_uri="https://ext.example.com/callback",
        jwks_client=jwks_client,
        transport=transport,
    )


def _token_response(**body):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=body)
    return handler


# =============================================================================
# Code exchange
# =============================================================================

class TestExchange:

    @pytest.mark.asyncio
    async def test_successful_exchange(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["form"] = parse_qs(request.content.decode())
            return httpx.Response(200, json={
                "access_token": "ya29.access",
                "refresh_token": "1//refresh",
                "id_token": "id.token.value",
                "expires_in": 3599,
            })

        tokens = await _adapter(handler).exchange("auth-code")

        assert captured["url"] == GOOGLE_TOKEN_URL
        assert captured["form"]["grant_type"] == ["authorization_code"]
        assert captured["form"]["code"] == ["auth-code"]
        assert tokens.access_token == "ya29.access"
        assert tokens.refresh_token == "1//refresh"
        assert tokens.id_token == "id.token.value"
        assert tokens.expires_in == 3599

    @pytest.mark.asyncio
    async def test_missing_refresh_token_is_reported_as_none(self):
        handler = _token_response(access_token="ya29.access", id_token="id.token.value")
        tokens = await _adapter(handler).exchange("auth-code")
        assert tokens.refresh_token is None

    @pytest.mark.asyncio
    async def test_rejected_code(self):
        def handler(request):
            return httpx.Response(400, json={"error": "invalid_grant"})

        with pytest.raises(ExchangeFailed):
            await _adapter(handler).exchange("bad-code")

    @pytest.mark.asyncio
    async def test_rejection_body_logged_redacted(self, caplog):
        def handler(request):
            return httpx.Response(400, json={
                "error": "invalid_grant",
                "error_description": "Token 1//0gEchoedRefreshTokenValue has been revoked",
                "refresh_token": "1//0gEchoedRefreshTokenValue",
            })

        with caplog.at_level(logging.WARNING, logger="docgate.auth.google_identity"):
            with pytest.raises(ExchangeFailed):
                await _adapter(handler).refresh_access_token("1//0gEchoedRefreshTokenValue")

        record = next(r for r in caplog.records if r.getMessage() == "Google token endpoint rejected request")
        assert record.error_body["error"] == "invalid_grant"
        assert record.error_body["refresh_token"] == REDACTED_VALUE
        assert "1//0gEchoed" not in record.error_body["error_description"]

    @pytest.mark.asyncio
    async def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ExchangeFailed):
            await _adapter(handler).exchange("auth-code")

    @pytest.mark.asyncio
    async def test_malformed_body(self):
        def handler(request):
            return httpx.Response(200, content=b"<html>oops</html>")

        with pytest.raises(ExchangeFailed):
            await _adapter(handler).exchange("auth-code")

    @pytest.mark.asyncio
    async def test_missing_id_token(self):
        handler = _token_response(access_token="ya29.access", refresh_token="1//refresh")
        with pytest.raises(ExchangeFailed):
            await _adapter(handler).exchange("auth-code")

    @pytest.mark.asyncio
    async def test_empty_code(self):
        with pytest.raises(ExchangeFailed):
            await _adapter(_token_response()).exchange("")


class TestRefreshAccessToken:

    @pytest.mark.asyncio
    async def test_refresh_uses_refresh_grant(self):
        captured = {}

        def handler(request):
            captured["form"] = parse_qs(request.content.decode())
            return httpx.Response(200, json={"access_token": "ya29.new", "expires_in": 3600})

        tokens = await _adapter(handler).refresh_access_token("1//refresh")

        assert captured["form"]["grant_type"] == ["refresh_token"]
        assert captured["form"]["refresh_token"] == ["1//refresh"]
        assert tokens.access_token == "ya29.new"
        assert tokens.refresh_token is None

    @pytest.mark.asyncio
    async def test_revoked_refresh_token(self):
        def handler(request):
            return httpx.Response(400, content=json.dumps({"error": "invalid_grant"}).encode())

        with pytest.raises(ExchangeFailed):
            await _adapter(handler).refresh_access_token("1//revoked")


# =============================================================================
# ID token verification
# =============================================================================

class TestVerifyIdentity:

    def test_valid_token(self, jwks_client, make_id_token):
        identity = _adapter(jwks_client=jwks_client).verify_identity(
            make_id_token(sub="sub-42", email="Reader@Example.com")
        )

        assert identity.subject_id == "sub-42"
        assert identity.email == "reader@example.com"
        assert identity.email_verified is True

    def test_bare_issuer_accepted(self, jwks_client, make_id_token):
        identity = _adapter(jwks_client=jwks_client).verify_identity(
            make_id_token(iss="accounts.google.com")
        )
        assert identity.subject_id == "google-sub-123"

    def test_string_email_verified(self, jwks_client, make_id_token):
        identity = _adapter(jwks_client=jwks_client).verify_identity(
            make_id_token(email_verified="false")
        )
        assert identity.email_verified is False

    def test_wrong_audience(self, jwks_client, make_id_token):
        with pytest.raises(VerificationFailed):
            _adapter(jwks_client=jwks_client).verify_identity(make_id_token(aud="someone-else"))

    def test_wrong_issuer(self, jwks_client, make_id_token):
        with pytest.raises(VerificationFailed):
            _adapter(jwks_client=jwks_client).verify_identity(make_id_token(iss="https://evil.example.com"))

    def test_expired(self, jwks_client, make_id_token):
        with pytest.raises(VerificationFailed):
            _adapter(jwks_client=jwks_client).verify_identity(make_id_token(expires_in=-3600))

    def test_missing_email(self, jwks_client, make_id_token):
        with pytest.raises(VerificationFailed):
            _adapter(jwks_client=jwks_client).verify_identity(make_id_token(email=None))

    def test_garbage_token(self, jwks_client):
        with pytest.raises(VerificationFailed):
            _adapter(jwks_client=jwks_client).verify_identity("not-a-token")

    def test_signed_with_other_key(self, jwks_client):
        from cryptography.hazmat.primitives.asymmetric import rsa
        import jwt
        import time

        other_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        now = int(time.time())
        token = jwt.encode(
            {"sub": "x", "email": "x@example.com", "aud": GOOGLE_CLIENT_ID,
             "iss": "accounts.google.com", "iat": now, "exp": now + 600},
            other_key,
            algorithm="RS256",
        )
        with pytest.raises(VerificationFailed):
            _adapter(jwks_client=jwks_client).verify_identity(token)
