"""
Tests for SessionTokenService.

Covers:
- issue/verify round trip
- Uniform InvalidToken for tampering, expiry, wrong secret and nonce problems
- Nonce age enforced independently of exp
- renew_if_needed threshold behaviour
"""

import json
import time

import jwt
import pytest

from docgate.auth.session_tokens import SessionTokenConfig, SessionTokenService
from docgate.errors import InvalidToken
from docgate.platform.encryption import AesGcmCipher
from docgate.tests.conftest import TEST_JWT_SECRET

HOUR = 3600


def _service(nonce_cipher, clock=time.time, **config_overrides) -> SessionTokenService:
    config = SessionTokenConfig(jwt_secret=TEST_JWT_SECRET, **config_overrides)
    return SessionTokenService(config, nonce_cipher, clock=clock)


def _tamper(token: str, index: int) -> str:
    replacement = "A" if token[index] != "A" else "B"
    return token[:index] + replacement + token[index + 1:]


def _rejection(service, token) -> InvalidToken:
    with pytest.raises(InvalidToken) as exc_info:
        service.verify(token)
    return exc_info.value


# =============================================================================
# Issue / verify
# =============================================================================

class TestIssueAndVerify:

    def test_round_trip(self, token_service):
        token = token_service.issue("user-1", "reader@example.com", "session-1", "free")

        context = token_service.verify(token)

        assert context.user_id == "user-1"
        assert context.email == "reader@example.com"
        assert context.session_id == "session-1"
        assert context.tier == "free"

    def test_payload_carries_encrypted_nonce(self, token_service):
        token = token_service.issue("user-1", "reader@example.com", "session-1", "paid")
        claims = jwt.decode(token, options={"verify_signature": False})

        assert claims["user_id"] == "user-1"
        assert claims["exp"] - claims["iat"] == 24 * HOUR
        assert "session-1" not in claims["nonce"]
        assert claims["nonce"].count(":") == 2


# =============================================================================
# Rejections
# =============================================================================

class TestRejections:

    def test_tampered_payload_rejected(self, token_service):
        token = token_service.issue("user-1", "reader@example.com", "session-1", "free")
        header_len = token.index(".")
        _rejection(token_service, _tamper(token, header_len + 10))

    def test_tampered_signature_rejected(self, token_service):
        token = token_service.issue("user-1", "reader@example.com", "session-1", "free")
        signature_start = token.rindex(".") + 1
        _rejection(token_service, _tamper(token, signature_start + 5))

    def test_tampering_and_expiry_produce_identical_errors(self, nonce_cipher):
        issued_at = time.time() - 25 * HOUR
        issuer = _service(nonce_cipher, clock=lambda: issued_at)
        verifier = _service(nonce_cipher)

        expired = issuer.issue("user-1", "reader@example.com", "session-1", "free")
        fresh = verifier.issue("user-1", "reader@example.com", "session-1", "free")
        tampered = _tamper(fresh, fresh.rindex(".") + 5)

        expired_error = _rejection(verifier, expired)
        tampered_error = _rejection(verifier, tampered)

        assert type(expired_error) is type(tampered_error)
        assert expired_error.message == tampered_error.message == "Invalid token"
        assert expired_error.error_code == tampered_error.error_code
        assert expired_error.to_dict() == tampered_error.to_dict()

    def test_wrong_secret_rejected(self, nonce_cipher):
        other = SessionTokenService(SessionTokenConfig(jwt_secret="another-secret-value-for-hs256-signing"), nonce_cipher)
        token = other.issue("user-1", "reader@example.com", "session-1", "free")
        _rejection(_service(nonce_cipher), token)

    def test_wrong_issuer_rejected(self, nonce_cipher):
        token = _service(nonce_cipher, issuer="someone-else").issue("user-1", "a@example.com", "s", "free")
        _rejection(_service(nonce_cipher), token)

    def test_nonce_from_other_key_rejected(self, nonce_cipher):
        foreign = _service(AesGcmCipher.from_passphrase("different-nonce-secret"))
        token = foreign.issue("user-1", "reader@example.com", "session-1", "free")
        _rejection(_service(nonce_cipher), token)

    def test_nonce_user_mismatch_rejected(self, nonce_cipher):
        now = int(time.time())
        nonce = nonce_cipher.encrypt_text(json.dumps({
            "user_id": "someone-else",
            "session_id": "session-1",
            "tier": "paid",
            "issued_at_ms": now * 1000,
        })).to_compact()
        token = jwt.encode(
            {
                "user_id": "user-1",
                "email": "reader@example.com",
                "nonce": nonce,
                "iss": "docgate",
                "iat": now,
                "exp": now + HOUR * 24,
            },
            TEST_JWT_SECRET,
            algorithm="HS256",
        )
        _rejection(_service(nonce_cipher), token)

    def test_nonce_age_enforced_independently_of_exp(self, nonce_cipher):
        issued_at = time.time()
        long_lived = _service(
            nonce_cipher,
            clock=lambda: issued_at,
            lifetime_seconds=72 * HOUR,
        )
        token = long_lived.issue("user-1", "reader@example.com", "session-1", "free")

        later = _service(nonce_cipher, clock=lambda: issued_at + 25 * HOUR, lifetime_seconds=72 * HOUR)
        _rejection(later, token)

    def test_missing_claims_rejected(self, nonce_cipher):
        now = int(time.time())
        token = jwt.encode(
            {"user_id": "user-1", "iss": "docgate", "iat": now, "exp": now + HOUR},
            TEST_JWT_SECRET,
            algorithm="HS256",
        )
        _rejection(_service(nonce_cipher), token)

    @pytest.mark.parametrize("token", ["", "not-a-jwt", "a.b.c"])
    def test_garbage_rejected(self, token_service, token):
        _rejection(token_service, token)


# =============================================================================
# Renewal
# =============================================================================

class TestRenewIfNeeded:

    def test_fresh_token_not_renewed(self, token_service):
        token = token_service.issue("user-1", "reader@example.com", "session-1", "free")
        assert token_service.renew_if_needed(token) is None

    def test_token_near_expiry_renewed(self, nonce_cipher):
        now = time.time()
        issued_at = now - (24 * HOUR - 30 * 60)
        old_service = _service(nonce_cipher, clock=lambda: issued_at)
        service = _service(nonce_cipher, clock=lambda: now)

        old_token = old_service.issue("user-1", "reader@example.com", "session-1", "paid")
        renewed = service.renew_if_needed(old_token)

        assert renewed is not None
        assert renewed != old_token

        old_exp = jwt.decode(old_token, options={"verify_signature": False})["exp"]
        new_exp = jwt.decode(renewed, options={"verify_signature": False})["exp"]
        assert new_exp > old_exp

        context = service.verify(renewed)
        assert context.session_id == "session-1"
        assert context.tier == "paid"

        # The old token remains usable until its own expiry.
        assert service.verify(old_token).user_id == "user-1"

    def test_renewal_of_tampered_token_rejected(self, nonce_cipher):
        now = time.time()
        old_service = _service(nonce_cipher, clock=lambda: now - 23.5 * HOUR)
        token = old_service.issue("user-1", "reader@example.com", "session-1", "free")
        tampered = _tamper(token, token.rindex(".") + 5)

        with pytest.raises(InvalidToken):
            _service(nonce_cipher, clock=lambda: now).renew_if_needed(tampered)

    def test_undecodable_token_rejected(self, token_service):
        with pytest.raises(InvalidToken):
            token_service.renew_if_needed("garbage")
