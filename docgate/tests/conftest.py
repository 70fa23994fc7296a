"""
Root test configuration and fixtures.

Provides:
- In-memory SQLite engine/session with all tables created
- Ciphers and a session token service with deterministic keys
- An RSA keypair and ID-token factory standing in for Google's JWKS
- Stripe webhook signing helper
"""

import hashlib
import hmac
import json
import os
import time
import uuid
from types import SimpleNamespace
from typing import Optional

import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa
from sqlalchemy.orm import Session

from docgate.auth.session_tokens import SessionTokenConfig, SessionTokenService
from docgate.database.session import build_engine, create_session_factory, init_schema
from docgate.models.user import Tier, User
from docgate.platform.encryption import AesGcmCipher

os.environ.setdefault("ENV", "test")

TEST_ENCRYPTION_KEY = "0123456789abcdef" * 4
TEST_JWT_SECRET = "test-jwt-secret-with-enough-length-for-hs256"
TEST_NONCE_SECRET = "test-nonce-secret"
TEST_WEBHOOK_SECRET = "whsec_test_secret_value"
GOOGLE_CLIENT_ID = "test-client.apps.googleusercontent.com"


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: tests that exercise the full HTTP app")


# =============================================================================
# Database
# =============================================================================

@pytest.fixture
def db_engine():
    engine = build_engine("sqlite:///:memory:")
    init_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest.fixture
def db_session(session_factory) -> Session:
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_user(db_session):
    """Factory for persisted users."""

    def _make_user(
        email: Optional[str] = None,
        tier: str = Tier.FREE.value,
        billing_customer_id: Optional[str] = None,
        external_subject_id: Optional[str] = None,
        billing_status: Optional[str] = None,
    ) -> User:
        user = User(
            id=str(uuid.uuid4()),
            email=email or f"user-{uuid.uuid4().hex[:8]}@example.com",
            tier=tier,
            billing_customer_id=billing_customer_id,
            external_subject_id=external_subject_id,
            billing_status=billing_status,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make_user


# =============================================================================
# Crypto and tokens
# =============================================================================

@pytest.fixture
def credential_cipher() -> AesGcmCipher:
    return AesGcmCipher.from_hex_key(TEST_ENCRYPTION_KEY)


@pytest.fixture
def nonce_cipher() -> AesGcmCipher:
    return AesGcmCipher.from_passphrase(TEST_NONCE_SECRET)


@pytest.fixture
def token_config() -> SessionTokenConfig:
    return SessionTokenConfig(jwt_secret=TEST_JWT_SECRET)


@pytest.fixture
def token_service(token_config, nonce_cipher) -> SessionTokenService:
    return SessionTokenService(token_config, nonce_cipher)


# =============================================================================
# Google identity
# =============================================================================

@pytest.fixture(scope="session")
def rsa_private_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def jwks_client(rsa_private_key):
    """Stands in for PyJWKClient: always resolves to the test public key."""

    class _StaticJWKClient:
        def get_signing_key_from_jwt(self, token):
            jwt.get_unverified_header(token)
            return SimpleNamespace(key=rsa_private_key.public_key())

    return _StaticJWKClient()


@pytest.fixture
def make_id_token(rsa_private_key):
    def _make_id_token(
        sub: str = "google-sub-123",
        email: Optional[str] = "reader@example.com",
        email_verified=True,
        aud: str = GOOGLE_CLIENT_ID,
        iss: str = "https://accounts.google.com",
        expires_in: int = 3600,
        **extra,
    ) -> str:
        now = int(time.time())
        claims = {
            "sub": sub,
            "aud": aud,
            "iss": iss,
            "iat": now,
            "exp": now + expires_in,
            "email_verified": email_verified,
            **extra,
        }
        if email is not None:
            claims["email"] = email
        return jwt.encode(claims, rsa_private_key, algorithm="RS256", headers={"kid": "test-key"})

    return _make_id_token


# =============================================================================
# Stripe
# =============================================================================

def sign_stripe_payload(payload: bytes, secret: str = TEST_WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Build a Stripe-Signature header value for the payload."""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def stripe_event(event_type: str, data_object: dict, event_id: Optional[str] = None) -> dict:
    return {
        "id": event_id or f"evt_{uuid.uuid4().hex[:16]}",
        "object": "event",
        "type": event_type,
        "data": {"object": data_object},
    }


def encode_event(event: dict) -> bytes:
    return json.dumps(event).encode("utf-8")
