"""
Process-wide service container.

The container bundles the configuration-dependent, stateless services
(settings, database session factory, ciphers, token service, Google adapter,
Stripe client). It is built once by ServiceRegistry.get(): concurrent first
callers await the same initialization, and a failed initialization is not
cached so the next call retries it.

Usage:
    registry = ServiceRegistry()
    services = await registry.get()
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from docgate.auth.google_identity import GoogleIdentityAdapter
from docgate.auth.session_tokens import SessionTokenConfig, SessionTokenService
from docgate.config import Settings, load_settings
from docgate.database.session import build_engine, create_session_factory, init_schema
from docgate.platform.encryption import AesGcmCipher
from docgate.services.billing_client import StripeBillingClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceContainer:
    settings: Settings
    engine: Engine
    session_factory: sessionmaker
    credential_cipher: AesGcmCipher
    session_tokens: SessionTokenService
    identity: GoogleIdentityAdapter
    billing: StripeBillingClient


def build_container(settings: Optional[Settings] = None, create_schema: bool = True) -> ServiceContainer:
    """
    Construct every shared service from settings.

    Raises:
        ConfigError: If required configuration is missing or malformed.
    """
    settings = settings or load_settings()

    engine = build_engine(settings.database_url)
    if create_schema:
        init_schema(engine)

    session_tokens = SessionTokenService(
        SessionTokenConfig(
            jwt_secret=settings.jwt_secret,
            issuer=settings.session_token_issuer,
        ),
        nonce_cipher=AesGcmCipher.from_passphrase(settings.nonce_secret),
    )

    return ServiceContainer(
        settings=settings,
        engine=engine,
        session_factory=create_session_factory(engine),
        credential_cipher=AesGcmCipher(settings.encryption_key_bytes),
        session_tokens=session_tokens,
        identity=GoogleIdentityAdapter(
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
            redirect_uri=settings.google_redirect_uri,
        ),
        billing=StripeBillingClient(
            secret_key=settings.stripe_secret_key,
            webhook_secret=settings.stripe_webhook_secret,
        ),
    )


async def _build_default() -> ServiceContainer:
    return await asyncio.to_thread(build_container)


class ServiceRegistry:
    """Single-flight holder for the ServiceContainer."""

    def __init__(self, builder: Callable[[], Awaitable[ServiceContainer]] = _build_default):
        self._builder = builder
        self._container: Optional[ServiceContainer] = None
        self._lock = asyncio.Lock()

    @property
    def is_initialized(self) -> bool:
        return self._container is not None

    async def get(self) -> ServiceContainer:
        if self._container is not None:
            return self._container

        async with self._lock:
            if self._container is None:
                logger.info("Initializing service container")
                self._container = await self._builder()
                logger.info("Service container ready")
        return self._container

    def dispose(self) -> None:
        if self._container is not None:
            self._container.engine.dispose()
            self._container = None
