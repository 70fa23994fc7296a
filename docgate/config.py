"""
Application settings loaded from environment variables.

All secrets are required up front: load_settings() raises ConfigError listing
every missing or malformed key so the process stops before serving traffic.

Usage:
    from docgate.config import load_settings

    settings = load_settings()
"""

import logging
import os
import re
from typing import Mapping, Optional

from pydantic import BaseModel, Field

from docgate.errors import ConfigError

logger = logging.getLogger(__name__)

REQUIRED_KEYS = (
    "DATABASE_URL",
    "JWT_SECRET",
    "NONCE_SECRET",
    "ENCRYPTION_KEY",
    "GOOGLE_CLIENT_ID",
    "GOOGLE_CLIENT_SECRET",
    "GOOGLE_REDIRECT_URI",
    "STRIPE_SECRET_KEY",
    "STRIPE_WEBHOOK_SECRET",
)

DEFAULT_FREE_TIER_DOCUMENT_LIMIT = 20

_HEX_KEY_PATTERN = re.compile(r"^[0-9a-fA-F]{64}$")


class Settings(BaseModel):
    """Validated process configuration."""

    database_url: str
    jwt_secret: str = Field(repr=False)
    nonce_secret: str = Field(repr=False)
    encryption_key: str = Field(repr=False)
    google_client_id: str
    google_client_secret: str = Field(repr=False)
    google_redirect_uri: str
    stripe_secret_key: str = Field(repr=False)
    stripe_webhook_secret: str = Field(repr=False)
    stripe_price_id: Optional[str] = None
    free_tier_document_limit: int = DEFAULT_FREE_TIER_DOCUMENT_LIMIT
    session_token_issuer: str = "docgate"
    env: str = "development"

    @property
    def encryption_key_bytes(self) -> bytes:
        return bytes.fromhex(self.encryption_key)


def normalize_database_url(database_url: str) -> str:
    """Convert Heroku/Render style postgres:// URLs to postgresql://."""
    if database_url.startswith("postgres://"):
        return database_url.replace("postgres://", "postgresql://", 1)
    return database_url


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings from the environment.

    Args:
        environ: Mapping to read from. Defaults to os.environ.

    Raises:
        ConfigError: If a required key is missing or a value is malformed.
    """
    env = os.environ if environ is None else environ

    missing = [key for key in REQUIRED_KEYS if not env.get(key)]
    if missing:
        raise ConfigError(f"Missing required configuration: {', '.join(missing)}")

    problems = []

    encryption_key = env["ENCRYPTION_KEY"].strip()
    if not _HEX_KEY_PATTERN.match(encryption_key):
        problems.append("ENCRYPTION_KEY must be 64 hex characters (32 bytes)")

    raw_limit = env.get("FREE_TIER_DOCUMENT_LIMIT", str(DEFAULT_FREE_TIER_DOCUMENT_LIMIT))
    try:
        free_limit = int(raw_limit)
        if free_limit < 0:
            raise ValueError(raw_limit)
    except ValueError:
        problems.append("FREE_TIER_DOCUMENT_LIMIT must be a non-negative integer")
        free_limit = DEFAULT_FREE_TIER_DOCUMENT_LIMIT

    if problems:
        raise ConfigError("; ".join(problems))

    settings = Settings(
        database_url=normalize_database_url(env["DATABASE_URL"]),
        jwt_secret=env["JWT_SECRET"],
        nonce_secret=env["NONCE_SECRET"],
        encryption_key=encryption_key,
        google_client_id=env["GOOGLE_CLIENT_ID"],
        google_client_secret=env["GOOGLE_CLIENT_SECRET"],
        google_redirect_uri=env["GOOGLE_REDIRECT_URI"],
        stripe_secret_key=env["STRIPE_SECRET_KEY"],
        stripe_webhook_secret=env["STRIPE_WEBHOOK_SECRET"],
        stripe_price_id=env.get("STRIPE_PRICE_ID") or None,
        free_tier_document_limit=free_limit,
        session_token_issuer=env.get("SESSION_TOKEN_ISSUER", "docgate"),
        env=env.get("ENV", "development"),
    )

    logger.info(
        "Configuration loaded",
        extra={
            "env": settings.env,
            "free_tier_document_limit": settings.free_tier_document_limit,
            "stripe_price_configured": settings.stripe_price_id is not None,
        },
    )
    return settings
