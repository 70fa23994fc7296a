"""
Database engine and session factory construction.

The engine and session factory are owned by the ServiceContainer rather than
module globals; routes obtain a per-request session through
docgate.api.dependencies.get_db_session.

Usage:
    engine = build_engine(settings.database_url)
    SessionLocal = create_session_factory(engine)
"""

import logging

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from docgate.config import normalize_database_url

logger = logging.getLogger(__name__)


def build_engine(database_url: str) -> Engine:
    """
    Create an engine for the given URL.

    SQLite gets check_same_thread=False since FastAPI runs sync handlers in a
    thread pool; in-memory SQLite additionally uses StaticPool so every
    session sees the same database. Other backends use pooled connections.
    """
    database_url = normalize_database_url(database_url)

    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(database_url, **kwargs)
    else:
        engine = create_engine(
            database_url,
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,
            pool_recycle=1800,
        )

    logger.info("Database engine created", extra={"dialect": engine.dialect.name})
    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_schema(engine: Engine) -> None:
    """Create all tables that do not exist yet."""
    from docgate.db_base import Base
    import docgate.models  # noqa: F401 - registers tables

    Base.metadata.create_all(bind=engine)
