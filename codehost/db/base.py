"""Database configuration and base setup for codehost."""

import os
from typing import Optional

import structlog
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool

logger = structlog.get_logger()


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


# Default to a local SQLite database when no URL is configured.
DEFAULT_DATABASE_URL = "sqlite:///./codehost.db"


def get_database_url(raw_url: Optional[str] = None) -> str:
    """Return the configured database URL.

    An explicit ``raw_url`` wins, then ``CODEHOST_DATABASE_URL``, then settings.
    """
    if raw_url is None:
        raw_url = os.getenv("CODEHOST_DATABASE_URL")
    if raw_url is None:
        from codehost.config import get_settings

        raw_url = get_settings().database_url

    return raw_url or DEFAULT_DATABASE_URL


_engine: Optional[Engine] = None


def create_db_engine(database_url: str) -> Engine:
    """Create an engine for the given URL."""
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    return create_engine(database_url, pool_pre_ping=True)


def get_engine() -> Engine:
    """
    Create and cache the database engine.

    This is lazy-loaded to ensure environment variables are read at runtime,
    not at module import time.
    """
    global _engine
    if _engine is None:
        _engine = create_db_engine(get_database_url())
    return _engine


def get_session_local() -> sessionmaker:
    """Get a sessionmaker bound to the current engine."""
    return sessionmaker(autoflush=False, bind=get_engine())


def init_database(engine: Optional[Engine] = None) -> None:
    """Initialize the database with all tables."""
    # Import all models to ensure they're registered with Base
    from . import audit_models, models  # noqa: F401

    Base.metadata.create_all(bind=engine or get_engine())
    logger.info("database_initialized")
