"""
Engine and per-request sessions for the access engine store.

DATABASE_URL selects the backing database. Without it the API still starts,
but every store-backed route answers 503.
"""

import os
import logging
from typing import AsyncIterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from fastapi import HTTPException, status

from access_engine.models import Base

logger = logging.getLogger(__name__)

# Server databases only; SQLite keeps SQLAlchemy's pool defaults
POOL_OPTIONS = {
    "pool_size": 5,
    "max_overflow": 10,
    "pool_pre_ping": True,
    "pool_recycle": 1800,
}

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


class DatabaseNotConfiguredError(RuntimeError):
    """DATABASE_URL is not set."""


def database_url() -> str:
    """DATABASE_URL with the legacy postgres:// scheme rewritten for SQLAlchemy."""
    url = os.getenv("DATABASE_URL")
    if not url:
        raise DatabaseNotConfiguredError("DATABASE_URL environment variable is not set")
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    return url


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        url = database_url()
        if url.startswith("sqlite"):
            _engine = create_engine(url, connect_args={"check_same_thread": False})
        else:
            _engine = create_engine(url, **POOL_OPTIONS)
        logger.info("Database engine created", extra={"dialect": _engine.dialect.name})
    return _engine


def get_session_factory() -> sessionmaker:
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(autocommit=False, autoflush=False, bind=get_engine())
    return _session_factory


def create_schema(engine: Optional[Engine] = None) -> None:
    """Create the access engine tables that do not exist yet."""
    Base.metadata.create_all(bind=engine or get_engine())


async def get_db_session() -> AsyncIterator[Session]:
    """One session per request, closed when the response is done."""
    try:
        factory = get_session_factory()
    except DatabaseNotConfiguredError as e:
        logger.error("Store requested without a database", extra={"error": str(e)})
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not configured",
        )

    session = factory()
    try:
        yield session
    finally:
        session.close()
