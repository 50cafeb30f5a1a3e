"""
Engine and session management.

Sessions are created from a factory stored on ``app.state.session_factory``
so request handlers and jobs never share a session.
"""

import logging
from typing import Iterator

from fastapi import HTTPException, Request, status
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from prepx.db_base import Base

logger = logging.getLogger(__name__)


def _is_sqlite_memory(database_url: str) -> bool:
    return database_url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in database_url


def create_db_engine(database_url: str) -> Engine:
    """Create an engine; in-memory SQLite shares one connection across sessions."""
    if _is_sqlite_memory(database_url):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    if database_url.startswith("sqlite"):
        return create_engine(database_url, connect_args={"check_same_thread": False})
    return create_engine(database_url, pool_pre_ping=True)


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_schema(engine: Engine) -> None:
    """Create tables for all registered models (local development and tests)."""
    import prepx.models  # noqa: F401  registers mappers

    Base.metadata.create_all(engine)
    logger.info("Database schema ensured", extra={"dialect": engine.dialect.name})


def get_db_session(request: Request) -> Iterator[Session]:
    """FastAPI dependency yielding a request-scoped session."""
    factory = getattr(request.app.state, "session_factory", None)
    if factory is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not configured",
        )
    session = factory()
    try:
        yield session
    finally:
        session.close()
