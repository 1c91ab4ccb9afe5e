"""Database engine and session management."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from apps.vault.app.core.config import get_settings


def get_engine(database_url: str | None = None) -> Engine:
    """Create SQLAlchemy engine from an explicit URL or the configured one."""
    return create_engine(database_url or get_settings().database_url, pool_pre_ping=True)


def get_session_factory(database_url: str | None = None) -> sessionmaker[Session]:
    return sessionmaker(bind=get_engine(database_url), autoflush=False, autocommit=False)


@contextmanager
def read_session(database_url: str | None = None) -> Iterator[Session]:
    """Yield a session for read-only report building; nothing is committed."""
    session = get_session_factory(database_url)()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
