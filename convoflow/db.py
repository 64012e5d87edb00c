"""
Database wiring: declarative Base, engine/session factory and FastAPI dependency.

The engine is created lazily from settings so tests can bind their own.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from convoflow.config import get_settings

Base = declarative_base()


def _engine_kwargs(url: str) -> Dict[str, Any]:
    settings = get_settings()
    if url.startswith("sqlite"):
        kwargs: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return kwargs
    return {
        "pool_size": settings.database_pool_size,
        "max_overflow": settings.database_max_overflow,
        "pool_pre_ping": True,
    }


class DatabaseManager:
    """Owns the engine and session factory for the process."""

    def __init__(self, database_url: Optional[str] = None) -> None:
        self._database_url = database_url
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            url = self._database_url or get_settings().database_url
            if not url:
                raise ValueError("Database URL is not set.")
            self._engine = create_engine(url, **_engine_kwargs(url))
        return self._engine

    @property
    def session_factory(self) -> sessionmaker:
        if self._session_factory is None:
            self._session_factory = sessionmaker(
                bind=self.engine, autoflush=False, expire_on_commit=False
            )
        return self._session_factory

    def bind(self, engine: Engine) -> None:
        """Use an externally created engine (tests, scripts)."""
        self._engine = engine
        self._session_factory = None

    def create_session(self) -> Session:
        return self.session_factory()

    @contextmanager
    def db_session(self) -> Generator[Session, None, None]:
        """Session scope: commit on success, rollback on error, always close."""
        db = self.create_session()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


db_manager = DatabaseManager()


def get_db() -> Generator[Session, None, None]:
    db = db_manager.create_session()
    try:
        yield db
    finally:
        db.close()
