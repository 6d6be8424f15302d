"""Database client: engine, session factory, and explicit open/close lifecycle."""

import logging
from contextlib import contextmanager
from typing import Generator

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from social_analytics.config import settings
from social_analytics.models import Base

logger = logging.getLogger(__name__)


def _set_sqlite_pragmas(dbapi_conn, connection_record):
    """Enable WAL mode and foreign keys for every new SQLite connection."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(database_url: str | None = None) -> Engine:
    """Create a SQLAlchemy engine.

    Args:
        database_url: Override the configured database URL (used in tests).

    Returns:
        A SQLAlchemy engine instance.
    """
    url = database_url or settings.resolved_database_url
    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            connect_args={"check_same_thread": False},
            echo=False,
        )
        event.listen(engine, "connect", _set_sqlite_pragmas)
        return engine
    return create_engine(url, echo=False)


class Database:
    """Storage client held by the application for its whole lifetime.

    Construct it with a URL (the engine is created on ``open``) or with a
    ready engine (tests pass an in-memory one). ``open`` creates the tables,
    ``close`` disposes of the connection pool.
    """

    def __init__(self, database_url: str | None = None, engine: Engine | None = None):
        self.database_url = database_url
        self._engine = engine
        # Engines passed in belong to the caller and are not disposed on close
        self._owns_engine = engine is None
        self._session_factory: sessionmaker | None = None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("Database is not open.")
        return self._engine

    @property
    def is_open(self) -> bool:
        return self._session_factory is not None

    def open(self) -> None:
        if self._engine is None:
            if not self.database_url and not settings.database_url:
                # Ensure the data directory exists before creating the DB file
                settings.data_dir.mkdir(parents=True, exist_ok=True)
            self._engine = create_db_engine(self.database_url)
        Base.metadata.create_all(bind=self._engine)
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=self._engine)
        logger.info("Database opened at %s", self._engine.url)

    def close(self) -> None:
        if self._engine is not None and self._owns_engine:
            self._engine.dispose()
            self._engine = None
        logger.info("Database closed.")
        self._session_factory = None

    def session(self) -> Session:
        if self._session_factory is None:
            raise RuntimeError("Database is not open.")
        return self._session_factory()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """Context manager for standalone session usage (e.g. scripts)."""
        db = self.session()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


def get_session(request: Request) -> Generator[Session, None, None]:
    """FastAPI dependency that yields a session from the app's Database."""
    database: Database = request.app.state.database
    db = database.session()
    try:
        yield db
    finally:
        db.close()
