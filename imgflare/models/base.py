"""SQLAlchemy base declarations and database handle."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from threading import Lock

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from ..utils.config import GlobalSettings, database_url_for, get_settings


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""


def _create_engine(database_url: str) -> Engine:
    """Instantiate the SQLAlchemy engine for ``database_url``."""

    connect_args: dict[str, object] = {}
    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
    return create_engine(database_url, connect_args=connect_args)


class Database:
    """Owns the engine and session factory for one local store file.

    Schema creation happens in :meth:`initialize`, which is idempotent and
    guarded so concurrent callers create the schema once.
    """

    def __init__(self, database_url: str):
        self.url = database_url
        self._engine: Engine | None = None
        self._session_factory: sessionmaker[Session] | None = None
        self._init_lock = Lock()

    @classmethod
    def from_settings(cls, settings: GlobalSettings | None = None) -> Database:
        """Build a handle for the configured database location."""

        return cls(database_url_for(settings or get_settings()))

    @property
    def initialized(self) -> bool:
        return self._session_factory is not None

    def initialize(self) -> Database:
        """Create the engine and any missing tables. Safe to call repeatedly."""

        with self._init_lock:
            if self._session_factory is not None:
                return self

            # Registers the mapped tables on Base.metadata.
            from . import image_record  # noqa: F401

            engine = _create_engine(self.url)
            Base.metadata.create_all(bind=engine)

            self._engine = engine
            self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)
        return self

    @property
    def engine(self) -> Engine:
        self.initialize()
        assert self._engine is not None
        return self._engine

    def get_session(self) -> Session:
        """Retrieve a new SQLAlchemy session instance."""

        self.initialize()
        assert self._session_factory is not None
        return self._session_factory()

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Provide a transactional scope around a series of operations."""

        session = self.get_session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        """Release pooled connections (useful for testing)."""

        with self._init_lock:
            if self._engine is not None:
                self._engine.dispose()
            self._engine = None
            self._session_factory = None
