"""
Database connection and session management.
Provides the Database lifecycle object, the declarative base class for models,
and the per-request session dependency.
"""
import logging
from typing import Any, Dict, Optional

from fastapi import Request
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .config import settings

logger = logging.getLogger(__name__)

# Create base class for declarative models
Base = declarative_base()


def _engine_options(url: str, pool_size: int, max_overflow: int, connect_timeout: int) -> Dict[str, Any]:
    """
    Build create_engine keyword arguments for the given database URL.

    SQLite has no real pool or connect timeout; in-memory databases share a
    single connection so every session sees the same tables.
    """
    if url.startswith("sqlite"):
        options: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            options["poolclass"] = StaticPool
        return options

    return {
        "pool_size": pool_size,
        "max_overflow": max_overflow,
        "pool_timeout": connect_timeout,
        "pool_pre_ping": True,
        "connect_args": {"connect_timeout": connect_timeout},
    }


class Database:
    """
    Owns the SQLAlchemy engine and session factory.

    The engine is created by connect() and disposed by close(), so the pool's
    lifetime matches the application's lifespan instead of module import.
    """

    def __init__(
        self,
        url: str,
        pool_size: int = 10,
        max_overflow: int = 10,
        connect_timeout: int = 2,
        echo: bool = False,
    ):
        self.url = url
        self.pool_size = pool_size
        self.max_overflow = max_overflow
        self.connect_timeout = connect_timeout
        self.echo = echo
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None

    @classmethod
    def from_settings(cls) -> "Database":
        return cls(
            settings.database_url,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            connect_timeout=settings.db_connect_timeout,
        )

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("Database is not connected. Call connect() first.")
        return self._engine

    @property
    def is_connected(self) -> bool:
        return self._engine is not None

    def connect(self) -> "Database":
        """
        Create the engine and session factory. Calling it twice is a no-op.

        Returns:
            Database: self, for chaining
        """
        if self._engine is not None:
            return self
        options = _engine_options(self.url, self.pool_size, self.max_overflow, self.connect_timeout)
        self._engine = create_engine(self.url, echo=self.echo, **options)
        self._session_factory = sessionmaker(bind=self._engine, autoflush=False, autocommit=False)
        logger.info(f"Database engine created for {self._engine.url.render_as_string(hide_password=True)}")
        return self

    def close(self) -> None:
        """Dispose of every pooled connection."""
        if self._engine is None:
            return
        self._engine.dispose()
        self._engine = None
        self._session_factory = None
        logger.info("Database engine disposed")

    def create_all(self) -> None:
        """Create tables that do not exist yet."""
        # Models register themselves on Base.metadata when imported
        from . import models  # noqa: F401

        Base.metadata.create_all(bind=self.engine)

    def drop_all(self) -> None:
        from . import models  # noqa: F401

        Base.metadata.drop_all(bind=self.engine)

    def session(self) -> Session:
        if self._session_factory is None:
            raise RuntimeError("Database is not connected. Call connect() first.")
        return self._session_factory()

    def ping(self) -> bool:
        """
        Check that a connection can be acquired and used.

        Returns:
            bool: True if a trivial query succeeded
        """
        with self.engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        return True


def get_db(request: Request):
    """
    Database dependency - Creates and yields a database session.

    The session is automatically closed after the request is processed,
    even if an exception occurs during request handling. Uncommitted work
    is rolled back on close.

    Yields:
        SQLAlchemy Session: Database session
    """
    database: Database = request.app.state.database
    db = database.session()
    try:
        yield db
    finally:
        db.close()
