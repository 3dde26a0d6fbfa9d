"""
Database configuration

Reads connection settings from the environment and owns the process-wide
engine / session factory.

Environment:
    DATABASE_URL      SQLAlchemy URL (default: sqlite:///./grading_engine.db)
    DB_POOL_SIZE      Pool size for server databases (default: 5)
    DB_MAX_OVERFLOW   Pool overflow (default: 10)
    DB_ECHO           "true" to log SQL statements (default: false)

Usage:
    >>> from grading_engine.database import get_db_session
    >>> with get_db_session() as db:
    ...     GradeRepository(db).get_by_submission(submission_id)
"""
import logging
import os
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .base import Base

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///./grading_engine.db"


class DatabaseConfig:
    """
    Engine + session factory for one database URL.

    SQLite engines are created with ``check_same_thread=False`` and a busy
    timeout so that worker threads can share the file; foreign keys are
    switched on per connection.
    """

    def __init__(
        self,
        database_url: Optional[str] = None,
        pool_size: Optional[int] = None,
        max_overflow: Optional[int] = None,
        echo: Optional[bool] = None,
        **engine_kwargs,
    ):
        self.database_url = database_url or os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)
        self.pool_size = pool_size if pool_size is not None else int(os.getenv("DB_POOL_SIZE", "5"))
        self.max_overflow = max_overflow if max_overflow is not None else int(os.getenv("DB_MAX_OVERFLOW", "10"))
        if echo is None:
            echo = os.getenv("DB_ECHO", "false").lower() == "true"
        self.echo = echo

        self.engine = self._create_engine(**engine_kwargs)
        self.SessionLocal = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)

        logger.info(
            "Database configured",
            extra={"dialect": self.engine.dialect.name, "echo": self.echo},
        )

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    def _create_engine(self, **engine_kwargs) -> Engine:
        if self.is_sqlite:
            connect_args = engine_kwargs.pop("connect_args", {})
            connect_args.setdefault("check_same_thread", False)
            connect_args.setdefault("timeout", 30)
            engine = create_engine(
                self.database_url, echo=self.echo, connect_args=connect_args, **engine_kwargs
            )

            @event.listens_for(engine, "connect")
            def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()

            return engine

        return create_engine(
            self.database_url,
            echo=self.echo,
            pool_size=self.pool_size,
            max_overflow=self.max_overflow,
            pool_pre_ping=True,
            **engine_kwargs,
        )

    def create_all(self) -> None:
        """Create every table registered on ``Base``"""
        # Import models so that they register on Base.metadata
        from . import models  # noqa: F401

        Base.metadata.create_all(bind=self.engine)

    def drop_all(self) -> None:
        from . import models  # noqa: F401

        Base.metadata.drop_all(bind=self.engine)

    def new_session(self) -> Session:
        return self.SessionLocal()

    def dispose(self) -> None:
        self.engine.dispose()


_db_config: Optional[DatabaseConfig] = None


def get_db_config() -> DatabaseConfig:
    """Process-wide configuration, created lazily from the environment"""
    global _db_config
    if _db_config is None:
        _db_config = DatabaseConfig()
    return _db_config


def init_database(database_url: Optional[str] = None, create_tables: bool = True, **kwargs) -> DatabaseConfig:
    """
    (Re)initialize the process-wide database configuration.

    Args:
        database_url: Overrides DATABASE_URL
        create_tables: Run ``create_all`` after configuring
        **kwargs: Forwarded to DatabaseConfig

    Returns:
        The active DatabaseConfig
    """
    global _db_config
    if _db_config is not None:
        _db_config.dispose()
    _db_config = DatabaseConfig(database_url=database_url, **kwargs)
    if create_tables:
        _db_config.create_all()
    return _db_config


@contextmanager
def get_db_session() -> Generator[Session, None, None]:
    """Session scoped to a ``with`` block; always closed on exit"""
    session = get_db_config().new_session()
    try:
        yield session
    finally:
        session.close()


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency yielding one session per request"""
    session = get_db_config().new_session()
    try:
        yield session
    finally:
        session.close()
