"""Database connection and session management.

This module provides database connection management, session factories,
and utility functions for database operations.
"""

import logging
from typing import Any

from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from conquest.config import Settings, get_settings
from conquest.models import Base, StoreRevision

logger = logging.getLogger(__name__)


def _configure_sqlite_wal(
    dbapi_connection: Any, connection_record: Any  # noqa: ARG001
) -> None:
    """Configure SQLite to use WAL mode for better concurrency.

    Args:
        dbapi_connection: The DBAPI connection
        connection_record: Connection record (required by SQLAlchemy event API)

    Note:
        WAL mode lets readers continue while a conquest commits.
    """
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(settings: Settings | None = None) -> Engine:
    """Create and configure the database engine.

    Args:
        settings: Settings to use; the cached application settings by default

    Returns:
        Engine: Configured SQLAlchemy engine

    Note:
        For SQLite databases, automatically configures WAL mode and foreign keys.
    """
    settings = settings or get_settings()

    if settings.database_url.startswith("sqlite"):
        # SQLite engine: simpler pooling, enable SQLite pragmas on connect.
        # Conquests run in worker threads, so connections may change threads.
        engine = create_engine(
            settings.database_url,
            echo=settings.database_echo,
            pool_pre_ping=True,
            connect_args={"check_same_thread": False},
        )
        event.listen(engine, "connect", _configure_sqlite_wal)
    else:
        # Non-SQLite (e.g., PostgreSQL): honor pool settings for production use
        engine = create_engine(
            settings.database_url,
            echo=settings.database_echo,
            pool_pre_ping=True,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_recycle=settings.database_pool_recycle,
            pool_timeout=settings.database_pool_timeout,
        )

    return engine


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Session factory bound to ``engine``.

    ``expire_on_commit`` is off so rows read inside a transaction can still be
    mapped to domain objects after it commits.
    """
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Initialize the database by creating all tables.

    Also seeds the territory store revision at 0.

    Note:
        This creates tables directly; there are no migrations.
    """
    Base.metadata.create_all(bind=engine)
    with create_session_factory(engine)() as session, session.begin():
        if session.get(StoreRevision, StoreRevision.TERRITORIES) is None:
            session.add(StoreRevision(name=StoreRevision.TERRITORIES, value=0))
    logger.info("Database schema ready (%d tables)", len(Base.metadata.tables))


def check_database_health(engine: Engine) -> bool:
    """Check if the database is accessible.

    Returns:
        bool: True if database is healthy, False otherwise
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError:
        logger.exception("Database health check failed")
        return False


def get_table_names(engine: Engine) -> list[str]:
    """Get list of all table names in the database.

    Returns:
        list[str]: List of table names
    """
    return inspect(engine).get_table_names()
