"""
Database engine configuration.
"""

from typing import Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from ..core.config import DatabaseConfig, get_config
from ..core.exceptions import DatabaseError
from ..core.logging_config import get_logger

logger = get_logger(__name__)

# Global engine instance
_engine: Optional[Engine] = None


def create_db_engine(config: DatabaseConfig) -> Engine:
    """
    Build an engine for ``config.url``.

    SQLite connections are shared across threads; an in-memory SQLite
    database is pinned to a single connection so every session sees it.
    """
    kwargs = {"echo": config.echo}
    if config.url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if config.url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_pre_ping"] = True
        kwargs["pool_recycle"] = 3600
    return create_engine(config.url, **kwargs)


def get_engine() -> Engine:
    """
    Get the process-wide engine built from configuration.

    Returns:
        SQLAlchemy engine instance
    """
    global _engine

    if _engine is None:
        _engine = create_db_engine(get_config().database)

    return _engine


def init_db(engine: Engine) -> None:
    """Create every table known to the models."""
    from . import models  # noqa: F401  registers the mappers
    from .base import Base

    try:
        Base.metadata.create_all(bind=engine)
    except SQLAlchemyError as e:
        raise DatabaseError(f"Failed to create tables: {e}", operation="create_all") from e
    logger.info("Database tables ready")


def check_connection(engine: Engine) -> bool:
    """
    Check database connection.

    Returns:
        True if connection is successful
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as e:
        logger.error(f"Database connection failed: {e}")
        return False
