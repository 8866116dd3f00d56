"""
Database session management.
"""

from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .engine import get_engine


def make_session_factory(engine: Optional[Engine] = None) -> sessionmaker:
    """Session factory bound to ``engine`` (the configured engine by default)."""
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine or get_engine(),
        expire_on_commit=False,
    )


@contextmanager
def session_scope(factory: sessionmaker) -> Generator[Session, None, None]:
    """
    Session context manager: commit on success, roll back on error.

    Yields:
        SQLAlchemy Session instance
    """
    db: Optional[Session] = None
    try:
        db = factory()
        yield db
        db.commit()
    except Exception:
        if db:
            db.rollback()
        raise
    finally:
        if db:
            db.close()
