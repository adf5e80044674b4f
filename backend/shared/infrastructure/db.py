"""
Database configuration and session management.
Uses SQLAlchemy 2.0 sync sessions; FastAPI runs sync endpoints in its threadpool.
"""

import os
from collections.abc import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from shared.config.settings import DATABASE_URL, settings


def _calculate_pool_size() -> int:
    """
    Pool size based on CPU cores: (2 * cores) + 1, capped by the configured size.
    """
    cores = os.cpu_count() or 4
    return min(cores * 2 + 1, settings.database_pool_size)


def build_engine(url: str = DATABASE_URL) -> Engine:
    """Create an engine with pooling for server databases, plain for SQLite."""
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})

    return create_engine(
        url,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=_calculate_pool_size(),
        max_overflow=settings.database_max_overflow,
        pool_timeout=30,
        pool_recycle=1800,
        connect_args={"connect_timeout": 10},
        echo=False,
    )


engine = build_engine()

# Session factory
SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
)


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency for database sessions.

    Usage:
        @router.get("/orders")
        def list_orders(db: Session = Depends(get_db)):
            ...

    The session is closed after the request completes.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def safe_commit(db: Session) -> None:
    """
    Commit with automatic rollback on failure.

    Raises the original exception after rolling back.
    """
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
