"""
Database connection and session management.

Provides the engine, session factory, and helper functions shared by the
source registry and the target-table store. Both live in the database
named by ``settings.database_url``.
"""

from functools import lru_cache
from typing import Generator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool

from tabingest.catalog.models import Base
from tabingest.config.settings import get_settings


@lru_cache()
def get_engine() -> Engine:
    """
    Create the engine on first use.

    pool_pre_ping verifies connections before use; pool_recycle drops
    connections older than the server's idle timeout.
    """
    settings = get_settings()
    options = {"echo": settings.debug, "future": True}
    if not settings.database_url.startswith("sqlite"):
        options.update(
            poolclass=QueuePool,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=True,
            pool_recycle=settings.db_pool_recycle,
        )
    return create_engine(settings.database_url, **options)


@lru_cache()
def get_session_factory() -> sessionmaker:
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=get_engine(),
        future=True,
    )


def init_db() -> None:
    """
    Create the registry table.

    Development and tests only; deployments run the Alembic migrations.
    """
    Base.metadata.create_all(bind=get_engine())


def get_db() -> Generator[Session, None, None]:
    """
    Dependency function for FastAPI to get database sessions.

    Usage:
        @router.get("/sources")
        def list_sources(db: Session = Depends(get_db)):
            ...
    """
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()


def check_database_connection() -> bool:
    """
    Check if database connection is healthy.

    Returns:
        True if connection is successful, False otherwise
    """
    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError:
        return False
