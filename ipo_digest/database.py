"""
Database configuration and session management for IPO Digest

Persistence is optional. Run history and delivery tracking are only
recorded when DATABASE_URL is set; the engine is created on first use.
"""
import logging
import os
import time

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

# Create declarative base for all models
Base = declarative_base()

_engine = None
_session_factory = None

IN_MEMORY_URLS = ('sqlite://', 'sqlite:///:memory:')


def _sanitize_url(database_url: str) -> str:
    """Hide the password portion of a database URL for logging."""
    if '@' in database_url:
        parts = database_url.split('@')
        return parts[0].split(':')[0] + ':***@' + parts[-1]
    return database_url[:30] + "..."


def create_db_engine(database_url=None):
    """
    Create SQLAlchemy engine with connection pooling

    Args:
        database_url: Optional database URL override

    Returns:
        SQLAlchemy engine instance
    """
    if database_url is None:
        database_url = os.getenv("DATABASE_URL")

    if not database_url:
        raise ValueError("DATABASE_URL environment variable not set")

    logger.info(f"Connecting to: {_sanitize_url(database_url)}")

    if database_url.startswith('sqlite'):
        engine_kwargs = {'connect_args': {'check_same_thread': False}}
        if database_url in IN_MEMORY_URLS:
            # One shared connection, otherwise every checkout sees an empty database
            engine_kwargs['poolclass'] = StaticPool
    else:
        engine_kwargs = {
            'pool_size': 5,
            'max_overflow': 10,
            'pool_pre_ping': True,
            'pool_recycle': 3600,
            'connect_args': {"connect_timeout": 30},
        }

    engine_start = time.time()
    engine = create_engine(
        database_url,
        echo=os.getenv("SQL_ECHO", "False") == "True",
        **engine_kwargs
    )
    logger.info(f"Engine created in {time.time() - engine_start:.1f}s")

    return engine


def is_configured() -> bool:
    """True when a database is available for run history and delivery tracking."""
    return _engine is not None or bool(os.getenv("DATABASE_URL"))


def configure(database_url=None):
    """
    (Re)build the engine and session factory.

    Args:
        database_url: Optional database URL override

    Returns:
        The new engine
    """
    global _engine, _session_factory

    reset()
    _engine = create_db_engine(database_url)
    # Rows are handed back to callers after the session closes
    _session_factory = sessionmaker(autoflush=False, expire_on_commit=False, bind=_engine)
    return _engine


def reset():
    """Dispose of the current engine, if any."""
    global _engine, _session_factory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


def get_engine():
    if _engine is None:
        configure()
    return _engine


def SessionLocal():
    """
    Create a new database session.

    Usage:
        session = SessionLocal()
        try:
            ...
            session.commit()
        finally:
            session.close()
    """
    if _session_factory is None:
        configure()
    return _session_factory()


def init_db():
    """Create all tables directly (SQLite and tests; use Alembic elsewhere)."""
    from ipo_digest import models  # noqa: F401  (registers tables on Base)

    Base.metadata.create_all(bind=get_engine())
