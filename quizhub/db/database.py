"""
Database connection setup.

Synchronous SQLAlchemy sessions. The engine is created lazily so the app can
start (and tests can swap the URL) before a database is reachable.
"""

import logging
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session, declarative_base
from sqlalchemy.pool import StaticPool

from quizhub.core.config import settings

logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None
_SessionLocal: Optional[sessionmaker] = None

# Base class for every model
Base = declarative_base()


def _engine_kwargs(database_url: str) -> dict:
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        # in-memory databases must share one connection
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return kwargs
    return {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 5,
    }


def get_engine() -> Engine:
    """
    Create the engine on first use.
    A bad DATABASE_URL surfaces here rather than at import time.
    """
    global _engine
    if _engine is None:
        try:
            database_url = settings.DATABASE_URL
            _engine = create_engine(
                database_url,
                echo=settings.DB_ECHO,
                **_engine_kwargs(database_url),
            )
        except ValueError as e:
            raise RuntimeError(
                f"Failed to initialize database: {str(e)}\n"
                "This error occurs when database environment variables are not configured."
            ) from e
    return _engine


def get_session_local() -> sessionmaker:
    global _SessionLocal
    if _SessionLocal is None:
        engine = get_engine()
        _SessionLocal = sessionmaker(
            bind=engine,
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
        )
    return _SessionLocal


def reset_engine() -> None:
    """Drop the cached engine and session factory (used by tests and the CLI)."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


def get_db() -> Session:
    """
    Request-scoped session dependency.
    Commits when the handler returns, rolls back when it raises.
    """
    SessionLocal = get_session_local()
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db():
    """
    Create all tables.
    Development and tests only; production schemas go through Alembic.
    """
    # register every model on Base.metadata
    import quizhub.models  # noqa: F401

    engine = get_engine()
    Base.metadata.create_all(bind=engine)


def check_connection() -> bool:
    try:
        engine = get_engine()
        with engine.connect():
            logger.info("Database connection successful")
            return True
    except Exception as e:
        logger.error(f"Failed to connect to database: {e}")
        return False
