"""
Engine and session lifecycle.

PostgreSQL in production (pooled), a local SQLite file otherwise. The
engine and session factory are built on first use so importing the API
never opens a connection.
"""

import logging
from functools import lru_cache
from typing import Generator, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from rankpilot.utils.config import get_settings

from .models import Base

logger = logging.getLogger(__name__)

POSTGRES_POOL = {
    "pool_size": 5,
    "max_overflow": 10,
    "pool_timeout": 30,
    "pool_recycle": 1800,
    "pool_pre_ping": True,
}


def enable_sqlite_foreign_keys(engine: Engine) -> None:
    """Turn on FK enforcement (and ON DELETE CASCADE) for every SQLite connection."""

    @event.listens_for(engine, "connect")
    def _foreign_keys_on(dbapi_conn, _record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def build_engine(url: Optional[str] = None) -> Engine:
    settings = get_settings()
    url = url or settings.database_url
    backend = make_url(url).get_backend_name()

    if backend == "postgresql":
        engine = create_engine(url, echo=settings.SQL_DEBUG, **POSTGRES_POOL)
    else:
        engine = create_engine(url, echo=settings.SQL_DEBUG, connect_args={"check_same_thread": False})
        enable_sqlite_foreign_keys(engine)
        if not settings.DATABASE_URL and not settings.POSTGRES_URL:
            logger.warning(f"DATABASE_URL not set, using SQLite at {settings.SQLITE_PATH}")

    logger.info(f"Database engine ready ({backend})")
    return engine


@lru_cache()
def get_engine() -> Engine:
    return build_engine()


@lru_cache()
def get_session_factory() -> sessionmaker:
    return sessionmaker(bind=get_engine(), autoflush=False, expire_on_commit=False)


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency: one session per request, closed afterwards."""
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()


def init_db(drop_all: bool = False) -> None:
    """Create every table, including users. drop_all wipes existing data first."""
    from rankpilot.auth import models as _auth_models  # noqa: F401

    engine = get_engine()
    if drop_all:
        logger.warning("Dropping all tables")
        Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    logger.info(f"Schema ready ({len(Base.metadata.tables)} tables)")


def check_db_connection() -> bool:
    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Database connection failed: {e}")
        return False
    return True


def get_db_info() -> dict:
    """Backend, masked URL and liveness for the health endpoint."""
    url = make_url(get_settings().database_url)
    return {
        "database_type": url.get_backend_name(),
        "connection_url": url.render_as_string(hide_password=True),
        "connected": check_db_connection(),
    }
