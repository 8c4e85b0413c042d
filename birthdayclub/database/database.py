"""Database connection and session management for Birthday Club.

Two logically separate stores are used:
- The primary database (`DATABASE_URL`) holds users and rate-limit counters.
- The archive database (`ARCHIVE_DATABASE_URL`) receives copies of removed users.

Both default to local SQLite files; PostgreSQL works through the URLs.
"""

import os
import sqlite3
from contextlib import contextmanager
from functools import lru_cache

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DisconnectionError, InterfaceError, OperationalError
from sqlalchemy.orm import sessionmaker, Session, declarative_base
from dotenv import load_dotenv

from birthdayclub.errors import StoreUnavailableError

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./birthdayclub.db")
ARCHIVE_DATABASE_URL = os.getenv("ARCHIVE_DATABASE_URL", "sqlite:///./birthdayclub_archive.db")

# Driver errors that mean "the store is unreachable", not "the request is bad".
CONNECTIVITY_ERRORS = (OperationalError, InterfaceError, DisconnectionError)


def _is_sqlite_url(database_url: str) -> bool:
    return "sqlite" in (database_url or "")


def get_engine_kwargs(database_url: str) -> dict:
    """Return deterministic create_engine kwargs for a DB URL.

    This is separated to allow deterministic unit testing without connecting.
    """
    engine_kwargs: dict = {
        "echo": os.getenv("DEBUG", "False").lower() == "true",
        "pool_pre_ping": True,
    }

    if _is_sqlite_url(database_url):
        # SQLite-specific setting required for FastAPI concurrency in a single process.
        engine_kwargs["connect_args"] = {"check_same_thread": False}
        return engine_kwargs

    # Keep pooling conservative; the app runs as many small instances.
    engine_kwargs["pool_size"] = int(os.getenv("DB_POOL_SIZE", "5"))
    engine_kwargs["max_overflow"] = int(os.getenv("DB_MAX_OVERFLOW", "5"))
    engine_kwargs["pool_timeout"] = int(os.getenv("DB_POOL_TIMEOUT_SEC", "30"))
    return engine_kwargs


def build_engine(database_url: str) -> Engine:
    return create_engine(database_url, **get_engine_kwargs(database_url))


# Primary engine (module-level singleton)
engine = build_engine(DATABASE_URL)


@event.listens_for(Engine, "connect")
def set_sqlite_pragmas(dbapi_conn, connection_record):
    """Enable WAL on SQLite connections so reads don't block during writes."""
    if isinstance(dbapi_conn, sqlite3.Connection):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Declarative bases: one per store so create_all() never crosses databases.
Base = declarative_base()
ArchiveBase = declarative_base()


@lru_cache(maxsize=1)
def get_archive_engine() -> Engine:
    """Archive engine, built on first use."""
    return build_engine(ARCHIVE_DATABASE_URL)


@lru_cache(maxsize=1)
def get_archive_sessionmaker() -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=get_archive_engine())


@contextmanager
def translate_store_errors(db: Session, action: str):
    """Roll back and re-raise connectivity failures as StoreUnavailableError.

    Any other exception is rolled back and propagated unchanged.
    """
    try:
        yield
    except CONNECTIVITY_ERRORS as e:
        db.rollback()
        raise StoreUnavailableError(f"Store unavailable while trying to {action}") from e
    except Exception:
        db.rollback()
        raise


def get_db() -> Session:
    """Get primary database session (dependency for FastAPI)."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_archive_db() -> Session:
    """Get archive database session (dependency for FastAPI)."""
    db = get_archive_sessionmaker()()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Initialize both database schemas.

    - SQLite (default dev): use `create_all()`.
    - PostgreSQL: prefer Alembic migrations for the primary store.
      Enable by setting `RUN_MIGRATIONS=true` in the environment.
    The archive store is append-only and always uses `create_all()`.
    """
    # Import models so they register on their declarative bases.
    from birthdayclub.database import models  # noqa: F401

    ArchiveBase.metadata.create_all(bind=get_archive_engine())

    run_migrations = os.getenv("RUN_MIGRATIONS", "False").lower() == "true"
    if run_migrations and not _is_sqlite_url(DATABASE_URL):
        from alembic import command
        from alembic.config import Config

        alembic_cfg = Config(os.getenv("ALEMBIC_INI", "alembic.ini"))
        alembic_cfg.set_main_option("sqlalchemy.url", DATABASE_URL)
        command.upgrade(alembic_cfg, "head")
        return

    Base.metadata.create_all(bind=engine)
