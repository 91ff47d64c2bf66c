"""Database configuration and engine construction."""

from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

Base: Any = declarative_base()

IN_MEMORY_URL = "sqlite://"


def is_in_memory_url(database_url: str) -> bool:
    """Check if the URL names a throwaway in-memory SQLite database."""
    return database_url in (IN_MEMORY_URL, "sqlite:///:memory:")


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    """SQLite ships with foreign key enforcement off; turn it on per connection."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(database_url: str) -> Engine:
    """Create an engine for the given URL.

    SQLite connections are handed to worker threads, and an in-memory
    database is pinned to a single connection so every session sees the
    same data.
    """
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, pool_pre_ping=True, pool_size=5, max_overflow=10)

    kwargs: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
    if is_in_memory_url(database_url):
        kwargs["poolclass"] = StaticPool

    engine = create_engine(database_url, **kwargs)
    event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def build_session_factory(engine: Engine) -> sessionmaker:
    """Session factory shared by every unit of work on one engine."""
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Initialize the database by creating all tables."""
    # Import all models here so they are registered with Base.metadata
    from src import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
