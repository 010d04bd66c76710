"""
Database configuration and base model.

Uses SQLAlchemy 2.0 declarative style with SQLite.
"""

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool

from config import PATHS


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


def create_db_engine(url: str, echo: bool = False) -> Engine:
    """Create an engine; SQLite connections get foreign keys enabled."""
    kwargs = {"echo": echo}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}  # Allow multi-threaded access
        if url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection so every session sees the same memory DB
            kwargs["poolclass"] = StaticPool

    db_engine = create_engine(url, **kwargs)

    if url.startswith("sqlite"):
        @event.listens_for(db_engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return db_engine


def create_session_factory(url: str, echo: bool = False) -> sessionmaker:
    """Build a session factory for the given database URL with all tables created."""
    db_engine = create_db_engine(url, echo=echo)
    Base.metadata.create_all(bind=db_engine)
    return sessionmaker(bind=db_engine, autocommit=False, autoflush=False, expire_on_commit=False)


# Default application database
DATABASE_URL = f"sqlite:///{PATHS.database}"
engine = create_db_engine(DATABASE_URL)

# Session factory
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def init_db() -> None:
    """Initialize the database, creating all tables."""
    PATHS.ensure_directories()
    Base.metadata.create_all(bind=engine)
