"""Database engine and helpers.

This module configures the SQLModel/SQLAlchemy engine for the SQLite
database named by `settings.DB_PATH` and provides small helpers used by
the application, scripts and tests.

Every request works on its own pooled `Session`. SQLite is switched to
WAL journaling with a busy timeout so concurrent requests queue inside
the database rather than behind an in-process lock.
"""

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine, Session

from .config import settings

BUSY_TIMEOUT_MS = 5000


def make_engine(url: str) -> Engine:
    """Create an engine for `url` with the connection pragmas applied."""
    new_engine = create_engine(url, echo=False, connect_args={"check_same_thread": False})
    event.listen(new_engine, "connect", _set_sqlite_pragmas)
    return new_engine


def _set_sqlite_pragmas(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute(f"PRAGMA busy_timeout={BUSY_TIMEOUT_MS}")
        cursor.execute("PRAGMA journal_mode=WAL")
    finally:
        cursor.close()


settings.DB_PATH.parent.mkdir(parents=True, exist_ok=True)
engine = make_engine(settings.DB_URL)


def create_db_and_tables(target: Engine | None = None):
    """Create database tables using SQLModel metadata.

    This is enough for local development and tests; the schema is small
    and has no migration history yet.
    """
    from . import models  # noqa: F401  (registers the tables)

    SQLModel.metadata.create_all(target or engine)


def get_session():
    """Yield a database `Session` for FastAPI dependency injection.

    The generator yields a session and ensures it is closed when the
    request scope finishes.
    """
    with Session(engine) as session:
        yield session
