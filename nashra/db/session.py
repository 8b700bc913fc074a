"""Engine and session handling.

Nothing here is a module-level global: the API lifespan, the CLI and the
worker each build their own engine and pass the session factory down to the
services, which check a session out per operation via ``session_scope``.
"""
import logging
from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from nashra.core.config import Settings
from nashra.services.exceptions import StoreUnavailableError

logger = logging.getLogger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def configure_engine(engine: Engine) -> Engine:
    """Apply per-dialect connection setup. Cascading deletes rely on it for SQLite."""
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def build_engine(settings: Settings) -> Engine:
    url = settings.DATABASE_URL
    if url.startswith("sqlite"):
        engine = create_engine(url, connect_args={"check_same_thread": False})
    else:
        engine = create_engine(
            url,
            pool_pre_ping=True,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=10,
            connect_args={"options": f"-c statement_timeout={settings.DB_STATEMENT_TIMEOUT_MS}"},
        )
    return configure_engine(engine)


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@contextmanager
def session_scope(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """Yield a session; commit on success, roll back on error, always close."""
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(engine: Engine) -> None:
    """Create all tables. Idempotent for existing tables."""
    from nashra.models import Base  # noqa: F401  registers every model

    Base.metadata.create_all(bind=engine)
    logger.info("Database schema ensured")


def is_store_outage(exc: DBAPIError) -> bool:
    return isinstance(exc, (OperationalError, InterfaceError)) or exc.connection_invalidated


@contextmanager
def store_scope(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """``session_scope`` with connection-level failures raised as ``StoreUnavailableError``."""
    try:
        with session_scope(session_factory) as session:
            yield session
    except DBAPIError as e:
        if is_store_outage(e):
            raise StoreUnavailableError(str(e.orig or e)) from e
        raise
