# boxoffice/infrastructure/db/session.py

from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import OperationalError, TimeoutError as SQLAlchemyTimeoutError
from sqlalchemy.orm import sessionmaker, DeclarativeBase
from sqlalchemy.pool import StaticPool

from boxoffice.config import get_settings


def build_engine(database_url: str) -> Engine:
    """
    Postgres gets a pre-pinged connection pool. SQLite (local runs and
    tests) is opened for cross-thread use; an in-memory database shares a
    single connection so every session sees the same tables.
    """
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite":
        return create_engine(url, echo=False, pool_pre_ping=True)

    options = {"connect_args": {"check_same_thread": False}}
    if url.database in (None, "", ":memory:"):
        options["poolclass"] = StaticPool
    return create_engine(url, echo=False, **options)


engine: Engine = build_engine(get_settings().database_url)


class Base(DeclarativeBase):
    pass


SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False,
)


def is_store_degraded(exc: Exception) -> bool:
    """Connection loss and pool exhaustion, as opposed to bad queries."""
    return isinstance(exc, (OperationalError, SQLAlchemyTimeoutError))


@contextmanager
def get_db_session():
    """Session scope for scripts outside the request cycle."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
