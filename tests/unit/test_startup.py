import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.pool import StaticPool

from boxoffice.infrastructure.db.session import build_engine, is_store_degraded
from boxoffice.main import wait_for_database


class _DownEngine:
    def __init__(self):
        self.attempts = 0

    def connect(self):
        self.attempts += 1
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))


def test_in_memory_sqlite_shares_one_connection():
    engine = build_engine("sqlite+pysqlite://")

    assert isinstance(engine.pool, StaticPool)
    engine.dispose()


def test_postgres_url_keeps_default_pool():
    engine = build_engine("postgresql+psycopg2://u:p@localhost:5432/boxoffice")

    assert not isinstance(engine.pool, StaticPool)
    assert engine.pool._pre_ping is True
    engine.dispose()


def test_wait_for_database_returns_when_reachable():
    engine = build_engine("sqlite+pysqlite://")

    wait_for_database(engine, max_retries=1, retry_delay=0)
    engine.dispose()


def test_wait_for_database_gives_up_after_retries():
    engine = _DownEngine()

    with pytest.raises(OperationalError):
        wait_for_database(engine, max_retries=3, retry_delay=0)

    assert engine.attempts == 3


def test_store_degraded_classification():
    assert is_store_degraded(OperationalError("SELECT 1", {}, Exception("gone")))
    assert not is_store_degraded(ValueError("bad input"))
