"""Unit tests for the pool maintenance listeners and pre-fill."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator

import pytest
from sqlalchemy import event, text
from sqlalchemy.engine import Engine

from flowmodeler.config import PoolConfig
from flowmodeler.infrastructure.db.engine import make_engine
from flowmodeler.infrastructure.db.pool import (
    idle_limit,
    install_pool_listeners,
    pin_memory_database,
    prefill_pool,
)

# pylint: disable=redefined-outer-name


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def _pooled(url: str, clock: FakeClock, **overrides) -> Engine:
    pool_config = PoolConfig(url=url, min_pool_size=1, max_pool_size=3, **overrides)
    engine = make_engine(url, pool=pool_config)
    install_pool_listeners(engine, pool_config, clock=clock)
    return engine


def _dbapi_connection(engine: Engine):
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
        return conn.connection.dbapi_connection


@pytest.fixture
def idle_engine(sqlite_url: str, clock: FakeClock) -> Iterator[Engine]:
    engine = _pooled(sqlite_url, clock, max_idle_time=10, max_idle_time_excess_connections=5)
    yield engine
    engine.dispose()


def test_idle_limit_switches_above_minimum():
    pool_config = PoolConfig(
        min_pool_size=2, max_idle_time=100, max_idle_time_excess_connections=7
    )
    assert idle_limit(pool_config, 1) == 100
    assert idle_limit(pool_config, 2) == 100
    assert idle_limit(pool_config, 3) == 7


def test_connection_reused_within_idle_limit(idle_engine: Engine, clock: FakeClock):
    first = _dbapi_connection(idle_engine)
    clock.advance(9)
    assert _dbapi_connection(idle_engine) is first


def test_idle_connection_evicted_and_replaced(idle_engine: Engine, clock: FakeClock):
    first = _dbapi_connection(idle_engine)
    clock.advance(11)
    second = _dbapi_connection(idle_engine)
    assert second is not first
    # the replacement is healthy and now tracked from its own checkin
    clock.advance(1)
    assert _dbapi_connection(idle_engine) is second


def test_zero_idle_time_disables_eviction(sqlite_url: str, clock: FakeClock):
    engine = _pooled(sqlite_url, clock, max_idle_time=0)
    try:
        first = _dbapi_connection(engine)
        clock.advance(10_000)
        assert _dbapi_connection(engine) is first
    finally:
        engine.dispose()


def test_failed_checkin_test_discards_connection(
    sqlite_url: str, clock: FakeClock, caplog: pytest.LogCaptureFixture
):
    engine = _pooled(
        sqlite_url,
        clock,
        preferred_test_query="SELECT * FROM no_such_table",
        test_connection_on_checkout=False,
    )
    try:
        with caplog.at_level(logging.WARNING, logger="flowmodeler.infrastructure.db.pool"):
            first = _dbapi_connection(engine)
        assert "checkin test" in caplog.text
        assert _dbapi_connection(engine) is not first
    finally:
        engine.dispose()


def test_checkin_test_can_be_disabled(sqlite_url: str, clock: FakeClock):
    engine = _pooled(
        sqlite_url,
        clock,
        preferred_test_query="SELECT * FROM no_such_table",
        test_connection_on_checkin=False,
        test_connection_on_checkout=False,
    )
    try:
        first = _dbapi_connection(engine)
        assert _dbapi_connection(engine) is first
    finally:
        engine.dispose()


def _trace_statements(engine: Engine) -> list[str]:
    statements: list[str] = []

    @event.listens_for(engine, "connect")
    def _trace(dbapi_connection, connection_record):  # pylint: disable=unused-argument
        dbapi_connection.set_trace_callback(statements.append)

    return statements


def test_checkout_runs_the_preferred_test_query(sqlite_url: str, clock: FakeClock):
    engine = _pooled(
        sqlite_url,
        clock,
        preferred_test_query="SELECT 42",
        test_connection_on_checkin=False,
    )
    statements = _trace_statements(engine)
    try:
        first = _dbapi_connection(engine)
        assert _dbapi_connection(engine) is first
        assert statements.count("SELECT 42") == 2
        assert engine.pool._pre_ping is False  # pylint: disable=protected-access
    finally:
        engine.dispose()


def test_failed_checkout_test_replaces_connection(sqlite_url: str, clock: FakeClock):
    engine = _pooled(
        sqlite_url,
        clock,
        preferred_test_query="SELECT * FROM temp.healthy",
        test_connection_on_checkin=False,
    )

    @event.listens_for(engine, "connect")
    def _mark_healthy(dbapi_connection, connection_record):  # pylint: disable=unused-argument
        dbapi_connection.execute("CREATE TEMP TABLE healthy (id INTEGER)")

    try:
        first = _dbapi_connection(engine)
        first.execute("DROP TABLE temp.healthy")
        second = _dbapi_connection(engine)
        assert second is not first
        assert _dbapi_connection(engine) is second
    finally:
        engine.dispose()


def test_checkin_test_leaves_no_open_transaction(sqlite_url: str, clock: FakeClock):
    engine = _pooled(
        sqlite_url,
        clock,
        # DML opens an implicit transaction in the sqlite3 driver
        preferred_test_query="UPDATE ping SET n = n",
        test_connection_on_checkout=False,
    )
    try:
        with engine.begin() as conn:
            conn.execute(text("CREATE TABLE ping (n INTEGER)"))
        dbapi_connection = _dbapi_connection(engine)
        assert not dbapi_connection.in_transaction
    finally:
        engine.dispose()


def test_pinned_memory_database_survives_eviction(clock: FakeClock):
    url = f"sqlite+pysqlite:///file:pin_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"
    pool_config = PoolConfig(url=url, min_pool_size=1, max_pool_size=1, max_idle_time=10)
    engine = make_engine(url, pool=pool_config)
    pin_memory_database(engine)
    install_pool_listeners(engine, pool_config, clock=clock)
    try:
        with engine.begin() as conn:
            conn.execute(text("CREATE TABLE kept (id INTEGER)"))
            conn.execute(text("INSERT INTO kept VALUES (1)"))
        first = _dbapi_connection(engine)
        clock.advance(11)
        assert _dbapi_connection(engine) is not first
        with engine.connect() as conn:
            assert conn.execute(text("SELECT id FROM kept")).scalar() == 1
    finally:
        engine.dispose()


def test_prefill_opens_min_pool_size_connections(sqlite_url: str):
    pool_config = PoolConfig(url=sqlite_url, min_pool_size=3, max_pool_size=5, acquire_increment=2)
    engine = make_engine(sqlite_url, pool=pool_config)
    try:
        assert prefill_pool(engine, pool_config) == 3
        assert engine.pool.checkedin() == 3  # type: ignore[attr-defined]
        assert engine.pool.checkedout() == 0  # type: ignore[attr-defined]
    finally:
        engine.dispose()


def test_prefill_tolerates_unreachable_database(
    tmp_path, caplog: pytest.LogCaptureFixture
):
    url = f"sqlite+pysqlite:///{tmp_path / 'missing-dir' / 'modeler.db'}"
    pool_config = PoolConfig(url=url, min_pool_size=2, max_pool_size=2)
    engine = make_engine(url, pool=pool_config)
    try:
        with caplog.at_level(logging.WARNING, logger="flowmodeler.infrastructure.db.pool"):
            assert prefill_pool(engine, pool_config) == 0
        assert "on demand" in caplog.text
    finally:
        engine.dispose()
