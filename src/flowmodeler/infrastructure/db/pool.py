"""Pool maintenance hooks: connection validation, idle eviction and pre-fill.

SQLAlchemy's `QueuePool` does the sizing and locking; these pool events add
the policies it lacks:

- **checkin test**: a returned connection is validated (the preferred test
  query, or the dialect's ping) and invalidated if it fails.
- **checkout test**: with a preferred test query, the query runs before a
  connection is handed out. Without one, ``pool_pre_ping`` covers this
  (see `engine.pool_arguments`).
- **idle eviction**: a connection that sat in the pool longer than its idle
  limit is discarded at checkout and transparently replaced. The
  excess-connection limit applies while more than ``min_pool_size``
  connections are checked out. In-memory SQLite databases keep one pinned
  connection outside the pool so eviction cannot drop them.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from sqlalchemy import event, exc

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine
    from sqlalchemy.pool import ConnectionPoolEntry, PoolProxiedConnection

    from flowmodeler.config import PoolConfig

logger = logging.getLogger(__name__)

IDLE_SINCE_KEY = "flowmodeler.idle_since"  # pragma: no mutate


def idle_limit(pool_config: PoolConfig, checked_out: int) -> int:
    """Return the idle limit (seconds, 0 = none) for the current pool load."""
    if checked_out > pool_config.min_pool_size:
        return pool_config.max_idle_time_excess_connections
    return pool_config.max_idle_time


def install_pool_listeners(
    engine: Engine,
    pool_config: PoolConfig,
    *,
    clock: Callable[[], float] = time.monotonic,
) -> None:
    """Attach validation and idle-eviction listeners to `engine`'s pool.

    Args:
        engine: Engine whose pool should be maintained.
        pool_config: Validation flags, test query and idle limits.
        clock: Monotonic time source, in seconds.
    """
    dbapi_error = engine.dialect.loaded_dbapi.Error
    test_query = pool_config.preferred_test_query

    def validate(dbapi_connection: Any) -> None:
        if test_query:
            cursor = dbapi_connection.cursor()
            try:
                cursor.execute(test_query)
            finally:
                cursor.close()
            # the query began a transaction on non-autocommit drivers
            dbapi_connection.rollback()
        else:
            engine.dialect.do_ping(dbapi_connection)

    @event.listens_for(engine, "checkin")
    def _on_checkin(dbapi_connection: Any, connection_record: ConnectionPoolEntry) -> None:
        if dbapi_connection is None:  # already invalidated
            return
        if pool_config.test_connection_on_checkin:
            try:
                validate(dbapi_connection)
            except dbapi_error as e:
                logger.warning("Discarding connection that failed its checkin test")
                connection_record.invalidate(e)
                return
        connection_record.info[IDLE_SINCE_KEY] = clock()

    @event.listens_for(engine, "checkout")
    def _on_checkout(
        dbapi_connection: Any,
        connection_record: ConnectionPoolEntry,
        connection_proxy: PoolProxiedConnection,  # pylint: disable=unused-argument
    ) -> None:
        idle_since = connection_record.info.pop(IDLE_SINCE_KEY, None)
        limit = idle_limit(pool_config, engine.pool.checkedout())  # type: ignore[attr-defined]
        if idle_since is not None and limit and clock() - idle_since > limit:
            logger.debug("Evicting connection idle for more than %ss", limit)
            raise exc.DisconnectionError(f"connection idle for more than {limit}s")
        if pool_config.test_connection_on_checkout and test_query:
            try:
                validate(dbapi_connection)
            except dbapi_error as e:
                raise exc.DisconnectionError("connection failed its checkout test") from e


def pin_memory_database(engine: Engine) -> None:
    """Hold one connection outside the pool for an in-memory SQLite database.

    SQLite drops a shared-cache memory database when its last connection
    closes, so idle eviction of a one-connection pool would lose every table.
    The pinned connection is closed when the engine is disposed.
    """
    cargs, cparams = engine.dialect.create_connect_args(engine.url)
    keeper = engine.dialect.connect(*cargs, **{**cparams, "check_same_thread": False})
    logger.debug("Pinned a connection to the in-memory database")

    @event.listens_for(engine, "engine_disposed")
    def _release(disposed: Engine) -> None:  # pylint: disable=unused-argument
        keeper.close()


def prefill_pool(engine: Engine, pool_config: PoolConfig) -> int:
    """Open ``min_pool_size`` connections, ``acquire_increment`` at a time.

    The connections are returned to the pool immediately, where they stay as
    its persistent members. If the database cannot be reached the pool is left
    to fill on demand.

    Returns:
        The number of connections that were opened.
    """
    target = pool_config.min_pool_size
    held = []
    try:
        while len(held) < target:
            batch = min(pool_config.acquire_increment, target - len(held))
            held.extend(engine.connect() for _ in range(batch))
            logger.debug("Acquired %d of %d pooled connections", len(held), target)
    except exc.DBAPIError as e:
        logger.warning(
            "Could not pre-fill the connection pool (%s); "
            "connections will be opened on demand",
            type(e.orig).__name__ if e.orig is not None else type(e).__name__,
        )
    finally:
        for connection in held:
            connection.close()
    return len(held)
