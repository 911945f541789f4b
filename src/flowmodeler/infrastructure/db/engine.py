"""Engine factory and helpers.

This module centralizes creation of SQLAlchemy Engines so that every
connection is configured the same way:

- **Pool sizing**: when a `PoolConfig` is given, the engine gets a
  `QueuePool` holding ``min_pool_size`` persistent connections and allowing
  ``max_pool_size - min_pool_size`` overflow connections.
- **SQLite**: connection PRAGMAs enforce foreign keys; file databases also
  switch to WAL. Pooled SQLite connections may cross threads, so
  ``check_same_thread`` is turned off.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import URL, make_url
from sqlalchemy.pool import QueuePool

if TYPE_CHECKING:
    from sqlite3 import Connection as SQLiteConnection

    from sqlalchemy.engine import Engine

    from flowmodeler.config import PoolConfig

SQLITE_NAMES = {"sqlite", "sqlite+pysqlite"}


def is_sqlite(url: str | URL) -> bool:
    """Return True if the given URL targets SQLite."""
    return make_url(str(url)).get_backend_name() in SQLITE_NAMES


def is_sqlite_memory(url: str | URL) -> bool:
    """Return True if the URL names an in-memory SQLite database.

    Covers the anonymous form (``sqlite://`` / ``:memory:``) and named
    shared-cache URIs (``file:name?mode=memory&uri=true``).
    """
    u = make_url(str(url))
    if u.get_backend_name() not in SQLITE_NAMES:
        return False
    return u.database in (None, "", ":memory:") or u.query.get("mode") == "memory"


def pool_arguments(pool: PoolConfig) -> dict[str, Any]:
    """Translate pool-sizing knobs into `create_engine` keyword arguments.

    `QueuePool` treats ``pool_size=0`` as "unbounded", so an empty minimum
    still keeps one persistent slot.
    """
    pool_size = max(pool.min_pool_size, 1)
    return {
        "poolclass": QueuePool,
        "pool_size": pool_size,
        "max_overflow": max(pool.max_pool_size - pool_size, 0),
        # a custom test query replaces the dialect ping (see pool.py)
        "pool_pre_ping": pool.test_connection_on_checkout
        and not pool.preferred_test_query,
    }


def make_engine(
    url: str | URL, *, echo: bool = False, pool: PoolConfig | None = None
) -> Engine:
    """Create a SQLAlchemy Engine for the given URL.

    Args:
        url: Database connection URL (str or :class:`URL`).
        echo: If True, SQLAlchemy logs SQL statements.
        pool: Pool sizing; when omitted SQLAlchemy's defaults apply.

    Returns:
        Engine: Configured SQLAlchemy Engine.
    """
    kwargs: dict[str, Any] = pool_arguments(pool) if pool is not None else {}
    sqlite = is_sqlite(url)
    if sqlite and pool is not None:
        kwargs["connect_args"] = {"check_same_thread": False}

    engine = create_engine(url, echo=echo, **kwargs)

    if sqlite:
        file_backed = not is_sqlite_memory(url)

        @event.listens_for(engine, "connect")
        def _sqlite_pragmas(dbapi_conn: SQLiteConnection, conn_record):  # type: ignore #pylint: disable=W0613
            cur = dbapi_conn.cursor()
            cur.execute("PRAGMA foreign_keys=ON;")
            if file_backed:
                cur.execute("PRAGMA journal_mode=WAL;")
                cur.execute("PRAGMA synchronous=NORMAL;")
            cur.close()

    return engine
