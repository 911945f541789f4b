"""Runtime statistics and SQL logging for the ORM layer.

`OrmStatistics` counts statements, their cumulative execution time, and
session transaction outcomes. It is attached to an engine (cursor events)
and a sessionmaker (session events) when statistics are enabled.

`install_sql_logging` logs each statement text on the ``flowmodeler.sql``
logger. Bound parameters are never logged.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sqlalchemy import event

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine
    from sqlalchemy.orm import Session, sessionmaker

sql_logger = logging.getLogger("flowmodeler.sql")

STARTED_KEY = "flowmodeler.query_started"  # pragma: no mutate


@dataclass(frozen=True, slots=True)
class StatisticsSnapshot:
    """Point-in-time copy of the counters."""

    statements: int
    statement_seconds: float
    transactions_begun: int
    commits: int
    rollbacks: int


class OrmStatistics:
    """Thread-safe counters fed by SQLAlchemy events."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._statements = 0
        self._statement_seconds = 0.0
        self._transactions_begun = 0
        self._commits = 0
        self._rollbacks = 0

    def attach(self, engine: Engine, factory: sessionmaker[Session]) -> None:
        """Start collecting from `engine` and sessions made by `factory`."""
        event.listen(engine, "before_cursor_execute", self._before_cursor_execute)
        event.listen(engine, "after_cursor_execute", self._after_cursor_execute)
        event.listen(engine, "handle_error", self._handle_error)
        event.listen(factory, "after_begin", self._after_begin)
        event.listen(factory, "after_commit", self._after_commit)
        event.listen(factory, "after_rollback", self._after_rollback)

    def snapshot(self) -> StatisticsSnapshot:
        with self._lock:
            return StatisticsSnapshot(
                statements=self._statements,
                statement_seconds=self._statement_seconds,
                transactions_begun=self._transactions_begun,
                commits=self._commits,
                rollbacks=self._rollbacks,
            )

    def clear(self) -> None:
        with self._lock:
            self._statements = 0
            self._statement_seconds = 0.0
            self._transactions_begun = 0
            self._commits = 0
            self._rollbacks = 0

    def log_summary(self, logger: logging.Logger) -> None:
        snap = self.snapshot()
        logger.info(
            "ORM statistics: %d statements in %.3fs, %d transactions "
            "(%d committed, %d rolled back)",
            snap.statements,
            snap.statement_seconds,
            snap.transactions_begun,
            snap.commits,
            snap.rollbacks,
        )

    # -- event handlers ----------------------------------------------------

    def _before_cursor_execute(self, conn, cursor, statement, parameters, context, executemany):  # type: ignore # pylint: disable=too-many-arguments,too-many-positional-arguments,unused-argument
        conn.info.setdefault(STARTED_KEY, {})[id(context)] = time.perf_counter()

    def _after_cursor_execute(self, conn, cursor, statement, parameters, context, executemany):  # type: ignore # pylint: disable=too-many-arguments,too-many-positional-arguments,unused-argument
        started = conn.info[STARTED_KEY].pop(id(context))
        with self._lock:
            self._statements += 1
            self._statement_seconds += time.perf_counter() - started

    def _handle_error(self, exception_context: Any) -> None:
        # a failed statement never reaches after_cursor_execute
        conn = exception_context.connection
        if conn is not None:
            conn.info.get(STARTED_KEY, {}).pop(id(exception_context.execution_context), None)

    def _after_begin(self, session: Session, transaction: Any, connection: Any) -> None:  # pylint: disable=unused-argument
        with self._lock:
            self._transactions_begun += 1

    def _after_commit(self, session: Session) -> None:  # pylint: disable=unused-argument
        with self._lock:
            self._commits += 1

    def _after_rollback(self, session: Session) -> None:  # pylint: disable=unused-argument
        with self._lock:
            self._rollbacks += 1


def install_sql_logging(engine: Engine) -> None:
    """Log every statement `engine` executes on ``flowmodeler.sql`` at INFO."""

    @event.listens_for(engine, "before_cursor_execute")
    def _log_statement(conn, cursor, statement, parameters, context, executemany):  # type: ignore # pylint: disable=too-many-arguments,too-many-positional-arguments,unused-argument
        sql_logger.info("%s", statement)
