"""Transaction manager: the application's single transaction boundary.

A transaction is one `Session` with one database transaction. Nested
``transaction()`` blocks in the same execution context (thread or task) join
the outermost one: only the outermost block commits, and an exception
anywhere rolls the whole unit back.

SQLAlchemy errors leaving a transaction are translated into the
`DataAccessError` hierarchy, chained to the original.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import TYPE_CHECKING, TypeVar

from sqlalchemy.exc import SQLAlchemyError

from flowmodeler.infrastructure.db.errors import UnexpectedRollbackError, translate

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from flowmodeler.infrastructure.db.session import SessionFactory

logger = logging.getLogger(__name__)

T = TypeVar("T")

ROLLBACK_ONLY_KEY = "flowmodeler.rollback_only"  # pragma: no mutate


class TransactionManager:
    """Run units of work against sessions from a `SessionFactory`."""

    def __init__(self, session_factory: SessionFactory) -> None:
        self.session_factory = session_factory
        self._current: ContextVar[Session | None] = ContextVar(
            f"flowmodeler_tx_{id(self)}", default=None
        )

    @property
    def in_transaction(self) -> bool:
        """True inside a ``transaction()`` block of this manager."""
        return self._current.get() is not None

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Open (or join) a transaction and yield its session.

        Commits when the outermost block exits normally; rolls back and
        re-raises otherwise. A joined block that raises marks the transaction
        rollback-only, even if an outer block catches the exception.

        Raises:
            UnexpectedRollbackError: If the outermost block exits normally but
                a joined block failed.
            DataAccessError: For SQLAlchemy failures (translated).
        """
        if (session := self._current.get()) is not None:
            try:
                yield session
            except BaseException:
                session.info[ROLLBACK_ONLY_KEY] = True
                raise
            return

        session = self.session_factory()
        token = self._current.set(session)
        try:
            with session.begin():
                yield session
                if session.info.pop(ROLLBACK_ONLY_KEY, False):
                    raise UnexpectedRollbackError(
                        "Transaction rolled back because a joined block failed"
                    )
        except SQLAlchemyError as e:
            logger.debug("Transaction rolled back: %s", type(e).__name__)
            raise translate(e) from e
        finally:
            self._current.reset(token)
            session.close()

    def execute(self, callback: Callable[[Session], T]) -> T:
        """Call `callback` with a session inside a transaction; return its result."""
        with self.transaction() as session:
            return callback(session)
