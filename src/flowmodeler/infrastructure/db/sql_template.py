"""Plain-SQL helper over the connection source.

For the few places that need SQL rather than the ORM (health checks, reports,
maintenance). Each call checks out its own connection and runs in its own
transaction; errors are translated like the transaction manager's.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from flowmodeler.infrastructure.db.errors import translate

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine


class SqlTemplate:
    """Execute textual SQL with named parameters (``:name``)."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def query_for_list(
        self, sql: str, params: Mapping[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        """Return all rows as dictionaries keyed by column name."""
        try:
            with self.engine.connect() as conn:
                result = conn.execute(text(sql), dict(params or {}))
                return [dict(row) for row in result.mappings()]
        except SQLAlchemyError as e:
            raise translate(e) from e

    def query_for_object(self, sql: str, params: Mapping[str, Any] | None = None) -> Any:
        """Return the single value of a single-row, single-column query.

        Raises:
            EmptyResultError: If the query returns no row.
            IncorrectResultSizeError: If it returns more than one row.
        """
        try:
            with self.engine.connect() as conn:
                return conn.execute(text(sql), dict(params or {})).scalar_one()
        except SQLAlchemyError as e:
            raise translate(e) from e

    def update(self, sql: str, params: Mapping[str, Any] | None = None) -> int:
        """Run a DML statement in its own transaction; return the affected row count."""
        try:
            with self.engine.begin() as conn:
                return conn.execute(text(sql), dict(params or {})).rowcount
        except SQLAlchemyError as e:
            raise translate(e) from e

    def execute(self, sql: str) -> None:
        """Run a statement (typically DDL) in its own transaction."""
        try:
            with self.engine.begin() as conn:
                conn.execute(text(sql))
        except SQLAlchemyError as e:
            raise translate(e) from e
