"""Assemble the persistence handles into a `PersistenceContext`."""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from typing import TYPE_CHECKING, TextIO

from flowmodeler.infrastructure.db.datasource import DataSourceDirectory, build_data_source
from flowmodeler.infrastructure.db.migrations import MigrationResult, run_migrations
from flowmodeler.infrastructure.db.session import SessionFactory, build_session_factory
from flowmodeler.infrastructure.db.sql_template import SqlTemplate
from flowmodeler.infrastructure.db.transactions import TransactionManager
from flowmodeler.redaction import Redactor

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

    from flowmodeler.config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PersistenceContext:
    """The ready-to-use persistence handles, owned by the caller."""

    data_source: Engine
    session_factory: SessionFactory
    transaction_manager: TransactionManager
    sql_template: SqlTemplate
    migrations: MigrationResult | None
    owns_data_source: bool = True

    def close(self) -> None:
        """Release the pool, unless the engine belongs to a directory."""
        if self.session_factory.statistics is not None:
            self.session_factory.statistics.log_summary(logger)
        if self.owns_data_source:
            logger.info("Releasing connection pool")
            self.data_source.dispose()

    def __enter__(self) -> PersistenceContext:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


def bootstrap(
    settings: Settings,
    *,
    directory: DataSourceDirectory | None = None,
    migrate: bool = True,
    redactor: Redactor | None = None,
    stdout: TextIO = sys.stdout,
) -> PersistenceContext:
    """Build every persistence handle once.

    Args:
        settings: Resolved configuration.
        directory: Registry for a named (externally owned) data source.
        migrate: Run the migration runner before building the session factory.
        redactor: Masks secrets in log output.
        stdout: Where Alembic writes command output.

    Returns:
        PersistenceContext: The handles, to be closed at shutdown.

    Raises:
        DataSourceLookupError: If a named data source is not bound.
        MigrationError: If the schema migration fails.
        SessionFactoryError: If the session factory cannot be built (including
            when the driver could not be loaded).
    """
    engine = build_data_source(settings.datasource, directory=directory, redactor=redactor)
    owns_data_source = not settings.datasource.jndi_name
    try:
        migrations = run_migrations(engine, stdout=stdout) if migrate else None
        session_factory = build_session_factory(engine, settings.orm)
    except BaseException:
        if engine is not None and owns_data_source:
            logger.info("Releasing connection pool after a failed startup")
            engine.dispose()
        raise
    return PersistenceContext(
        data_source=session_factory.engine,
        session_factory=session_factory,
        transaction_manager=TransactionManager(session_factory),
        sql_template=SqlTemplate(session_factory.engine),
        migrations=migrations,
        owns_data_source=owns_data_source,
    )
