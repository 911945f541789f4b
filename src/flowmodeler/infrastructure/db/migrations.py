"""Migration runner for the modeler schema.

The packaged changelog (Alembic scripts under
``flowmodeler/infrastructure/db/alembic``) is applied over a connection
obtained from the connection source. The run:

1. checks out a connection and detects the dialect,
2. prefixes both bookkeeping tables with ``ACT_DE_`` (on every dialect) so
   they cannot collide with other schemas sharing the database,
3. takes the changelog lock, so only one process migrates at a time,
4. upgrades the ``modeler`` branch (the execution context) to its head,
5. releases the lock.

Any failure surfaces as `MigrationError`, with the original exception as
``__cause__``.
"""

from __future__ import annotations

import logging
import os
import socket
import sys
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from importlib.resources import files
from typing import TYPE_CHECKING, TextIO

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from sqlalchemy import (
    Boolean,
    Column,
    Integer,
    MetaData,
    String,
    Table,
    false,
    insert,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError, ProgrammingError

from flowmodeler.errors import MigrationError, MigrationLockTimeoutError
from flowmodeler.infrastructure.db.dialects import DialectName
from flowmodeler.infrastructure.db.sa_types import UTCDateTime

if TYPE_CHECKING:
    from sqlalchemy.engine import Connection, Engine

logger = logging.getLogger(__name__)

CHANGELOG_TABLE_PREFIX = "ACT_DE_"
CHANGELOG_PACKAGE = "flowmodeler.infrastructure.db.alembic"
EXECUTION_CONTEXT = "modeler"
VERSION_TABLE = "alembic_version"
LOCK_TABLE = "alembic_version_lock"
LOCK_ROW_ID = 1

DEFAULT_LOCK_TIMEOUT = 300.0
DEFAULT_LOCK_POLL_INTERVAL = 10.0

ALEMBIC_URL_KEY = "sqlalchemy.url"  # pragma: no mutate
ALEMBIC_SCRIPT_LOCATION_KEY = "script_location"  # pragma: no mutate
ALEMBIC_VERSION_TABLE_KEY = "version_table"  # pragma: no mutate


@dataclass(frozen=True, slots=True)
class BookkeepingTables:
    """Names of the changelog-history and changelog-lock tables."""

    changelog: str = VERSION_TABLE
    lock: str = LOCK_TABLE

    def with_prefix(self, prefix: str) -> BookkeepingTables:
        return BookkeepingTables(changelog=prefix + self.changelog, lock=prefix + self.lock)

    def __contains__(self, name: object) -> bool:
        return name in (self.changelog, self.lock)


PREFIXED_TABLES = BookkeepingTables().with_prefix(CHANGELOG_TABLE_PREFIX)


@dataclass(frozen=True, slots=True)
class MigrationResult:
    """Outcome of a completed migration run."""

    dialect: DialectName
    tables: BookkeepingTables
    context: str
    starting_revision: str | None
    revision: str | None

    @property
    def upgraded(self) -> bool:
        """True if the run applied at least one revision."""
        return self.starting_revision != self.revision


def build_alembic_config(
    db_url: str | None = None,
    *,
    connection: Connection | None = None,
    tables: BookkeepingTables = PREFIXED_TABLES,
    stdout: TextIO = sys.stdout,
) -> Config:
    """Build an Alembic `Config` for the packaged changelog.

    Args:
        db_url: Database URL, for commands that open their own connection.
            Not needed when `connection` is given or no database is touched.
        connection: An open connection for ``env.py`` to run on.
        tables: Bookkeeping table names; ``env.py`` uses ``tables.changelog``
            as Alembic's version table and hides both from autogenerate.
        stdout: Where Alembic writes command output.

    Returns:
        An `alembic.config.Config` pointing at the packaged scripts.
    """
    cfg = Config(stdout=stdout)
    if db_url is not None:
        # the main section uses %-interpolation
        cfg.set_main_option(ALEMBIC_URL_KEY, db_url.replace("%", "%%"))
    cfg.set_main_option(ALEMBIC_SCRIPT_LOCATION_KEY, str(files(CHANGELOG_PACKAGE)))
    cfg.set_main_option(ALEMBIC_VERSION_TABLE_KEY, tables.changelog)
    cfg.attributes["bookkeeping_tables"] = tables
    if connection is not None:
        cfg.attributes["connection"] = connection
    return cfg


def lock_table(name: str) -> Table:
    """Return the definition of a changelog-lock table called `name`."""
    return Table(
        name,
        MetaData(),
        Column("id", Integer, primary_key=True, autoincrement=False),
        Column("locked", Boolean, nullable=False),
        Column("lock_granted", UTCDateTime(), nullable=True),
        Column("locked_by", String(255), nullable=True),
    )


def default_lock_owner() -> str:
    return f"{socket.gethostname()} (pid {os.getpid()})"


class ChangelogLock:  # pylint: disable=too-many-instance-attributes
    """Cross-process mutex stored in a one-row lock table.

    The row is claimed with a conditional UPDATE (``locked = false``) in its
    own committed transaction, so other processes see it immediately. A
    claimed lock is polled every `poll_interval` seconds until `timeout`.

    Use as a context manager around the migration run.
    """

    def __init__(  # pylint: disable=too-many-arguments
        self,
        connection: Connection,
        table_name: str,
        *,
        timeout: float = DEFAULT_LOCK_TIMEOUT,
        poll_interval: float = DEFAULT_LOCK_POLL_INTERVAL,
        owner: str | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.connection = connection
        self.table = lock_table(table_name)
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.owner = owner or default_lock_owner()
        self._clock = clock
        self._sleep = sleep
        self.held = False

    def ensure_table(self) -> None:
        """Create the lock table and its single row if missing."""
        try:
            with self.connection.begin():
                self.table.create(self.connection, checkfirst=True)
        except (IntegrityError, ProgrammingError):
            logger.debug("Lock table %s was created concurrently", self.table.name)
        try:
            with self.connection.begin():
                row = self.connection.execute(
                    select(self.table.c.id).where(self.table.c.id == LOCK_ROW_ID)
                ).first()
                if row is None:
                    self.connection.execute(
                        insert(self.table).values(id=LOCK_ROW_ID, locked=False)
                    )
        except IntegrityError:
            logger.debug("Lock row for %s was created concurrently", self.table.name)

    def holder(self) -> str | None:
        """Return who currently holds the lock, if anyone."""
        with self.connection.begin():
            return self.connection.execute(
                select(self.table.c.locked_by).where(
                    self.table.c.id == LOCK_ROW_ID, self.table.c.locked.is_(True)
                )
            ).scalar()

    def acquire(self) -> None:
        """Claim the lock, waiting up to `timeout` seconds.

        Raises:
            MigrationLockTimeoutError: If the lock stays held by another owner.
        """
        started = self._clock()
        while True:
            with self.connection.begin():
                claimed = self.connection.execute(
                    update(self.table)
                    .where(self.table.c.id == LOCK_ROW_ID, self.table.c.locked == false())
                    .values(
                        locked=True,
                        lock_granted=datetime.now(timezone.utc),
                        locked_by=self.owner,
                    )
                ).rowcount
            if claimed == 1:
                self.held = True
                logger.info("Acquired changelog lock %s", self.table.name)
                return
            holder = self.holder()
            waited = self._clock() - started
            if waited >= self.timeout:
                raise MigrationLockTimeoutError(self.table.name, holder, waited)
            logger.info("Waiting for changelog lock held by %s", holder or "unknown")
            self._sleep(self.poll_interval)

    def release(self) -> None:
        """Give the lock back. Does nothing if it is not held."""
        if not self.held:
            return
        with self.connection.begin():
            self.connection.execute(
                update(self.table)
                .where(self.table.c.id == LOCK_ROW_ID)
                .values(locked=False, lock_granted=None, locked_by=None)
            )
        self.held = False
        logger.info("Released changelog lock %s", self.table.name)

    def __enter__(self) -> ChangelogLock:
        self.ensure_table()
        self.acquire()
        return self

    def __exit__(self, *args: object) -> None:
        self.release()


def current_revision(connection: Connection, tables: BookkeepingTables) -> str | None:
    """Read the revision recorded in the (prefixed) version table."""
    with connection.begin():
        ctx = MigrationContext.configure(
            connection, opts={"version_table": tables.changelog}
        )
        return ctx.get_current_revision()


def run_migrations(  # pylint: disable=too-many-arguments
    engine: Engine | None,
    *,
    prefix: str = CHANGELOG_TABLE_PREFIX,
    context: str = EXECUTION_CONTEXT,
    lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
    lock_poll_interval: float = DEFAULT_LOCK_POLL_INTERVAL,
    stdout: TextIO = sys.stdout,
) -> MigrationResult:
    """Apply the packaged changelog to the database behind `engine`.

    Args:
        engine: Connection source. None means the source failed to build.
        prefix: Prepended to both bookkeeping table names.
        context: Execution context (changelog branch label) to upgrade.
        lock_timeout: Seconds to wait for another process's lock.
        lock_poll_interval: Seconds between lock attempts.
        stdout: Where Alembic writes command output.

    Returns:
        The dialect, table names and revisions of the completed run.

    Raises:
        MigrationError: On any failure, chained to the underlying exception.
    """
    logger.info("Configuring schema migrations")
    if engine is None:
        raise MigrationError("No usable connection source to migrate.")

    try:
        with engine.connect() as connection:
            dialect = DialectName.from_sqlalchemy(connection)
            tables = BookkeepingTables().with_prefix(prefix)
            logger.info(
                "Migrating %s schema (changelog table %s, lock table %s, context %s)",
                dialect.value,
                tables.changelog,
                tables.lock,
                context,
            )
            with ChangelogLock(
                connection,
                tables.lock,
                timeout=lock_timeout,
                poll_interval=lock_poll_interval,
            ):
                starting = current_revision(connection, tables)
                cfg = build_alembic_config(
                    connection=connection, tables=tables, stdout=stdout
                )
                # one outer transaction; env.py joins it
                with connection.begin():
                    command.upgrade(cfg, f"{context}@head")
                revision = current_revision(connection, tables)
    except MigrationError:
        raise
    except Exception as e:  # pylint: disable=broad-except
        raise MigrationError("Error creating migration database schema") from e

    logger.info("Schema at revision %s (was %s)", revision, starting or "<empty>")
    return MigrationResult(
        dialect=dialect,
        tables=tables,
        context=context,
        starting_revision=starting,
        revision=revision,
    )
