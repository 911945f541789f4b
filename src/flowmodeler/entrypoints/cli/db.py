"""Flow Modeler DB CLI: migration and datasource commands.

Forward-only wrappers over the migration runner and Alembic. Destructive
operations (``downgrade``, ``stamp``) are intentionally omitted.

Behavior
- Settings come from the group's ``--config``/``--set`` options (``ctx.obj``).
- Human-oriented notices go to **stderr**, Alembic output to **stdout**.
- Schema-changing actions prompt for confirmation unless ``--force`` is given.
- The version and lock tables carry the ``ACT_DE_`` prefix on every backend.
"""

from __future__ import annotations

import sys
from contextlib import contextmanager
from enum import Enum
from typing import TYPE_CHECKING

import click
import click_extra as clickx
from alembic import command
from alembic.script import ScriptDirectory
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError

from flowmodeler.errors import DataSourceLookupError, MigrationError
from flowmodeler.infrastructure.db.datasource import (
    DriverLoadError,
    build_data_source,
    resolve_url,
)
from flowmodeler.infrastructure.db.migrations import (
    EXECUTION_CONTEXT,
    PREFIXED_TABLES,
    build_alembic_config,
    current_revision,
    run_migrations,
)

from .helpers import error, success, warn

if TYPE_CHECKING:
    from collections.abc import Iterator

    from alembic.config import Config
    from sqlalchemy.engine import Engine

    from .main import CliState

NO_DRIVER_MSG = (
    "The datasource driver could not be loaded.\n"
    "Check datasource.driver and datasource.url, and that the DBAPI package "
    "is installed (e.g. pip install 'flowmodeler[postgres]')."
)

NO_DIRECTORY_MSG = (
    "datasource.jndi.name is set, but named datasources are only available "
    "to a hosting application. Unset it to use the pooled datasource."
)

CANNOT_CONNECT_MSG = (
    "The datasource is configured, but the database is not reachable.\n"
    "Please ensure the database is running and the URL is correct."
)

UPGRADE_SCHEMA_WARNING = (
    "This will upgrade the database schema to the latest version.\n"
    "Please ensure you have a backup before proceeding."
)

UPGRADE_SCHEMA_INSTRUCTIONS = "Run 'flowmodeler db upgrade' to update the schema."

HEAD = f"{EXECUTION_CONTEXT}@head"


def _state() -> CliState:
    return click.get_current_context().find_root().obj


@contextmanager
def _engine() -> Iterator[Engine]:
    """Build the configured engine, check it answers, and dispose of it after."""
    state = _state()
    try:
        engine = build_data_source(state.settings.datasource, redactor=state.redactor)
    except DataSourceLookupError as e:
        raise click.ClickException(NO_DIRECTORY_MSG) from e
    if engine is None:
        raise click.ClickException(NO_DRIVER_MSG)
    try:
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))  # pragma: no mutate
        except DBAPIError as e:
            raise click.ClickException(CANNOT_CONNECT_MSG) from e
        yield engine
    finally:
        engine.dispose()


def _script_config() -> Config:
    return build_alembic_config(stdout=sys.stdout)


def _head_revision(cfg: Config) -> str | None:
    script = ScriptDirectory.from_config(cfg)
    return script.get_current_head() if len(script.get_heads()) <= 1 else None


@click.group(cls=clickx.ExtraGroup)
def db() -> None:
    """Database management commands."""


@db.command()
def current() -> None:
    """Show the revision recorded in the ACT_DE_ version table."""
    with _engine() as engine, engine.connect() as conn:
        rev = current_revision(conn, PREFIXED_TABLES)
    click.echo(rev or "<none>")


@db.command()
@click.option("--verbose", "-v", "verbose", is_flag=True, help="Show alembic's more verbose output.")
def heads(verbose: bool) -> None:
    """Show available head revisions."""
    command.heads(_script_config(), verbose=verbose)


@db.command()
@click.option("--verbose", "-v", "verbose", is_flag=True, help="Show alembic's more verbose output.")
def history(verbose: bool) -> None:
    """Show revision history."""
    command.history(_script_config(), verbose=verbose)


@db.command()
@click.option("--sql", is_flag=True, help="Print the SQL instead of executing it.")
@click.option("--force", is_flag=True, help="Upgrade without confirmation.")
def upgrade(sql: bool, force: bool) -> None:
    """Upgrade the modeler schema to its head revision."""
    state = _state()
    pool = state.settings.datasource.pool
    if sql:
        try:
            url = resolve_url(pool).render_as_string(hide_password=False)
        except DriverLoadError as e:
            raise click.ClickException(NO_DRIVER_MSG) from e
        command.upgrade(build_alembic_config(db_url=url, stdout=sys.stdout), HEAD, sql=True)
        return

    if not force:
        warn(UPGRADE_SCHEMA_WARNING)
        click.secho(f"db: {click.style(state.redactor.sanitize_db_url(pool.url), underline=True)}")
        click.confirm("Are you sure you want to proceed?", abort=True)

    with _engine() as engine:
        try:
            result = run_migrations(engine, stdout=sys.stdout)
        except MigrationError as e:
            error(str(e))
            cause = e.__cause__
            raise click.ClickException(
                state.redactor.sanitize_db_url(f"{type(cause).__name__}: {cause}")
                if cause is not None
                else str(e)
            ) from e

    if result.upgraded:
        success(f"Upgrade complete! ({result.starting_revision or '<empty>'} -> {result.revision})")
    else:
        success(f"Already at {result.revision}.")


class MigrationStatus(Enum):
    """Describes the migration status of the database schema."""

    UP_TO_DATE = "up to date"
    OUT_OF_DATE = "out of date"
    UNINITIALIZED = "uninitialized"


@db.command()
def status() -> None:
    """Show database connection, pool and schema status."""
    state = _state()
    pool = state.settings.datasource.pool
    with _engine() as engine:
        success("Database reachable")
        click.echo(f"Backend : {engine.dialect.name}")
        click.echo(f"URL     : {state.redactor.sanitize_db_url(str(engine.url))}")
        click.echo(
            f"Pool    : min {pool.min_pool_size}, max {pool.max_pool_size}, "
            f"increment {pool.acquire_increment}"
        )
        with engine.connect() as conn:
            rev = current_revision(conn, PREFIXED_TABLES)

    head = _head_revision(_script_config())
    if rev is None:
        migration_status = MigrationStatus.UNINITIALIZED
    elif rev == head:
        migration_status = MigrationStatus.UP_TO_DATE
    else:
        migration_status = MigrationStatus.OUT_OF_DATE

    message = f"{rev} ({migration_status.value})" if rev else migration_status.value
    click.echo(f"Schema  : {message}")
    if migration_status is not MigrationStatus.UP_TO_DATE:
        warn(UPGRADE_SCHEMA_INSTRUCTIONS)


@db.command(name="config")
def show_config() -> None:
    """Print the resolved settings (secrets masked)."""
    state = _state()
    settings = state.settings
    click.echo(f"Configuration file : {state.config_path or '<defaults>'}")
    if settings.datasource.jndi_name:
        click.echo(f"Named datasource   : {settings.datasource.jndi_name}")
        click.echo(f"Resource reference : {settings.datasource.jndi_resource_ref}")
    summary = settings.datasource.pool.summary()
    summary["url"] = state.redactor.sanitize_db_url(str(summary["url"]))
    for key, value in summary.items():
        click.echo(f"{key:<19}: {value}")
    click.echo(f"{'generate_statistics':<19}: {settings.orm.generate_statistics}")
    click.echo(f"{'show_sql':<19}: {settings.orm.show_sql}")
    click.echo(f"{'dialect':<19}: {settings.orm.dialect}")
