"""Alembic environment for the Flow Modeler changelog.

Policy defaults:
  - version table: the ``version_table`` main option (``ACT_DE_alembic_version``
    when configured through `build_alembic_config`)
  - compare_type=True, compare_server_default=True
  - render_as_batch=True on SQLite (safe ALTER TABLE emulation)
  - bookkeeping tables are invisible to autogenerate
  - connection precedence: ``config.attributes["connection"]`` > `-x url=...`
    > config sqlalchemy.url > the ``datasource.url`` of FLOWMODELER_CONFIG
"""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from flowmodeler.config import load_settings
from flowmodeler.infrastructure.db.dialects import DialectName
from flowmodeler.infrastructure.db.metadata import metadata
from flowmodeler.infrastructure.db.migrations import (
    ALEMBIC_VERSION_TABLE_KEY,
    PREFIXED_TABLES,
    VERSION_TABLE,
)
from flowmodeler.infrastructure.db.session import DOMAIN_PACKAGE, scan_package

# disable warning to deal with alembic context
# pylint: disable=no-member

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# import every mapped class so autogenerate sees the full schema
scan_package(DOMAIN_PACKAGE)
target_metadata = metadata

version_table = config.get_main_option(ALEMBIC_VERSION_TABLE_KEY, VERSION_TABLE)
bookkeeping = config.attributes.get("bookkeeping_tables", PREFIXED_TABLES)


def include_object(obj, name, type_, reflected, compare_to):  # pylint: disable=unused-argument,too-many-arguments,too-many-positional-arguments
    """Hide the bookkeeping tables from autogenerate."""
    return not (type_ == "table" and (name in bookkeeping or name == version_table))


def get_url() -> str:
    """Resolve DB URL with precedence: `-x url` > config > settings file."""
    url = context.get_x_argument(as_dictionary=True).get("url")
    if not url:
        url = config.get_main_option("sqlalchemy.url")
    if not url or "%(" in url:  # treat placeholder as unset # pylint: disable=R2004
        url = load_settings().datasource.pool.url
    return url


def _configure(connection) -> None:
    dialect = DialectName.from_sqlalchemy(connection)
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        version_table=version_table,
        include_object=include_object,
        compare_type=True,
        compare_server_default=True,
        render_as_batch=dialect is DialectName.SQLITE,
    )


def run_migrations_offline() -> None:
    """Emit the changelog as SQL without a database connection."""
    context.configure(
        url=get_url(),
        target_metadata=target_metadata,
        version_table=version_table,
        include_object=include_object,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        compare_server_default=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run the changelog against a live connection.

    Uses the connection handed over by the migration runner when there is one;
    otherwise opens a throwaway engine (CLI use).
    """
    connection = config.attributes.get("connection")
    if connection is not None:
        _configure(connection)
        with context.begin_transaction():
            context.run_migrations()
        return

    connectable = engine_from_config(
        {"sqlalchemy.url": get_url()},
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as conn:
        _configure(conn)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
