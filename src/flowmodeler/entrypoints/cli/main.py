"""Flow Modeler CLI entry point.

Defines the top-level ``flowmodeler`` command (via Click-Extra): logging
options, configuration resolution (``--config`` / ``--set``) and the
subcommand groups.

Currently available groups
- ``flowmodeler db``: schema migrations and datasource inspection.

Examples
    $ flowmodeler --version
    $ flowmodeler --config modeler.properties db status
    $ flowmodeler --set datasource.url=postgresql://db/modeler db upgrade --force
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import click
import click_extra as clickx
from platformdirs import user_log_dir

from flowmodeler import __version__
from flowmodeler.config import (
    CONFIG_PATH_ENVVAR,
    PASSWORD_KEY,
    Settings,
    resolve_properties,
)
from flowmodeler.errors import ConfigurationError
from flowmodeler.logging import config_console_handler, config_flight_recorder, log_startup
from flowmodeler.redaction import Redactor, RedactorMode

from .db import db as db_group
from .helpers import hyperlink, parse_log_level, parse_property_overrides

if TYPE_CHECKING:
    from logging import Handler

logger = logging.getLogger(__name__)


HELP = """Flow Modeler command-line interface.

    Manages the persistence layer of the Flow Modeler: the pooled datasource,
    the ORM session factory and the ACT_DE_ schema migrations.
    """

EPILOG = "\b\n" + "\n".join(
    [
        f"{click.style('See Also:', fg='blue', bold=True, underline=True)}",
        "  Alembic   : " + hyperlink("https://alembic.sqlalchemy.org/"),
        "  SQLAlchemy: " + hyperlink("https://docs.sqlalchemy.org/"),
    ]
)


@dataclass(frozen=True)
class CliState:
    """What the group callback resolves for its subcommands (``ctx.obj``)."""

    settings: Settings
    properties: dict[str, str] = field(default_factory=dict)
    config_path: Path | None = None
    redactor: Redactor = field(default_factory=Redactor)


@clickx.extra_group(
    version=__version__,
    help=HELP,
    params=[
        clickx.ColorOption(show_envvar=True),
        clickx.TimerOption(show_envvar=True),
        clickx.ExtraVersionOption(),
    ],
    epilog=EPILOG,
)
@click.option(
    "--verbose",
    "-v",
    "verbose_count",
    count=True,
    help="Increase the default WARNING verbosity by one level per repetition.",
    default=0,
)
@click.option(
    "--quiet",
    "-q",
    "quiet_count",
    count=True,
    help="Decrease the default WARNING verbosity by one level per repetition.",
    default=0,
)
@click.option(
    "--debug/--no-debug",
    is_flag=True,
    help="Enable debug mode (timestamps, logger names and source paths).",
    default=False,
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Java-style .properties file with datasource.* and orm.* settings.",
    envvar=CONFIG_PATH_ENVVAR,
    show_envvar=True,
)
@click.option(
    "--set",
    "overrides",
    metavar="KEY=VALUE",
    multiple=True,
    callback=parse_property_overrides,
    help="Override one configuration property. Repeatable; wins over --config.",
)
@click.option(
    "--log-path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Path to log file (overrides default flight recorder path).",
    default=Path(user_log_dir("flowmodeler", appauthor=False, ensure_exists=True))
    / "latest.log",
    envvar="FLOWMODELER_LOG_PATH",
    show_default=True,
    show_envvar=True,
)
@click.option(
    "--flight-recorder-capacity",
    type=int,
    default=2000,
    hidden=True,
    envvar="FLOWMODELER_FLIGHT_RECORDER_CAPACITY",
    show_envvar=True,
    help="Capacity of the flight recorder (in number of log records).",
)
@click.option(
    "--flight-recorder/--no-flight-recorder",
    "flight_recorder",
    is_flag=True,
    help=(
        "Keep the last N log records in memory at DEBUG granularity and write "
        "them to --log-path when a WARNING or ERROR occurs."
    ),
    default=True,
    show_envvar=True,
)
@click.option(
    "--force-flush/--no-force-flush",
    "force_flush_flight_recorder",
    is_flag=True,
    help="Also write the flight recorder buffer to --log-path on a clean exit.",
    default=False,
    show_default=True,
    show_envvar=True,
)
@click.option(
    "-L",
    "--logger-level",
    "logger_levels",
    multiple=True,
    callback=parse_log_level,
    help=(
        "Set MINIMUM LEVEL for specific LOGGERS (NAME=LEVEL). Repeatable "
        "(e.g. -L sqlalchemy=INFO -L flowmodeler.sql=DEBUG)."
    ),
    default=("sqlalchemy=WARNING", "alembic=WARNING"),
    show_default=True,
    show_envvar=True,
)
@click.option(
    "--redactor-mode",
    "redactor_mode",
    type=click.Choice(["lenient", "strict"], case_sensitive=False),
    help="'lenient' masks passwords and tokens; 'strict' also masks user names.",
    default="lenient",
    show_envvar=True,
    show_default=True,
)
@clickx.pass_context
def flowmodeler(  # pylint: disable=too-many-arguments, too-many-locals, too-many-positional-arguments
    ctx: click.Context,
    verbose_count: int,
    quiet_count: int,
    debug: bool,
    config_path: Path | None,
    overrides: dict[str, str],
    log_path: Path,
    flight_recorder_capacity: int,
    flight_recorder: bool,
    force_flush_flight_recorder: bool,
    logger_levels: dict[str, int],
    redactor_mode: str,
) -> None:
    """Flow Modeler command-line interface."""

    # 0) read raw properties first: the password must be known to the log filters
    try:
        properties, config_path = resolve_properties(config_path, overrides)
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e
    secrets = [properties[PASSWORD_KEY]] if properties.get(PASSWORD_KEY) else []

    # 1) effective verbosity
    level = logging.WARNING - (10 * verbose_count) + (10 * quiet_count)
    level = max(logging.DEBUG, min(logging.CRITICAL, level))

    # 2) handlers
    handlers: list[Handler] = [
        config_console_handler(
            level=level, debug_mode=debug, color=ctx.color is not False, secrets=secrets
        )
    ]
    if flight_recorder:
        handlers.append(
            config_flight_recorder(
                path=log_path,
                capacity=flight_recorder_capacity,
                flush_on_close=force_flush_flight_recorder,
                secrets=secrets,
            )
        )
    logging.basicConfig(level=logging.DEBUG, handlers=handlers, force=True)
    for name, lvl in logger_levels.items():
        logging.getLogger(name).setLevel(lvl)

    log_startup(
        logger,
        app_version=__version__,
        level=level,
        handlers=handlers,
        log_path=log_path,
        flight_recorder=flight_recorder,
        logger_levels=logger_levels,
        config_path=config_path,
    )
    ctx.call_on_close(logging.shutdown)

    # 3) typed settings (may warn about ignored values, so after logging is up)
    try:
        settings = Settings.from_properties(properties)
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e

    ctx.obj = CliState(
        settings=settings,
        properties=properties,
        config_path=config_path,
        redactor=Redactor(RedactorMode(redactor_mode.lower())),
    )


flowmodeler.add_command(db_group)
