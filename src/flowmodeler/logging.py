"""Logging setup for the Flow Modeler CLI and bootstrapper.

Console output goes through Rich on stderr. An optional "flight recorder"
keeps recent DEBUG records in memory and writes them to a file when something
goes wrong. Two filters are provided:

- `ThirdPartyPrefixFilter` tags records from other libraries (``[sqlalchemy]``).
- `SecretMaskingFilter` scrubs known secret values (e.g. the datasource
  password) out of every record before any handler formats it.
"""

from __future__ import annotations

import logging
import os
import platform
import sys
from collections.abc import Iterable
from logging.handlers import MemoryHandler
from pathlib import Path
from typing import TYPE_CHECKING, Literal, TypeAlias

import alembic
import sqlalchemy
from rich.console import Console
from rich.logging import RichHandler

from flowmodeler.redaction import PLACEHOLDER

if TYPE_CHECKING:
    from logging import Logger

# pylint: disable=too-few-public-methods

PROJECT_PREFIX = "flowmodeler"

ColorSystem: TypeAlias = Literal["auto", "standard", "256", "truecolor", "windows"]


class ThirdPartyPrefixFilter(logging.Filter):
    """Set ``record.prefix`` to ``[package]`` for non-project loggers."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name.startswith(PROJECT_PREFIX):
            record.prefix = ""
        else:
            record.prefix = f"[{record.name.split('.')[0]}]"
        return True


class SecretMaskingFilter(logging.Filter):
    """Replace literal secret values in log records with ``***``.

    The record's message is rendered once (``msg % args``), scrubbed, and
    stored back with empty args so later formatting cannot reintroduce the
    secret. Exception text is scrubbed the same way.

    Args:
        secrets: Values that must never be emitted. Empty values are ignored.
    """

    def __init__(self, secrets: Iterable[str] = ()) -> None:
        super().__init__()
        # longest first so a secret containing another is masked whole
        self._secrets = sorted({s for s in secrets if s}, key=len, reverse=True)

    def _scrub(self, text: str) -> str:
        for secret in self._secrets:
            text = text.replace(secret, PLACEHOLDER)
        return text

    def filter(self, record: logging.LogRecord) -> bool:
        if not self._secrets:
            return True
        record.msg = self._scrub(record.getMessage())
        record.args = None
        if record.exc_info and not record.exc_text:
            record.exc_text = logging.Formatter().formatException(record.exc_info)
        if record.exc_text:
            record.exc_text = self._scrub(record.exc_text)
        return True


def config_console_handler(
    level: int = logging.INFO,
    debug_mode: bool = False,
    color: bool = True,
    secrets: Iterable[str] = (),
) -> RichHandler:
    """Build the Rich console handler.

    Args:
        level: Minimum console level; forced to DEBUG in debug mode.
        debug_mode: Show timestamps, logger names and source paths.
        color: Allow colored output (mirrors click-extra's ``--color/--no-color``).
        secrets: Values to scrub from every record.

    Returns:
        RichHandler: A handler ready for the root logger.
    """
    color_system: ColorSystem | None = "auto" if color else None
    console = Console(color_system=color_system, stderr=True)

    handler = RichHandler(
        level=logging.DEBUG if debug_mode else level,
        console=console,
        rich_tracebacks=True,
        show_time=False,
        show_path=debug_mode,
        enable_link_path=debug_mode,
    )
    if debug_mode:
        handler.setFormatter(logging.Formatter("%(asctime)s %(name)s: %(message)s"))
    else:
        handler.setFormatter(logging.Formatter("%(prefix)s %(message)s"))
        handler.addFilter(ThirdPartyPrefixFilter())
    handler.addFilter(SecretMaskingFilter(secrets))
    return handler


def config_flight_recorder(
    path: Path,
    capacity: int = 2000,
    flush_level: int = logging.WARNING,
    flush_on_close: bool = False,
    secrets: Iterable[str] = (),
) -> MemoryHandler:
    """Build a memory-buffered handler that dumps to `path` on trouble.

    Records are buffered up to `capacity` and written when one at
    `flush_level` or above arrives (or on close when `flush_on_close`).

    Returns:
        MemoryHandler: The buffering handler, targeting a FileHandler.
    """
    file_handler = logging.FileHandler(path, mode="w", encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(
        logging.Formatter(
            "[%(asctime)s] [%(process)d:%(threadName)s] "
            "%(levelname)s %(name)s:%(lineno)d: %(message)s"
        )
    )

    memory_handler = MemoryHandler(
        capacity=capacity,
        flushLevel=flush_level,
        target=file_handler,
        flushOnClose=flush_on_close,
    )
    # scrub before buffering; records sit in memory until flushed
    memory_handler.addFilter(SecretMaskingFilter(secrets))
    return memory_handler


def log_startup(  # pylint: disable=too-many-arguments
    logger: Logger,
    *,
    app_version: str,
    level: int,
    handlers: list[logging.Handler],
    log_path: Path | None,
    flight_recorder: bool,
    logger_levels: dict[str, int],
    config_path: Path | None,
) -> None:
    """Emit a one-line INFO banner and DEBUG diagnostics."""
    logger.info(
        "Flow Modeler %s (console=%s, flight-recorder=%s)",
        app_version,
        logging.getLevelName(level),
        "ON" if flight_recorder else "OFF",
    )

    logger.debug("Python: %s", sys.version.split()[0])
    logger.debug("Platform: %s %s", platform.system(), platform.release())
    logger.debug("PID: %s", os.getpid())
    logger.debug("CWD: %s", Path.cwd())
    logger.debug("Alembic: %s", alembic.__version__)
    logger.debug("SQLAlchemy: %s", sqlalchemy.__version__)
    logger.debug("Handlers: %s", [type(h).__name__ for h in handlers])
    logger.debug("Configuration file: %s", config_path or "<defaults>")
    if flight_recorder:
        logger.debug("Flight recorder path: %s", log_path or "<none>")
    logger.debug(
        "Per-logger overrides: %s",
        {name: logging.getLevelName(lvl) for name, lvl in logger_levels.items()},
    )
