"""Click callbacks for ``NAME=VALUE`` options.

Two options use this shape:

- ``-L/--logger-level NAME=LEVEL`` (repeatable, or a comma/space-separated
  list from the environment), parsed into logger levels;
- ``--set KEY=VALUE`` (repeatable), parsed into property overrides. Values
  may contain commas and spaces, so these items are never split.
"""

import logging
import re

import click

DEFAULT_LIB_LEVELS = {"sqlalchemy": logging.WARNING, "alembic": logging.WARNING}


def _normalize_items(value: str | list[str] | tuple[str, ...]) -> list[str]:
    """Flatten a string or sequence of strings, splitting on commas and whitespace."""
    values = value if isinstance(value, (tuple, list)) else [value]
    items: list[str] = []
    for v in values:
        items.extend(s for s in re.split(r"[,\s]+", v) if s)
    return items


def _split_pair(item: str, shape: str) -> tuple[str, str]:
    name, sep, rest = item.partition("=")
    if not sep or not name.strip():
        raise click.BadParameter(f"Expected {shape}, got {item!r}")
    return name.strip(), rest


def parse_log_level(
    ctx: click.Context,  # pylint: disable=unused-argument
    param: click.Parameter | None,  # pylint: disable=unused-argument
    value: str | list[str] | tuple[str, ...],
) -> dict[str, int]:
    """Parse NAME=LEVEL pairs into logger levels, on top of `DEFAULT_LIB_LEVELS`.

    Raises:
        click.BadParameter: If an item is not NAME=LEVEL or LEVEL is unknown.
    """
    levels = dict(DEFAULT_LIB_LEVELS)
    for item in _normalize_items(value):
        name, level_str = _split_pair(item, "NAME=LEVEL")
        lvl = logging.getLevelName(level_str.strip().upper())
        if not isinstance(lvl, int):
            raise click.BadParameter(f"Invalid log level: {level_str}")
        levels[name] = lvl
    return levels


def parse_property_overrides(
    ctx: click.Context,  # pylint: disable=unused-argument
    param: click.Parameter | None,  # pylint: disable=unused-argument
    value: tuple[str, ...],
) -> dict[str, str]:
    """Parse repeatable KEY=VALUE items; later items win.

    Raises:
        click.BadParameter: If an item has no ``=`` or an empty key.
    """
    overrides: dict[str, str] = {}
    for item in value or ():
        key, raw = _split_pair(item, "KEY=VALUE")
        overrides[key] = raw.strip()
    return overrides
