"""Functional tests for the CLI help and version output."""

from __future__ import annotations

import re
from textwrap import dedent

from click.testing import CliRunner

import flowmodeler
from flowmodeler.entrypoints.cli import main

ANSI_RE = re.compile(r"\x1b\[[0-9;]*[A-Za-z]")


def _normalize(s: str) -> str:
    return re.sub(r"\s+", " ", s.strip())


def test_help_shows_prose_and_links():
    result = CliRunner().invoke(main.flowmodeler, ["--help"])
    assert result.exit_code == 0, result.output
    text = _normalize(ANSI_RE.sub("", result.output))
    assert _normalize(dedent(main.HELP)) in text
    for section in ("Usage:", "Options:", "Commands:", "See Also:"):
        assert section in text
    assert "https://alembic.sqlalchemy.org/" in text
    assert "--set KEY=VALUE" in text


def test_db_help_lists_commands():
    result = CliRunner().invoke(main.flowmodeler, ["db", "--help"])
    assert result.exit_code == 0, result.output
    for command in ("upgrade", "current", "heads", "history", "status", "config"):
        assert command in result.output


def test_version():
    result = CliRunner().invoke(main.flowmodeler, ["--version"])
    assert result.exit_code == 0, result.output
    assert flowmodeler.__version__ in ANSI_RE.sub("", result.output)
