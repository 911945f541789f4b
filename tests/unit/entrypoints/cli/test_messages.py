"""Unit tests for `flowmodeler.entrypoints.cli.helpers.messages`.

1) Glyphs follow the encoding of Click's *current* stderr stream.
2) `warn`/`success`/`error` write bold, colored lines to stderr only.
"""

import io
import sys

import click
import pytest

from flowmodeler.entrypoints.cli.helpers.messages import (
    _supports_character,
    caution_glyph,
    error,
    error_glyph,
    success,
    success_glyph,
    warn,
)

SET_YELLOW = "\x1b[33m"
SET_GREEN = "\x1b[32m"
SET_RED = "\x1b[31m"
SET_BOLD = "\x1b[1m"
RESET = "\x1b[0m"


class FakeTTY(io.StringIO):
    """A TTY-like text stream with a chosen encoding."""

    def __init__(self, encoding: str):
        super().__init__()
        self._encoding = encoding

    @property
    def encoding(self) -> str:
        return self._encoding

    def isatty(self) -> bool:
        return True


@pytest.mark.parametrize(
    ("encoding", "expected"),
    [
        ("ascii", ("[!]", "[OK]", "[X]")),
        ("utf-8", ("⚠️", "✅", "❌")),
    ],
)
def test_glyphs_follow_stream_encoding(monkeypatch, encoding, expected):
    stream = FakeTTY(encoding)
    monkeypatch.setattr(click, "get_text_stream", lambda name: stream)
    assert (caution_glyph(), success_glyph(), error_glyph()) == expected


def test_supports_character_requeries_stream(monkeypatch):
    encodings = iter(["ascii", "utf-8"])
    monkeypatch.setattr(click, "get_text_stream", lambda name: FakeTTY(next(encodings)))
    assert _supports_character("⚠️") is False
    assert _supports_character("⚠️") is True


def test_unknown_encoding_falls_back_to_ascii(monkeypatch):
    monkeypatch.setattr(click, "get_text_stream", lambda name: FakeTTY("no-such-codec"))
    assert caution_glyph() == "[!]"


@pytest.mark.parametrize(
    ("encoding", "glyph", "color_code", "func"),
    [
        ("ascii", "[!]", SET_YELLOW, warn),
        ("utf-8", "⚠️", SET_YELLOW, warn),
        ("ascii", "[OK]", SET_GREEN, success),
        ("utf-8", "✅", SET_GREEN, success),
        ("ascii", "[X]", SET_RED, error),
        ("utf-8", "❌", SET_RED, error),
    ],
)
def test_messages_emit_styled_stderr(monkeypatch, encoding, glyph, color_code, func):
    stream = FakeTTY(encoding)
    monkeypatch.setattr(click, "get_text_stream", lambda name: stream)
    monkeypatch.setattr(sys, "stderr", stream, raising=False)
    monkeypatch.delenv("NO_COLOR", raising=False)

    func("schema out of date")

    out = stream.getvalue()
    assert glyph in out
    assert SET_BOLD in out
    assert color_code in out
    assert RESET in out


def test_warn_writes_to_stderr_only(monkeypatch, capsys):
    monkeypatch.setattr(click, "get_text_stream", lambda name: FakeTTY("utf-8"))
    warn("back up first")
    captured = capsys.readouterr()
    assert "back up first" in captured.err
    assert captured.out == ""
