"""Status lines for human readers.

`warn`, `success` and `error` write one bold, colored line to **stderr**, so
stdout stays clean for Alembic output and other machine-readable text. Each
line starts with an emoji glyph, or an ASCII stand-in when stderr cannot
encode it (e.g. a Windows console or ``LANG=C``).
"""

import click

CAUTION = ("⚠️", "[!]")
SUCCESS = ("✅", "[OK]")
ERROR = ("❌", "[X]")


def _supports_character(char: str) -> bool:
    """Return True if the current stderr encoding can represent `char`."""
    encoding = getattr(click.get_text_stream("stderr"), "encoding", None) or "ascii"
    try:
        char.encode(encoding)
    except (UnicodeEncodeError, LookupError):
        return False
    return True


def _glyph(pair: tuple[str, str]) -> str:
    emoji, fallback = pair
    return emoji if _supports_character(emoji) else fallback


def caution_glyph() -> str:
    return _glyph(CAUTION)


def success_glyph() -> str:
    return _glyph(SUCCESS)


def error_glyph() -> str:
    return _glyph(ERROR)


def warn(message: str) -> None:
    click.secho(f"{caution_glyph()} {message}", fg="yellow", bold=True, err=True)


def success(message: str) -> None:
    click.secho(f"{success_glyph()} {message}", fg="green", bold=True, err=True)


def error(message: str) -> None:
    click.secho(f"{error_glyph()} {message}", fg="red", bold=True, err=True)
