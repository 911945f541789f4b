"""OSC-8 terminal hyperlinks with a plain-text fallback."""

import os
import sys
from typing import TextIO

_OSC8_PROGRAMS = {"apple_terminal", "vscode", "iterm.app", "wezterm", "kitty"}


def supports_osc8(stream: TextIO | None = None) -> bool:
    """Guess whether `stream` (default ``sys.stdout``) renders OSC-8 links.

    Non-TTY streams never do. Otherwise a small allowlist of terminal
    identifiers is consulted.
    """
    stream = stream or sys.stdout
    if not getattr(stream, "isatty", lambda: False)():
        return False
    return bool(
        (os.getenv("TERM_PROGRAM") or "").lower() in _OSC8_PROGRAMS
        or os.getenv("WT_SESSION")
        or os.getenv("VTE_VERSION")
        or os.getenv("TERM", "").startswith(("alacritty", "konsole"))
    )


def hyperlink(url: str, label: str | None = None) -> str:
    """Render `url` as a clickable link where supported, else as text."""
    if not supports_osc8():
        return label or url
    return f"\x1b]8;;{url}\x07{label or url}\x1b]8;;\x07"
