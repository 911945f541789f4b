"""Small, I/O-light helpers shared by the CLI commands."""

from .hyperlinks import hyperlink
from .key_value_parser import parse_log_level, parse_property_overrides
from .messages import error, success, warn

__all__ = [
    "error",
    "hyperlink",
    "parse_log_level",
    "parse_property_overrides",
    "success",
    "warn",
]
