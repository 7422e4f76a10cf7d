"""Format parser registry and built-in parser loading."""
from .core import (
    FormatParser,
    PARSERS,
    register_parser,
    get_parser,
    list_formats,
    load_builtin_parsers,
)

load_builtin_parsers()

__all__ = [
    "FormatParser",
    "PARSERS",
    "register_parser",
    "get_parser",
    "list_formats",
    "load_builtin_parsers",
]
