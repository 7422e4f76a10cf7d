"""Core types and registry for manuscript format parsers."""
from __future__ import annotations

import pkgutil
from importlib import import_module
from typing import Dict, List

from errors import UnsupportedType
from models import Format, Manuscript


class FormatParser:
    """Turns the raw bytes of one upload format into a ``Manuscript``.

    Subclasses set ``format`` and implement ``parse``. Parsers marked
    ``placeholder`` return a well-formed manuscript without reading the
    document; registering a real parser for the same format replaces them.
    """

    format: Format
    placeholder: bool = False

    def parse(self, raw: bytes, filename: str) -> Manuscript:
        raise NotImplementedError


PARSERS: Dict[str, FormatParser] = {}


def register_parser(parser: FormatParser) -> None:
    PARSERS[parser.format] = parser


def get_parser(fmt: str) -> FormatParser:
    try:
        return PARSERS[fmt]
    except KeyError:
        raise UnsupportedType(f"no parser registered for format {fmt!r}", detail={"format": fmt}) from None


def list_formats() -> List[str]:
    return sorted(PARSERS)


_loaded_builtin_parsers = False


def load_builtin_parsers() -> None:
    global _loaded_builtin_parsers
    if _loaded_builtin_parsers:
        return

    package_name = f"{__package__}.definitions"
    package = import_module(package_name)

    for module_info in pkgutil.iter_modules(package.__path__):  # type: ignore[attr-defined]
        if module_info.name.startswith("_"):
            continue
        import_module(f"{package_name}.{module_info.name}")

    _loaded_builtin_parsers = True


__all__ = [
    "FormatParser",
    "PARSERS",
    "register_parser",
    "get_parser",
    "list_formats",
    "load_builtin_parsers",
]
