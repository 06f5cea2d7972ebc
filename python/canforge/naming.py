"""Map database names onto valid Python identifiers

DBC names are free-form (``"1st gear"``, ``"class"``, ``"BMS_V2"``).
Names that start with a non-alphabetic character or collide with a
reserved word get an ``X`` prefix before case conversion:

    >>> type_name("1st gear")
    'X1stGear'
    >>> field_name("BatteryVoltage")
    'battery_voltage'
"""

from __future__ import annotations

import keyword
import re
from collections.abc import Callable

# Names the generated module binds or calls, plus the fallback variant sentinel
_GENERATED_NAMES = frozenset({
    "self", "cls", "frame", "data", "value",
    "rt", "enum", "json",
    "int", "float", "bool", "isinstance", "super",
    "DbcMessage", "DbcMessages", "CanMsgPool",
    "_other",
})

RESERVED_WORDS: frozenset[str] = frozenset(
    set(keyword.kwlist) | set(keyword.softkwlist) | _GENERATED_NAMES
)

_RESERVED_FOLDED = frozenset(w.lower() for w in RESERVED_WORDS)

_CHUNK_SPLIT_RE = re.compile(r"[^0-9A-Za-z]+")
_WORD_RE = re.compile(r"[A-Z]+(?=[A-Z][a-z])|[A-Z]?[a-z0-9]+|[A-Z0-9]+")


def is_keyword(ident: str) -> bool:
    """Case-insensitive membership in the reserved word set."""
    return ident.lower() in _RESERVED_FOLDED


def needs_prefix(ident: str) -> bool:
    """True if *ident* must be escaped with an ``X`` prefix."""
    first = ident[:1]
    return is_keyword(ident) or not (first.isascii() and first.isalpha())


def split_words(text: str) -> list[str]:
    """Split *text* into words on separators and case boundaries."""
    words: list[str] = []
    for chunk in _CHUNK_SPLIT_RE.split(text):
        words.extend(_WORD_RE.findall(chunk))
    return words


def to_upper_camel_case(text: str) -> str:
    return "".join(w[0].upper() + w[1:].lower() for w in split_words(text))


def to_snake_case(text: str) -> str:
    return "_".join(w.lower() for w in split_words(text))


def _sanitize(name: str, convert: Callable[[str], str]) -> str:
    ident = convert(name)
    if needs_prefix(name) or not ident or is_keyword(ident):
        ident = convert(f"X_{name}")
    return ident


def type_name(name: str) -> str:
    """PascalCase identifier for generated classes and enum variants."""
    return _sanitize(name, to_upper_camel_case)


def field_name(name: str) -> str:
    """snake_case identifier for generated arguments and attributes."""
    return _sanitize(name, to_snake_case)
