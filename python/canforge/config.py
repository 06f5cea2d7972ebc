"""Generator options and their YAML configuration file

A configuration file captures one generation run so it can be replayed
with ``canforge generate --config FILE``::

    infile: car.dbc
    outfile: car_dbc.py
    uid: my-car
    header: default        # default|custom|none
    header_file: hdr.txt   # only for header: custom
    range_check: true
    serde_json: true
    whitelist: [257, 513]
    blacklist: []
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TypeGuard

import yaml  # type: ignore[import-untyped]

from .gencode import DbcParser
from .protocols import GeneratorConfigDict, HeaderMode

_KNOWN_KEYS = frozenset(GeneratorConfigDict.__annotations__)


@dataclass(frozen=True)
class GeneratorOptions:
    """Everything one generation run needs besides the database."""

    infile: Path
    outfile: Path | None = None
    uid: str = "dbc"
    header: HeaderMode = HeaderMode.DEFAULT
    header_file: Path | None = None
    range_check: bool = True
    serde_json: bool = True
    whitelist: frozenset[int] = frozenset()
    blacklist: frozenset[int] = frozenset()

    def to_dict(self) -> GeneratorConfigDict:
        result: GeneratorConfigDict = {
            "infile": str(self.infile),
            "uid": self.uid,
            "header": self.header.value,
            "range_check": self.range_check,
            "serde_json": self.serde_json,
        }
        if self.outfile is not None:
            result["outfile"] = str(self.outfile)
        if self.header_file is not None:
            result["header_file"] = str(self.header_file)
        if self.whitelist:
            result["whitelist"] = sorted(self.whitelist)
        if self.blacklist:
            result["blacklist"] = sorted(self.blacklist)
        return result

    def parser(self) -> DbcParser:
        """Builder configured with these options (database read from ``infile``)."""
        builder = (
            DbcParser(self.uid)
            .dbcfile(self.infile)
            .outfile(self.outfile)
            .whitelist(self.whitelist)
            .blacklist(self.blacklist)
            .range_check(self.range_check)
            .serde_json(self.serde_json)
        )
        if self.header is HeaderMode.NONE:
            builder.header(None)
        elif self.header is HeaderMode.CUSTOM and self.header_file is not None:
            builder.header_file(self.header_file)
        return builder


# ============================================================================
# Field accessors with runtime type checking
# ============================================================================

def _is_str_dict(val: object) -> TypeGuard[dict[str, object]]:
    return isinstance(val, dict)


def _get_str(d: dict[str, object], key: str, default: str | None = None) -> str:
    """Extract a string field, required when *default* is None."""
    val = d.get(key, default)
    if not isinstance(val, str):
        raise ValueError(f"Config: missing or invalid '{key}' (expected string)")
    return val


def _get_bool(d: dict[str, object], key: str, default: bool) -> bool:
    val = d.get(key, default)
    if not isinstance(val, bool):
        raise ValueError(f"Config: invalid '{key}' (expected boolean)")
    return val


def _get_ids(d: dict[str, object], key: str) -> frozenset[int]:
    val = d.get(key, [])
    if not isinstance(val, list) or not all(
        isinstance(i, int) and not isinstance(i, bool) and i >= 0 for i in val
    ):
        raise ValueError(f"Config: invalid '{key}' (expected list of CAN ids)")
    return frozenset(val)


def _get_path(d: dict[str, object], key: str) -> Path | None:
    if d.get(key) is None:
        return None
    return Path(_get_str(d, key))


# ============================================================================
# Public API
# ============================================================================

def options_from_dict(raw: object) -> GeneratorOptions:
    """Validate a parsed configuration mapping.

    Raises:
        ValueError: Unknown key, missing ``infile`` or a wrongly typed value
    """
    if not _is_str_dict(raw):
        raise ValueError("Config: expected a YAML mapping")
    unknown = sorted(str(k) for k in raw if k not in _KNOWN_KEYS)
    if unknown:
        raise ValueError(f"Config: unknown key(s) {', '.join(unknown)}")

    header = _get_str(raw, "header", HeaderMode.DEFAULT.value)
    try:
        header_mode = HeaderMode(header)
    except ValueError:
        raise ValueError(
            f"Config: invalid 'header' {header!r} (expected default, custom or none)"
        ) from None

    header_file = _get_path(raw, "header_file")
    if header_mode is HeaderMode.CUSTOM and header_file is None:
        raise ValueError("Config: 'header: custom' requires 'header_file'")

    return GeneratorOptions(
        infile=Path(_get_str(raw, "infile")),
        outfile=_get_path(raw, "outfile"),
        uid=_get_str(raw, "uid", "dbc"),
        header=header_mode,
        header_file=header_file,
        range_check=_get_bool(raw, "range_check", True),
        serde_json=_get_bool(raw, "serde_json", True),
        whitelist=_get_ids(raw, "whitelist"),
        blacklist=_get_ids(raw, "blacklist"),
    )


def load_config(path: str | Path) -> GeneratorOptions:
    """Load generator options from a YAML file.

    Raises:
        FileNotFoundError: File does not exist
        ValueError: Invalid configuration
    """
    text = Path(path).read_text(encoding="utf-8")
    return options_from_dict(yaml.safe_load(text))


def save_config(path: str | Path, options: GeneratorOptions) -> None:
    """Write *options* as YAML."""
    text = yaml.safe_dump(dict(options.to_dict()), sort_keys=False)
    Path(path).write_text(text, encoding="utf-8")
