"""Excel loader for CAN database definitions

Loads message and signal tables from Excel workbooks (.xlsx) into the
same model the DBC front end produces, so a database can be maintained in
a spreadsheet and still go through the code generator.

Usage:
    from canforge.excel_loader import load_dbc_from_excel, create_template

    # Create a blank template
    create_template("template.xlsx")

    # Load it back once filled in
    db = load_dbc_from_excel("my_dbc.xlsx")
    DbcParser("my-car").database(db).outfile("my_dbc.py").generate()

Excel Template Layout
=====================

The workbook has two sheets:

**DBC** — one row per signal::

    Message ID | Message Name | DLC | Signal | Start Bit | Length |
    Byte Order | Signed | Factor | Offset | Min | Max | Unit |
    Multiplexor | Multiplex Value

Multiplexor and Multiplex Value are optional. If both are filled in, the
signal is only present when the named multiplexor signal carries that
value; the named signal becomes the message multiplexor.

**Values** — one row per value description (optional sheet)::

    Message ID | Signal | Value | Description
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, replace
from pathlib import Path
from typing import TypeAlias, TypeGuard

import openpyxl
from openpyxl.styles import Font
from openpyxl.workbook import Workbook
from openpyxl.worksheet.worksheet import Worksheet

from .model import Database, Message, Signal, ValueDescription
from .protocols import ByteOrder, MultiplexRole, ValueType

# Excel cell values: str, numbers, booleans, or None (empty)
CellValue: TypeAlias = str | int | float | bool | None

# A row of cell values as returned by openpyxl iter_rows(values_only=True)
ExcelRow: TypeAlias = tuple[CellValue, ...]


@dataclass(frozen=True)
class _MessageKey:
    """Grouping key for DBC message rows."""

    msg_id: int
    name: str
    dlc: int


@dataclass(frozen=True)
class _SignalRow:
    """A parsed signal row before multiplex roles are known."""

    signal: Signal
    multiplexor: str | None
    row_num: int


# ============================================================================
# Sheet headers
# ============================================================================

_DBC_HEADERS = [
    "Message ID", "Message Name", "DLC", "Signal", "Start Bit", "Length",
    "Byte Order", "Signed", "Factor", "Offset", "Min", "Max", "Unit",
    "Multiplexor", "Multiplex Value",
]

_VALUES_HEADERS = [
    "Message ID", "Signal", "Value", "Description",
]


# ============================================================================
# Type guards and field accessors
# ============================================================================

def _is_str(val: object) -> TypeGuard[str]:
    return isinstance(val, str)


def _is_number(val: object) -> TypeGuard[int | float]:
    return isinstance(val, (int, float)) and not isinstance(val, bool)


def _get_str(d: dict[str, object], key: str, row_num: int) -> str:
    """Extract a required string field, with row-number error context."""
    val = d.get(key)
    if not _is_str(val):
        raise ValueError(f"Row {row_num}: missing or invalid '{key}' (expected string)")
    return val


def _get_number(d: dict[str, object], key: str, row_num: int) -> float:
    """Extract a required numeric field, with row-number error context."""
    val = d.get(key)
    if _is_number(val):
        return float(val)
    raise ValueError(f"Row {row_num}: missing or invalid '{key}' (expected number)")


def _get_int(d: dict[str, object], key: str, row_num: int) -> int:
    """Extract a required integer field, with row-number error context."""
    val = d.get(key)
    if isinstance(val, int) and not isinstance(val, bool):
        return val
    # openpyxl reads whole numbers typed into General cells as float
    if isinstance(val, float) and val.is_integer():
        return int(val)
    raise ValueError(f"Row {row_num}: missing or invalid '{key}' (expected integer)")


def _get_bool(d: dict[str, object], key: str, row_num: int) -> bool:
    """Extract a required boolean field, with row-number error context."""
    val = d.get(key)
    if isinstance(val, bool):
        return val
    # Accept string "TRUE"/"FALSE" (Excel sometimes stores booleans as text)
    if _is_str(val):
        upper = val.upper()
        if upper == "TRUE":
            return True
        if upper == "FALSE":
            return False
    raise ValueError(f"Row {row_num}: missing or invalid '{key}' (expected TRUE/FALSE)")


# ============================================================================
# Row helpers
# ============================================================================

def _row_to_dict(headers: list[str], row: ExcelRow) -> dict[str, object]:
    """Zip headers with cell values, skipping None values."""
    return {h: v for h, v in zip(headers, row, strict=False) if v is not None}


def _headers_from_row(row: ExcelRow) -> list[str]:
    """Extract header strings from the first row of a sheet."""
    return [str(c) if c is not None else "" for c in row]


def _parse_message_id(val: object, row_num: int) -> int:
    """Parse a message ID from an int or hex-string cell value."""
    if isinstance(val, int) and not isinstance(val, bool):
        return val
    if isinstance(val, float) and val.is_integer():
        return int(val)
    if _is_str(val):
        stripped = val.strip()
        try:
            if stripped.lower().startswith("0x"):
                return int(stripped, 16)
            return int(stripped)
        except ValueError:
            pass
    raise ValueError(
        f"Row {row_num}: invalid 'Message ID' — expected integer or hex string (e.g. 0x100)"
    )


def _sheet_rows(ws: Worksheet) -> list[tuple[int, dict[str, object]]]:
    """Non-empty data rows of a sheet with their 1-indexed row numbers."""
    rows: list[ExcelRow] = list(ws.iter_rows(values_only=True))
    if not rows:
        return []

    headers = _headers_from_row(rows[0])
    result: list[tuple[int, dict[str, object]]] = []
    for row_num, row in enumerate(rows[1:], start=2):
        d = _row_to_dict(headers, row)
        if d:
            result.append((row_num, d))
    return result


# ============================================================================
# Public API
# ============================================================================

def load_dbc_from_excel(
    path: str | Path,
    *,
    sheet: str = "DBC",
    values_sheet: str = "Values",
) -> Database:
    """Load a CAN database from an Excel workbook.

    Args:
        path: Path to a .xlsx workbook
        sheet: Name of the signal sheet
        values_sheet: Name of the optional value-description sheet

    Returns:
        Database ready for code generation

    Raises:
        FileNotFoundError: File doesn't exist
        ValueError: Invalid or missing data
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Excel file not found: {path}")

    wb = openpyxl.load_workbook(p, read_only=True, data_only=True)
    try:
        if sheet not in wb.sheetnames:
            raise ValueError(f"Workbook has no '{sheet}' sheet")

        data_rows = _sheet_rows(wb[sheet])
        if not data_rows:
            raise ValueError("DBC sheet has no data rows")

        messages = _parse_dbc_rows(data_rows)

        tables: dict[tuple[int, str], tuple[ValueDescription, ...]] = {}
        if values_sheet in wb.sheetnames:
            tables = _parse_value_rows(_sheet_rows(wb[values_sheet]))

        return Database(messages=tuple(messages), value_descriptions=tables)
    finally:
        wb.close()


def create_template(path: str | Path) -> None:
    """Create a blank Excel template with headers in bold.

    Writes a .xlsx file with the DBC and Values sheets. Does not overwrite
    existing files.

    Args:
        path: Output path for the .xlsx file

    Raises:
        FileExistsError: File already exists
    """
    p = Path(path)
    if p.exists():
        raise FileExistsError(f"File already exists: {path}")

    wb = Workbook()

    # DBC sheet (rename the default sheet)
    ws_dbc = wb.active
    assert ws_dbc is not None
    ws_dbc.title = "DBC"
    _write_header_row(ws_dbc, _DBC_HEADERS)

    ws_values = wb.create_sheet("Values")
    _write_header_row(ws_values, _VALUES_HEADERS)

    wb.save(str(p))


# ============================================================================
# Internal: sheet writers
# ============================================================================

def _write_header_row(ws: Worksheet, headers: list[str]) -> None:
    """Write bold header row to a worksheet."""
    bold = Font(bold=True)
    for col_idx, header in enumerate(headers, start=1):
        cell = ws.cell(row=1, column=col_idx, value=header)
        cell.font = bold


# ============================================================================
# Internal: DBC parser
# ============================================================================

def _parse_dbc_signal(row: dict[str, object], row_num: int) -> _SignalRow:
    """Parse a single DBC signal row."""
    byte_order = _get_str(row, "Byte Order", row_num)
    if byte_order not in ("little_endian", "big_endian"):
        raise ValueError(
            f"Row {row_num}: 'Byte Order' must be 'little_endian' or 'big_endian'"
        )

    unit = row.get("Unit")
    unit_str = str(unit) if _is_str(unit) else ""

    has_muxor = "Multiplexor" in row
    has_mux_val = "Multiplex Value" in row

    if has_muxor != has_mux_val:
        msg = "must both be provided or both be empty"
        raise ValueError(
            f"Row {row_num}: 'Multiplexor' and 'Multiplex Value' {msg}"
        )

    signed = _get_bool(row, "Signed", row_num)
    signal = Signal(
        name=_get_str(row, "Signal", row_num),
        start_bit=_get_int(row, "Start Bit", row_num),
        size=_get_int(row, "Length", row_num),
        byte_order=ByteOrder(byte_order),
        value_type=ValueType.SIGNED if signed else ValueType.UNSIGNED,
        factor=_get_number(row, "Factor", row_num),
        offset=_get_number(row, "Offset", row_num),
        minimum=_get_number(row, "Min", row_num),
        maximum=_get_number(row, "Max", row_num),
        unit=unit_str,
        multiplex=MultiplexRole.MULTIPLEXED if has_muxor else MultiplexRole.PLAIN,
        multiplex_value=_get_int(row, "Multiplex Value", row_num) if has_mux_val else None,
    )
    multiplexor = _get_str(row, "Multiplexor", row_num) if has_muxor else None
    return _SignalRow(signal=signal, multiplexor=multiplexor, row_num=row_num)


def _assign_roles(key: _MessageKey, rows: list[_SignalRow]) -> tuple[Signal, ...]:
    """Turn the signals named in the Multiplexor column into multiplexors."""
    names = {r.signal.name for r in rows}
    selectors = {r.multiplexor for r in rows if r.multiplexor is not None}

    for r in rows:
        if r.multiplexor is not None and r.multiplexor not in names:
            raise ValueError(
                f"Row {r.row_num}: multiplexor '{r.multiplexor}' is not a signal "
                f"of message '{key.name}'"
            )

    signals: list[Signal] = []
    for r in rows:
        sig = r.signal
        if sig.name in selectors:
            role = (
                MultiplexRole.MULTIPLEXOR_AND_MULTIPLEXED
                if sig.multiplex is MultiplexRole.MULTIPLEXED
                else MultiplexRole.MULTIPLEXOR
            )
            sig = replace(sig, multiplex=role)
        signals.append(sig)
    return tuple(signals)


def _parse_dbc_rows(rows: list[tuple[int, dict[str, object]]]) -> list[Message]:
    """Group DBC rows by message and build the messages."""
    groups: dict[_MessageKey, list[_SignalRow]] = defaultdict(list)
    insertion_order: list[_MessageKey] = []

    for row_num, row in rows:
        key = _MessageKey(
            msg_id=_parse_message_id(row.get("Message ID"), row_num),
            name=_get_str(row, "Message Name", row_num),
            dlc=_get_int(row, "DLC", row_num),
        )
        if key not in groups:
            insertion_order.append(key)
        groups[key].append(_parse_dbc_signal(row, row_num))

    return [
        Message(
            id=key.msg_id,
            name=key.name,
            size=key.dlc,
            signals=_assign_roles(key, groups[key]),
        )
        for key in insertion_order
    ]


def _parse_value_rows(
    rows: list[tuple[int, dict[str, object]]],
) -> dict[tuple[int, str], tuple[ValueDescription, ...]]:
    """Group Values rows by (message id, signal) in sheet order."""
    tables: dict[tuple[int, str], list[ValueDescription]] = defaultdict(list)
    for row_num, row in rows:
        msg_id = _parse_message_id(row.get("Message ID"), row_num)
        signal = _get_str(row, "Signal", row_num)
        description = row.get("Description")
        if description is None:
            raise ValueError(f"Row {row_num}: missing 'Description'")
        tables[(msg_id, signal)].append(ValueDescription(
            id=_get_int(row, "Value", row_num),
            description=str(description),
        ))
    return {key: tuple(values) for key, values in tables.items()}
