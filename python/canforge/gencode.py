"""Render a CAN database into one importable Python module

The generated module contains, per message, a namespace class holding:

- one ``enum.Enum`` per signal with value descriptions
- one ``rt.CanDbcSignal`` subclass per signal (MIN/MAX, decode, encode)
- ``DbcMessage``, the ``rt.CanDbcMessage`` aggregate with ``set_values``
  and multiplex-aware ``update_signals``

followed by a ``DbcMessages`` ID enum and the ``CanMsgPool`` registry.

Example:
    from canforge.gencode import DbcParser

    source = (
        DbcParser("my-car")
        .dbcfile("car.dbc")
        .outfile("car_dbc.py")
        .whitelist([0x101, 0x102])
        .generate()
    )
"""

from __future__ import annotations

import contextlib
import logging
import os
import stat
import tempfile
import time
from collections.abc import Iterable
from pathlib import Path

from . import naming
from .codec import BOOL, SignalCodec, build_codec, render_literal
from .errors import ModelError
from .model import Database, Message, Signal
from .multiplex import MultiplexPlan, resolve_multiplex
from .pool import MessagePool, assemble_pool
from .protocols import ByteOrder, HeaderMode, MessageSummary, SignalSummary
from .value_tables import (
    ValueTable,
    build_value_table,
    enum_lines,
    get_as_def_lines,
    set_as_def_lines,
)

log = logging.getLogger(__name__)

DEFAULT_HEADER = """\
# <- DBC file Python mapping ->
# -----------------------------------------------------------------------------
# Generated by canforge. Do not edit by hand, regenerate from the database.
# Every message is a namespace class; CanMsgPool dispatches received frames.
# -----------------------------------------------------------------------------
"""

TIME_FORMAT = "%c"

_INDENT = "    "


# ============================================================================
# Templates
# ============================================================================

MODULE_FMT = '''\
{header}\
# - code generated from {infile} ({gen_time})

"""CAN message accessors generated from {dbc_name}"""

from __future__ import annotations

import enum
{json_import}\
from canforge import runtime as rt

UID = {uid}


{messages}\
{messages_enum}


{pool}\
'''

MESSAGE_FMT = '''\
class {type_name}:
    """{doc}"""

{body}\


'''

SIGNAL_FMT = '''\
class {type_name}(rt.CanDbcSignal):
    """{doc}"""

    NAME = {name}
    DATA_TYPE = "{data_type}"
    MIN = {minimum}
    MAX = {maximum}

    def decode(self, data: bytes | bytearray) -> tuple[int, {py_type}]:
{decode}

    def set_typed_value(self, value: {py_type}, data: bytearray) -> None:
{encode}
{extras}\
'''

VALUE_TABLE_FMT = '''
    def get_as_def(self) -> {def_type}:
{get_body}

    def set_as_def(self, signal_def: {def_type}, data: bytearray) -> None:
{set_body}
'''

TO_JSON_FMT = '''
    def to_json(self) -> str:
        return json.dumps({
            "name": self.NAME,
            "value": self.value,
            "stamp": self.stamp,
            "status": self.status.value,
        })
'''

DBC_MESSAGE_FMT = '''\
class DbcMessage(rt.CanDbcMessage):
    ID = {id}
    NAME = {name}
    SIZE = {size}

    def __init__(self) -> None:
        super().__init__({signal_classes})

    def set_values(self, {params}frame: bytearray) -> bytearray:
{set_body}
        return frame

    def update_signals(self, frame: rt.CanMsgData) -> None:
{update_body}
'''

MESSAGES_ENUM_FMT = '''\
class DbcMessages(enum.Enum):
    """CAN IDs of all generated messages"""
{members}'''

POOL_FMT = '''\
class CanMsgPool(rt.CanDbcPool):
    """Registry of all generated messages, sorted by CAN ID"""

    IDS = {ids}

    def __init__(self, uid: str = UID) -> None:
        super().__init__(uid, {message_classes})
'''

_PY_TYPES = {"bool": "bool", "f64": "float"}


# ============================================================================
# Helpers
# ============================================================================

def _indent(lines: Iterable[str], depth: int) -> str:
    pad = _INDENT * depth
    return "\n".join(pad + line if line else "" for line in lines)


def _indent_block(text: str, depth: int) -> str:
    return _indent(text.splitlines(), depth)


def _docstring(text: str) -> str:
    """Make *text* safe inside a one-line triple-quoted docstring."""
    flat = " ".join(text.split())
    return flat.replace("\\", "\\\\").replace('"', '\\"')


def _string(text: str) -> str:
    return repr(text)


def _tuple_literal(items: list[str], depth: int) -> str:
    """Tuple expression, one item per line."""
    if not items:
        return "()"
    pad = _INDENT * (depth + 1)
    inner = "".join(f"{pad}{item},\n" for item in items)
    return f"(\n{inner}{_INDENT * depth})"


def _hex_tuple(ids: Iterable[int]) -> str:
    items = [f"0x{i:X}" for i in ids]
    if len(items) == 1:
        return f"({items[0]},)"
    return f"({', '.join(items)})"


def py_type(codec: SignalCodec) -> str:
    return _PY_TYPES.get(codec.data_type.name, "int")


def _header_text(mode: HeaderMode, custom: str | None) -> str:
    if mode is HeaderMode.NONE:
        return ""
    if mode is HeaderMode.DEFAULT or custom is None:
        return DEFAULT_HEADER
    lines = [
        line if line.startswith("#") else f"# {line}".rstrip()
        for line in custom.splitlines()
    ]
    if not lines:
        return ""
    return "\n".join(lines) + "\n"


def _target_mode(path: Path) -> int:
    """Mode of the file being replaced, else the umask default for new files."""
    try:
        return stat.S_IMODE(path.stat().st_mode)
    except FileNotFoundError:
        umask = os.umask(0)
        os.umask(umask)
        return 0o666 & ~umask


def write_atomic(path: Path, text: str) -> None:
    """Replace *path* with *text* only once the whole text is on disk.

    Raises:
        OSError: Destination not writable
    """
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
            f.write(text)
        os.chmod(tmp, _target_mode(path))
        os.replace(tmp, path)
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(tmp)
        raise


# ============================================================================
# Message rendering
# ============================================================================

class _MessageEmitter:
    """Renders the namespace class of one message."""

    def __init__(self, msg: Message, db: Database, range_check: bool, serde_json: bool) -> None:
        self.msg = msg
        self.db = db
        self.serde_json = serde_json
        self.type_name = naming.type_name(msg.name)
        self.plan: MultiplexPlan = resolve_multiplex(msg)
        self.codecs: dict[str, SignalCodec] = {}
        self.tables: dict[str, ValueTable | None] = {}
        self.classes: dict[str, str] = {}
        self.fields: dict[str, str] = {}

        for sig in msg.signals:
            codec = build_codec(sig, msg, range_check)
            self.codecs[sig.name] = codec
            self.tables[sig.name] = build_value_table(
                codec, db.value_descriptions_for_signal(msg.id, sig.name),
            )
            self.classes[sig.name] = naming.type_name(sig.name)
            self.fields[sig.name] = naming.field_name(sig.name)
        self._check_collisions()

    def _check_collisions(self) -> None:
        seen: dict[str, str] = {}
        for sig in self.msg.signals:
            idents = [self.classes[sig.name]]
            table = self.tables[sig.name]
            if table is not None:
                idents.append(table.type_name)
            for ident in idents:
                if ident in seen:
                    raise ModelError(
                        f"message:{self.msg.name} signals {seen[ident]} and {sig.name} "
                        f"both map to identifier {ident}"
                    )
                seen[ident] = sig.name

        params: dict[str, str] = {}
        for sig in self.msg.signals:
            field = self.fields[sig.name]
            if field in params:
                raise ModelError(
                    f"message:{self.msg.name} signals {params[field]} and {sig.name} "
                    f"both map to argument {field}"
                )
            params[field] = sig.name

    def _index(self, sig: Signal) -> int:
        for idx, candidate in enumerate(self.msg.signals):
            if candidate is sig:
                return idx
        raise ModelError(f"message:{self.msg.name} has no signal {sig.name}")

    def render(self) -> str:
        blocks: list[str] = []
        for sig in self.msg.signals:
            table = self.tables[sig.name]
            if table is not None:
                blocks.append("\n".join(enum_lines(table)) + "\n")
            blocks.append(self._render_signal(sig))
        blocks.append(self._render_message())

        body = "\n".join(_indent_block(block, 1) + "\n" for block in blocks)
        doc = f"{self.msg.name} (id 0x{self.msg.id:X}, {self.msg.size} bytes"
        if self.msg.transmitter:
            doc += f", sender {self.msg.transmitter}"
        doc += ")"
        if self.msg.comment:
            doc += f" {self.msg.comment}"
        return MESSAGE_FMT.format(
            type_name=self.type_name,
            doc=_docstring(doc),
            body=body,
        )

    def _render_signal(self, sig: Signal) -> str:
        codec = self.codecs[sig.name]
        table = self.tables[sig.name]
        order = "big endian" if sig.byte_order is ByteOrder.BIG_ENDIAN else "little endian"
        doc = f"{sig.name} bits [{codec.start}, {codec.end}) {order}, {codec.data_type.name}"
        if sig.unit:
            doc += f", unit {sig.unit}"
        if sig.comment:
            doc += f". {sig.comment}"

        extras = ""
        if table is not None:
            enum_ref = f"{self.type_name}.{table.type_name}"
            def_type = f"{enum_ref} | rt.Other" if table.has_fallback else enum_ref
            extras += VALUE_TABLE_FMT.format(
                def_type=def_type,
                get_body=_indent(get_as_def_lines(table, self.type_name), 2),
                set_body=_indent(set_as_def_lines(table, codec), 2),
            )
        if self.serde_json:
            extras += TO_JSON_FMT

        return SIGNAL_FMT.format(
            type_name=self.classes[sig.name],
            doc=_docstring(doc),
            name=_string(sig.name),
            data_type=codec.data_type.name,
            minimum=render_literal(codec.min_literal),
            maximum=render_literal(codec.max_literal),
            py_type=py_type(codec),
            decode=_indent(codec.decode_lines(), 2),
            encode=_indent(codec.encode_lines(), 2),
            extras=extras,
        )

    def _mux_raw_from_value(self, mux: Signal) -> str:
        codec = self.codecs[mux.name]
        raw = f"int({self.fields[mux.name]}) & 0x{codec.mask:X}"
        if mux.is_signed and codec.data_type is not BOOL:
            return f"rt.sign_extend({raw}, {mux.size}, {codec.raw_type.bits})"
        return raw

    def _set_values_lines(self) -> list[str]:
        lines: list[str] = []
        plan = self.plan
        if plan.multiplexor is not None:
            mux = plan.multiplexor
            lines.append(f"self._set_signal({self._index(mux)}, {self.fields[mux.name]}, frame)")
            lines.append(f"_mux_raw = {self._mux_raw_from_value(mux)}")
        for sig in plan.always:
            lines.append(f"self._set_signal({self._index(sig)}, {self.fields[sig.name]}, frame)")
        for value, sig in plan.conditional:
            lines.append(f"if _mux_raw == {value}:")
            lines.append(
                f"    self._set_signal({self._index(sig)}, {self.fields[sig.name]}, frame)"
            )
        return lines

    def _update_lines(self) -> list[str]:
        lines: list[str] = []
        plan = self.plan
        if plan.multiplexor is not None:
            mux = plan.multiplexor
            lines.append(f"self._update_signal({self._index(mux)}, frame)")
            lines.append(f"_mux_raw = {self.codecs[mux.name].raw_expr('frame.data')}")
        for sig in plan.always:
            lines.append(f"self._update_signal({self._index(sig)}, frame)")
        for value, sig in plan.conditional:
            idx = self._index(sig)
            lines += [
                f"if _mux_raw == {value}:",
                f"    self._update_signal({idx}, frame)",
                "else:",
                f"    self._reset_signal({idx})",
            ]
        return lines or ["pass"]

    def _render_message(self) -> str:
        params = "".join(
            f"{self.fields[sig.name]}: {py_type(self.codecs[sig.name])}, "
            for sig in self.msg.signals
        )
        signal_classes = [f"{self.type_name}.{self.classes[s.name]}" for s in self.msg.signals]
        return DBC_MESSAGE_FMT.format(
            id=f"0x{self.msg.id:X}",
            name=_string(self.msg.name),
            size=self.msg.size,
            signal_classes=_tuple_literal(signal_classes, 2),
            params=params,
            set_body=_indent(self._set_values_lines(), 2),
            update_body=_indent(self._update_lines(), 2),
        )


# ============================================================================
# Module rendering
# ============================================================================

def render_module(
    db: Database,
    pool: MessagePool,
    *,
    uid: str,
    infile: str,
    header_mode: HeaderMode = HeaderMode.DEFAULT,
    header_text: str | None = None,
    range_check: bool = True,
    serde_json: bool = True,
    gen_time: str | None = None,
) -> str:
    """Render the complete generated module for *pool*.

    Raises:
        LayoutError: A signal does not fit its message
        MultiplexError: Unsupported multiplexing
        ModelError: Identifier collisions or malformed values
    """
    names: dict[str, str] = {}
    rendered: list[str] = []
    for msg in pool.messages:
        emitter = _MessageEmitter(msg, db, range_check, serde_json)
        if emitter.type_name in names:
            raise ModelError(
                f"messages {names[emitter.type_name]} and {msg.name} "
                f"both map to identifier {emitter.type_name}"
            )
        names[emitter.type_name] = msg.name
        log.debug(
            "rendering message %s (0x%X, %d signals%s)", msg.name, msg.id, len(msg.signals),
            ", multiplexed" if emitter.plan.is_multiplexed else "",
        )
        rendered.append(emitter.render())

    members = "".join(
        f"\n    {naming.type_name(msg.name)} = 0x{msg.id:X}" for msg in pool.messages
    )
    message_classes = [f"{naming.type_name(msg.name)}.DbcMessage" for msg in pool.messages]

    return MODULE_FMT.format(
        header=_header_text(header_mode, header_text),
        infile=infile,
        gen_time=gen_time if gen_time is not None else time.strftime(TIME_FORMAT),
        dbc_name=_docstring(Path(infile).name),
        json_import="import json\n" if serde_json else "",
        uid=_string(uid),
        messages="".join(rendered),
        messages_enum=MESSAGES_ENUM_FMT.format(members=members),
        pool=POOL_FMT.format(
            ids=_hex_tuple(pool.ids),
            message_classes=_tuple_literal(message_classes, 2),
        ),
    )


# ============================================================================
# Builder
# ============================================================================

class DbcParser:
    """Builder for one generation run; every setter returns ``self``."""

    def __init__(self, uid: str) -> None:
        self._uid = uid
        self._dbcfile: Path | None = None
        self._database: Database | None = None
        self._outfile: Path | None = None
        self._header_mode = HeaderMode.DEFAULT
        self._header_text: str | None = None
        self._whitelist: frozenset[int] = frozenset()
        self._blacklist: frozenset[int] = frozenset()
        self._range_check = True
        self._serde_json = True
        self._gen_time: str | None = None

    def dbcfile(self, path: str | Path) -> DbcParser:
        self._dbcfile = Path(path)
        return self

    def database(self, db: Database) -> DbcParser:
        """Use an already loaded model instead of reading ``dbcfile``."""
        self._database = db
        return self

    def outfile(self, path: str | Path | None) -> DbcParser:
        self._outfile = Path(path) if path is not None else None
        return self

    def header(self, text: str | None) -> DbcParser:
        """Custom header text, or None to omit the header block."""
        if text is None:
            self._header_mode = HeaderMode.NONE
        else:
            self._header_mode = HeaderMode.CUSTOM
        self._header_text = text
        return self

    def header_file(self, path: str | Path) -> DbcParser:
        return self.header(Path(path).read_text(encoding="utf-8"))

    def whitelist(self, ids: Iterable[int]) -> DbcParser:
        self._whitelist = frozenset(ids)
        return self

    def blacklist(self, ids: Iterable[int]) -> DbcParser:
        self._blacklist = frozenset(ids)
        return self

    def range_check(self, enabled: bool) -> DbcParser:
        self._range_check = enabled
        return self

    def serde_json(self, enabled: bool) -> DbcParser:
        self._serde_json = enabled
        return self

    def gen_time(self, text: str) -> DbcParser:
        """Fix the banner timestamp (defaults to the current local time)."""
        self._gen_time = text
        return self

    def _load(self) -> Database:
        if self._database is not None:
            return self._database
        if self._dbcfile is None:
            raise ModelError("no database: call dbcfile() or database() first")
        from .dbc_converter import load_dbc
        return load_dbc(self._dbcfile)

    def render(self) -> str:
        """Render the module source without writing anything."""
        db = self._load()
        pool = assemble_pool(db.messages, self._whitelist, self._blacklist)
        infile = str(self._dbcfile) if self._dbcfile is not None else "<database>"
        log.info("generating %d of %d messages from %s", len(pool), len(db.messages), infile)
        return render_module(
            db,
            pool,
            uid=self._uid,
            infile=infile,
            header_mode=self._header_mode,
            header_text=self._header_text,
            range_check=self._range_check,
            serde_json=self._serde_json,
            gen_time=self._gen_time,
        )

    def generate(self) -> str:
        """Render the module and, when ``outfile`` is set, write it atomically.

        Returns:
            The generated source text

        Raises:
            CanforgeError: Invalid database or options
            OSError: Output could not be written
        """
        source = self.render()
        if self._outfile is not None:
            write_atomic(self._outfile, source)
            log.info("wrote %s", self._outfile)
        return source


# ============================================================================
# Summaries
# ============================================================================

def summarize_message(msg: Message, db: Database) -> MessageSummary:
    """Resolved layout and types of every signal in *msg*."""
    resolve_multiplex(msg)
    signals: list[SignalSummary] = []
    for sig in msg.signals:
        codec = build_codec(sig, msg, range_check=False)
        summary: SignalSummary = {
            "name": sig.name,
            "startBit": sig.start_bit,
            "length": sig.size,
            "byteOrder": sig.byte_order.value,
            "signed": sig.is_signed,
            "factor": sig.factor,
            "offset": sig.offset,
            "minimum": sig.minimum,
            "maximum": sig.maximum,
            "unit": sig.unit,
            "dataType": codec.data_type.name,
            "bitRange": [codec.start, codec.end],
            "multiplex": sig.multiplex.value,
        }
        if sig.multiplex_value is not None:
            summary["multiplexValue"] = sig.multiplex_value
        table = db.value_descriptions_for_signal(msg.id, sig.name)
        if table:
            summary["choices"] = {str(v.id): v.description for v in table}
        signals.append(summary)

    return {
        "id": msg.id,
        "name": msg.name,
        "dlc": msg.size,
        "sender": msg.transmitter or "",
        "signals": signals,
    }


__all__ = [
    "DEFAULT_HEADER",
    "DbcParser",
    "render_module",
    "summarize_message",
    "write_atomic",
]
