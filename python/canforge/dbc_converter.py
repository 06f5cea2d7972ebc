"""
Convert .dbc files into the canforge database model.

Uses cantools to parse .dbc files and maps its messages, signals and
choices onto the immutable model consumed by the code generator.
"""

from __future__ import annotations

import logging
from pathlib import Path

try:
    import cantools
except ImportError:
    raise ImportError(
        "cantools is required for DBC conversion. "
        "Install it with: pip install cantools"
    )

from .errors import ModelError
from .model import Database, Message, Signal, ValueDescription
from .protocols import ByteOrder, MultiplexRole, ValueType

log = logging.getLogger(__name__)


def _multiplex_role(signal: cantools.database.can.Signal) -> tuple[MultiplexRole, int | None]:
    """Role of a cantools signal and its selector value (first one if several)."""
    multiplex_ids = signal.multiplexer_ids
    selector = multiplex_ids[0] if multiplex_ids else None
    if signal.is_multiplexer:
        if selector is not None:
            return MultiplexRole.MULTIPLEXOR_AND_MULTIPLEXED, selector
        return MultiplexRole.MULTIPLEXOR, None
    if selector is not None:
        return MultiplexRole.MULTIPLEXED, selector
    return MultiplexRole.PLAIN, None


def signal_from_cantools(signal: cantools.database.can.Signal) -> Signal:
    """Convert a cantools Signal to the model."""
    if signal.is_float:
        log.warning("signal %s is an IEEE float; generated as raw integer", signal.name)

    role, selector = _multiplex_role(signal)
    byte_order = (
        ByteOrder.BIG_ENDIAN if signal.byte_order == "big_endian" else ByteOrder.LITTLE_ENDIAN
    )

    return Signal(
        name=signal.name,
        start_bit=signal.start,
        size=signal.length,
        byte_order=byte_order,
        value_type=ValueType.SIGNED if signal.is_signed else ValueType.UNSIGNED,
        factor=float(signal.scale),
        offset=float(signal.offset),
        # cantools uses None for an unspecified range
        minimum=float(signal.minimum) if signal.minimum is not None else 0.0,
        maximum=float(signal.maximum) if signal.maximum is not None else 0.0,
        unit=signal.unit if signal.unit else "",
        receivers=tuple(signal.receivers),
        multiplex=role,
        multiplex_value=selector,
        comment=signal.comment,
    )


def choices_from_cantools(signal: cantools.database.can.Signal) -> tuple[ValueDescription, ...]:
    """Value table of a cantools signal in declaration order."""
    if not signal.choices:
        return ()
    return tuple(
        ValueDescription(id=int(raw), description=getattr(v, "name", str(v)))
        for raw, v in signal.choices.items()
    )


def message_from_cantools(message: cantools.database.can.Message) -> Message:
    """Convert a cantools Message to the model."""
    return Message(
        id=message.frame_id,
        name=message.name,
        size=message.length,
        signals=tuple(signal_from_cantools(sig) for sig in message.signals),
        transmitter=message.senders[0] if message.senders else None,
        comment=message.comment,
    )


def database_from_cantools(db: cantools.database.can.Database) -> Database:
    """Convert a whole cantools Database to the model."""
    messages: list[Message] = []
    tables: dict[tuple[int, str], tuple[ValueDescription, ...]] = {}
    for message in db.messages:
        messages.append(message_from_cantools(message))
        for sig in message.signals:
            table = choices_from_cantools(sig)
            if table:
                tables[(message.frame_id, sig.name)] = table

    return Database(
        messages=tuple(messages),
        value_descriptions=tables,
        version=db.version if db.version else "",
    )


def load_dbc(dbc_path: str | Path) -> Database:
    """
    Load a .dbc file into the model.

    Args:
        dbc_path: Path to the .dbc file

    Returns:
        Database ready for code generation

    Raises:
        FileNotFoundError: File does not exist
        ModelError: File is not a readable CAN database
    """
    path = Path(dbc_path)
    if not path.is_file():
        raise FileNotFoundError(f"input file does not exist: {path}")

    log.info("reading definitions from %s", path)
    try:
        db = cantools.database.load_file(str(path), strict=False)
    except (cantools.database.UnsupportedDatabaseFormatError, UnicodeDecodeError) as e:
        raise ModelError(f"{path}: cannot parse CAN database ({e})") from e

    if not isinstance(db, cantools.database.can.Database):
        raise ModelError(f"{path}: not a CAN database")
    return database_from_cantools(db)


def load_dbc_string(text: str) -> Database:
    """Parse DBC source text into the model.

    Raises:
        ModelError: Text is not a valid DBC database
    """
    try:
        db = cantools.database.load_string(text, database_format="dbc", strict=False)
    except cantools.database.UnsupportedDatabaseFormatError as e:
        raise ModelError(f"cannot parse CAN database ({e})") from e
    return database_from_cantools(db)
