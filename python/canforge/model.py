"""In-memory CAN database model consumed by the code generator

The model is produced once per run by a front end (``dbc_converter`` or
``excel_loader``) and never mutated afterwards.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

from .protocols import ByteOrder, MultiplexRole, ValueType


@dataclass(frozen=True)
class ValueDescription:
    """One entry of a signal value table (``VAL_``)."""

    id: int
    description: str


@dataclass(frozen=True)
class Signal:
    """One named bit field of a message."""

    name: str
    start_bit: int
    size: int
    byte_order: ByteOrder = ByteOrder.LITTLE_ENDIAN
    value_type: ValueType = ValueType.UNSIGNED
    factor: float = 1.0
    offset: float = 0.0
    minimum: float = 0.0
    maximum: float = 0.0
    unit: str = ""
    receivers: tuple[str, ...] = ()
    multiplex: MultiplexRole = MultiplexRole.PLAIN
    multiplex_value: int | None = None
    comment: str | None = None

    @property
    def is_signed(self) -> bool:
        return self.value_type is ValueType.SIGNED


@dataclass(frozen=True)
class Message:
    """One CAN frame definition."""

    id: int
    name: str
    size: int
    signals: tuple[Signal, ...] = ()
    transmitter: str | None = None
    comment: str | None = None

    @property
    def bits(self) -> int:
        return self.size * 8


@dataclass(frozen=True)
class Database:
    """A whole CAN database: messages plus value tables.

    ``value_descriptions`` is keyed by ``(message id, signal name)``.
    """

    messages: tuple[Message, ...] = ()
    value_descriptions: Mapping[tuple[int, str], tuple[ValueDescription, ...]] = field(
        default_factory=dict
    )
    version: str = ""

    def value_descriptions_for_signal(
        self, message_id: int, signal_name: str,
    ) -> tuple[ValueDescription, ...] | None:
        """Value table of one signal, or None when it has none."""
        table = self.value_descriptions.get((message_id, signal_name))
        if not table:
            return None
        return table
