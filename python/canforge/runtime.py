"""Runtime contract for generated CAN message modules

Generated modules contain only the layout-specific parts (bit ranges,
scaling, value tables, multiplex gating) and import everything else from
here:

- CanMsgData: one received frame, convertible from a python-can Message
- SharedCell: shared holder with a fail-fast exclusive borrow
- CanDbcSignal / CanDbcMessage / CanDbcPool: base classes of generated code
- load_le / load_be / store_le / store_be: bit access in the linear bit
  spaces used by the generator (LSB-first and MSB-first)

Example:
    import can
    from mydbc import CanMsgPool
    from canforge.runtime import CanMsgData

    pool = CanMsgPool()
    for msg in can.LogReader("drive.asc"):
        message = pool.update(CanMsgData.from_message(msg))
        print(message.get_name(), [str(s) for s in message.iter_signals()])
"""

from __future__ import annotations

import abc
from bisect import bisect_left
from collections.abc import Iterator, Sequence
from contextlib import AbstractContextManager, contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Generic, Protocol, TypeVar

import can

T = TypeVar("T")

SignalValue = bool | int | float

U64_MASK = (1 << 64) - 1
I64_MIN = -(1 << 63)
I64_MAX = (1 << 63) - 1

_INT_RANGES: dict[str, tuple[int, int]] = {
    "u8": (0, (1 << 8) - 1),
    "u16": (0, (1 << 16) - 1),
    "u32": (0, (1 << 32) - 1),
    "u64": (0, U64_MASK),
    "i8": (-(1 << 7), (1 << 7) - 1),
    "i16": (-(1 << 15), (1 << 15) - 1),
    "i32": (-(1 << 31), (1 << 31) - 1),
    "i64": (I64_MIN, I64_MAX),
}


# ============================================================================
# Errors and status codes
# ============================================================================

class CanError(Exception):
    """Runtime error raised by generated code.

    Attributes:
        uid: Short machine-readable error tag (e.g. "invalid-signal-value")
        info: Human-readable details
    """

    def __init__(self, uid: str, info: str) -> None:
        super().__init__(f"{uid}: {info}")
        self.uid = uid
        self.info = info


class CanDataStatus(str, Enum):
    """State of a decoded signal value"""
    UNSET = "unset"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    TIMEOUT = "timeout"
    ERROR = "error"


class CanBcmOpCode(str, Enum):
    """Reason a frame was delivered"""
    UNKNOWN = "unknown"
    RX_CHANGED = "rx_changed"
    RX_TIMEOUT = "rx_timeout"
    RX_ERROR = "rx_error"


@dataclass(frozen=True)
class CanMsgData:
    """One received CAN frame.

    Attributes:
        canid: Arbitration ID
        stamp: Reception time in microseconds
        opcode: Why the frame was delivered
        data: Frame payload
    """

    canid: int
    stamp: int
    opcode: CanBcmOpCode
    data: bytes

    @classmethod
    def from_message(
        cls,
        msg: can.Message,
        opcode: CanBcmOpCode = CanBcmOpCode.RX_CHANGED,
    ) -> CanMsgData:
        """Convert a python-can Message (error frames map to RX_ERROR)."""
        if msg.is_error_frame:
            opcode = CanBcmOpCode.RX_ERROR
        data = bytes(msg.data) if msg.data is not None else b""
        return cls(
            canid=msg.arbitration_id,
            stamp=int(msg.timestamp * 1_000_000),
            opcode=opcode,
            data=data,
        )


@dataclass(frozen=True)
class Other:
    """Fallback variant for raw values missing from a value table."""

    value: SignalValue


# ============================================================================
# Shared ownership
# ============================================================================

class SharedCell(Generic[T]):
    """Holder shared by the pool and any listener.

    ``borrow_mut()`` grants exclusive access for the duration of a ``with``
    block and raises CanError immediately if the value is already borrowed.
    """

    __slots__ = ("_value", "_borrowed")

    def __init__(self, value: T) -> None:
        self._value = value
        self._borrowed = False

    @property
    def borrowed(self) -> bool:
        return self._borrowed

    def borrow(self) -> T:
        """Shared read access; fails while a mutable borrow is active."""
        if self._borrowed:
            raise CanError("cell-borrow", f"{type(self._value).__name__} is mutably borrowed")
        return self._value

    @contextmanager
    def borrow_mut(self, uid: str = "cell-borrow-mut") -> Iterator[T]:
        if self._borrowed:
            raise CanError(uid, f"{type(self._value).__name__} already borrowed")
        self._borrowed = True
        try:
            yield self._value
        finally:
            self._borrowed = False


# ============================================================================
# Bit access
# ============================================================================

def _chunk(data: bytes | bytearray, first: int, last: int) -> bytes:
    """Bytes [first, last) of *data*, zero padded when the frame is short."""
    return bytes(data[first:last]).ljust(last - first, b"\x00")


def _check_room(data: bytearray, last: int) -> None:
    if len(data) < last:
        raise CanError("frame-too-short", f"frame has {len(data)} bytes, needs {last}")


def load_le(data: bytes | bytearray, start: int, end: int) -> int:
    """Unsigned value of bits [start, end) in the LSB-first bit space."""
    first, last = start // 8, (end + 7) // 8
    value = int.from_bytes(_chunk(data, first, last), "little")
    return (value >> (start - first * 8)) & ((1 << (end - start)) - 1)


def load_be(data: bytes | bytearray, start: int, end: int) -> int:
    """Unsigned value of bits [start, end) in the MSB-first bit space."""
    first, last = start // 8, (end + 7) // 8
    value = int.from_bytes(_chunk(data, first, last), "big")
    return (value >> (last * 8 - end)) & ((1 << (end - start)) - 1)


def store_le(data: bytearray, start: int, end: int, value: int) -> None:
    """Write *value* into bits [start, end) of the LSB-first bit space.

    Bits outside the range are left untouched.
    """
    first, last = start // 8, (end + 7) // 8
    _check_room(data, last)
    shift = start - first * 8
    mask = ((1 << (end - start)) - 1) << shift
    chunk = int.from_bytes(data[first:last], "little")
    chunk = (chunk & ~mask) | ((value << shift) & mask)
    data[first:last] = chunk.to_bytes(last - first, "little")


def store_be(data: bytearray, start: int, end: int, value: int) -> None:
    """Write *value* into bits [start, end) of the MSB-first bit space.

    Bits outside the range are left untouched.
    """
    first, last = start // 8, (end + 7) // 8
    _check_room(data, last)
    shift = last * 8 - end
    mask = ((1 << (end - start)) - 1) << shift
    chunk = int.from_bytes(data[first:last], "big")
    chunk = (chunk & ~mask) | ((value << shift) & mask)
    data[first:last] = chunk.to_bytes(last - first, "big")


def sign_extend(raw: int, bits: int, width: int) -> int:
    """Sign-extend a *bits*-wide raw value into a signed *width*-bit integer.

    Shifts the sign bit to the top of *width*, then shifts back arithmetically.
    """
    shift = width - bits
    value = (raw << shift) & ((1 << width) - 1)
    if value >> (width - 1):
        value -= 1 << width
    return value >> shift


def to_u64(value: int) -> int:
    """Reinterpret a signed 64-bit integer as unsigned."""
    return value & U64_MASK


def saturate_i64(value: float) -> int:
    """Round to nearest and saturate into the signed 64-bit range (NaN -> 0)."""
    if value != value:
        return 0
    if value >= I64_MAX:
        return I64_MAX
    if value <= I64_MIN:
        return I64_MIN
    return round(value)


def saturate_u64(value: float) -> int:
    """Round to nearest and saturate into the unsigned 64-bit range (NaN -> 0)."""
    if value != value:
        return 0
    if value >= U64_MASK:
        return U64_MASK
    if value <= 0:
        return 0
    return round(value)


def cast_value(value: object, type_name: str) -> SignalValue:
    """Convert *value* to the storage type of a signal.

    Raises:
        CanError: *value* is not representable as *type_name*
    """
    if type_name == "bool":
        if isinstance(value, bool):
            return value
        if isinstance(value, int) and value in (0, 1):
            return bool(value)
        raise CanError("invalid-signal-type", f"value={value!r} is not a bool")

    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise CanError("invalid-signal-type", f"value={value!r} is not a number")

    if type_name == "f64":
        return float(value)

    if isinstance(value, float):
        if not value.is_integer():
            raise CanError("invalid-signal-type", f"value={value!r} is not an integer")
        value = int(value)

    lo, hi = _INT_RANGES[type_name]
    if not lo <= value <= hi:
        raise CanError("invalid-signal-value", f"value={value} does not fit {type_name}")
    return value


def default_value(type_name: str) -> SignalValue:
    if type_name == "bool":
        return False
    if type_name == "f64":
        return 0.0
    return 0


# ============================================================================
# Listener protocols
# ============================================================================

class CanSigCtrl(Protocol):
    """Signal listener; the returned int is added to the message listener count."""

    def sig_notification(self, signal: CanDbcSignal) -> int: ...


class CanMsgCtrl(Protocol):
    """Message listener, notified after every update."""

    def msg_notification(self, msg: CanDbcMessage) -> None: ...


# ============================================================================
# Base classes for generated code
# ============================================================================

class CanDbcSignal(abc.ABC):
    """One decoded signal.

    Generated subclasses provide NAME, DATA_TYPE, ``decode`` and
    ``set_typed_value``.
    """

    NAME: ClassVar[str]
    DATA_TYPE: ClassVar[str]

    def __init__(self) -> None:
        self.status: CanDataStatus = CanDataStatus.UNSET
        self.stamp: int = 0
        self.value: SignalValue = default_value(self.DATA_TYPE)
        self.raw: int = 0
        self._callback: CanSigCtrl | None = None

    @classmethod
    def new(cls) -> SharedCell[CanDbcSignal]:
        return SharedCell(cls())

    @abc.abstractmethod
    def decode(self, data: bytes | bytearray) -> tuple[int, SignalValue]:
        """Extract ``(raw, physical value)`` from a frame payload."""

    @abc.abstractmethod
    def set_typed_value(self, value: SignalValue, data: bytearray) -> None:
        """Encode *value* into *data* (range checked when generated so)."""

    def get_name(self) -> str:
        return self.NAME

    def get_stamp(self) -> int:
        return self.stamp

    def get_status(self) -> CanDataStatus:
        return self.status

    def get_typed_value(self) -> SignalValue:
        return self.value

    def get_value(self) -> SignalValue:
        return self.get_typed_value()

    def set_value(self, value: object, data: bytearray) -> None:
        self.set_typed_value(cast_value(value, self.DATA_TYPE), data)

    def update(self, frame: CanMsgData) -> int:
        """Apply one frame; returns the listener count from the callback."""
        if frame.opcode is CanBcmOpCode.RX_CHANGED:
            raw, value = self.decode(frame.data)
            self.raw = raw
            if self.status is CanDataStatus.UNSET or value != self.value:
                self.value = value
                self.status = CanDataStatus.UPDATED
                self.stamp = frame.stamp
            else:
                self.status = CanDataStatus.UNCHANGED
        elif frame.opcode is CanBcmOpCode.RX_TIMEOUT:
            self.status = CanDataStatus.TIMEOUT
        else:
            self.status = CanDataStatus.ERROR

        if self._callback is None:
            return 0
        return self._callback.sig_notification(self)

    def reset_value(self) -> None:
        self.value = default_value(self.DATA_TYPE)
        self.raw = 0

    def reset(self) -> None:
        self.stamp = 0
        self.reset_value()
        self.status = CanDataStatus.UNSET

    def set_callback(self, callback: CanSigCtrl) -> None:
        self._callback = callback

    def __str__(self) -> str:
        return f"{self.NAME}:{self.value}"

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}("
            f"val={self.value!r}, "
            f"stamp={self.stamp}, "
            f"status={self.status.value})"
        )


class CanDbcMessage(abc.ABC):
    """One message and its signals.

    Generated subclasses provide ID, NAME, SIZE and ``update_signals``, and
    pass their signal classes in declaration order to ``__init__``.
    """

    ID: ClassVar[int]
    NAME: ClassVar[str]
    SIZE: ClassVar[int]

    def __init__(self, signals: Sequence[type[CanDbcSignal]]) -> None:
        self._signals: tuple[SharedCell[CanDbcSignal], ...] = tuple(
            sig.new() for sig in signals
        )
        self.status: CanBcmOpCode = CanBcmOpCode.UNKNOWN
        self.listeners: int = 0
        self.stamp: int = 0
        self._callback: CanMsgCtrl | None = None

    @classmethod
    def new(cls) -> SharedCell[CanDbcMessage]:
        return SharedCell(cls())

    @abc.abstractmethod
    def update_signals(self, frame: CanMsgData) -> None:
        """Update (or reset) every signal from one frame."""

    def update(self, frame: CanMsgData) -> None:
        self.stamp = frame.stamp
        self.status = frame.opcode
        self.listeners = 0
        self.update_signals(frame)
        if self._callback is not None:
            self._callback.msg_notification(self)

    def reset(self) -> None:
        self.status = CanBcmOpCode.UNKNOWN
        self.stamp = 0
        for idx in range(len(self._signals)):
            self._reset_signal(idx)

    def new_frame(self) -> bytearray:
        """Zeroed payload of the message size."""
        return bytearray(self.SIZE)

    def get_signals(self) -> tuple[SharedCell[CanDbcSignal], ...]:
        return self._signals

    def iter_signals(self) -> Iterator[CanDbcSignal]:
        for cell in self._signals:
            yield cell.borrow()

    def get_listeners(self) -> int:
        return self.listeners

    def set_callback(self, callback: CanMsgCtrl) -> None:
        self._callback = callback

    def get_name(self) -> str:
        return self.NAME

    def get_status(self) -> CanBcmOpCode:
        return self.status

    def get_stamp(self) -> int:
        return self.stamp

    def get_id(self) -> int:
        return self.ID

    # -- helpers used by generated update_signals / set_values ---------------

    def _update_signal(self, idx: int, frame: CanMsgData) -> None:
        with self._signals[idx].borrow_mut("signal-update-fail") as signal:
            self.listeners += signal.update(frame)

    def _reset_signal(self, idx: int) -> None:
        with self._signals[idx].borrow_mut("signal-reset-fail") as signal:
            signal.reset()

    def _set_signal(self, idx: int, value: object, data: bytearray) -> None:
        with self._signals[idx].borrow_mut("signal-set-values-fail") as signal:
            signal.set_value(value, data)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id=0x{self.ID:X}, name={self.NAME!r})"


class CanDbcPool:
    """Registry of all generated messages, sorted by CAN ID.

    Generated subclasses pass their message classes, sorted by ID.
    """

    def __init__(self, uid: str, messages: Sequence[type[CanDbcMessage]]) -> None:
        ids = tuple(msg.ID for msg in messages)
        if list(ids) != sorted(set(ids)):
            raise CanError("pool-ids-unsorted", f"{uid}: message ids must be unique and sorted")
        self.uid = uid
        self._ids = ids
        self._pool: tuple[SharedCell[CanDbcMessage], ...] = tuple(
            msg.new() for msg in messages
        )

    def get_messages(self) -> tuple[SharedCell[CanDbcMessage], ...]:
        return self._pool

    def get_ids(self) -> tuple[int, ...]:
        return self._ids

    def get_mut(self, canid: int) -> AbstractContextManager[CanDbcMessage]:
        """Exclusive handle on the message with *canid*; use with ``with``.

        Raises:
            CanError: Unknown CAN ID, or the message is already borrowed
        """
        idx = bisect_left(self._ids, canid)
        if idx == len(self._ids) or self._ids[idx] != canid:
            raise CanError("fail-canid-search", f"canid:{canid} not found")
        return self._pool[idx].borrow_mut("message-get_mut")

    def update(self, frame: CanMsgData) -> CanDbcMessage:
        """Route *frame* to its message and update it."""
        with self.get_mut(frame.canid) as msg:
            msg.update(frame)
        return msg

    def __len__(self) -> int:
        return len(self._pool)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(uid={self.uid!r}, messages={len(self._pool)})"


__all__: Sequence[str] = (
    "CanBcmOpCode",
    "CanDataStatus",
    "CanDbcMessage",
    "CanDbcPool",
    "CanDbcSignal",
    "CanError",
    "CanMsgCtrl",
    "CanMsgData",
    "CanSigCtrl",
    "Other",
    "SharedCell",
    "cast_value",
    "load_be",
    "load_le",
    "saturate_i64",
    "saturate_u64",
    "sign_extend",
    "store_be",
    "store_le",
    "to_u64",
)
