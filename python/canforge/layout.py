"""Bit layout of a signal inside its message

Both byte orders are mapped onto a linear bit space of ``message.size * 8``
bits:

- little endian: LSB-first, bit ``i`` is bit ``i % 8`` of byte ``i // 8``
- big endian: MSB-first, bit ``i`` is bit ``7 - i % 8`` of byte ``i // 8``

A big endian DBC start bit names the MSB of the signal in the sawtooth
numbering; it is converted to its MSB-first index before the range is built.
"""

from __future__ import annotations

from .errors import LayoutError
from .model import Message, Signal
from .protocols import ByteOrder

_U64_MAX = (1 << 64) - 1


def _checked(value: int, what: str, msg: Message, sig: Signal) -> int:
    """Reject intermediates outside the unsigned 64-bit domain."""
    if value < 0 or value > _U64_MAX:
        raise LayoutError(
            f"message:{msg.name} signal:{sig.name} {what} overflow ({value})"
        )
    return value


def _signal_size(msg: Message, sig: Signal) -> int:
    size = _checked(sig.size, "size", msg, sig)
    if size < 1:
        raise LayoutError(f"message:{msg.name} signal:{sig.name} has no bits")
    return size


def _message_bits(msg: Message, sig: Signal) -> int:
    if msg.size < 0 or msg.size * 8 > _U64_MAX:
        raise LayoutError(
            f"message:{msg.name} size overflow while computing bits (size:{msg.size} bytes)"
        )
    return msg.size * 8


def le_start_end_bit(sig: Signal, msg: Message) -> tuple[int, int]:
    """Little endian ``[start, end)`` range of *sig* in *msg*.

    Raises:
        LayoutError: Range overflows or does not fit the message
    """
    msg_bits = _message_bits(msg, sig)
    start_bit = _checked(sig.start_bit, "start_bit", msg, sig)
    end_bit = _checked(start_bit + _signal_size(msg, sig), "end_bit", msg, sig)

    if start_bit >= msg_bits:
        raise LayoutError(
            f"message:{msg.name} signal:{sig.name} starts at {start_bit}, "
            f"but message is only {msg_bits} bits"
        )
    if end_bit > msg_bits:
        raise LayoutError(
            f"message:{msg.name} signal:{sig.name} ends at {end_bit}, "
            f"but message is only {msg_bits} bits"
        )
    return start_bit, end_bit


def be_start_end_bit(sig: Signal, msg: Message) -> tuple[int, int]:
    """Big endian ``[start, end)`` range of *sig* in *msg* (MSB-first).

    Raises:
        LayoutError: Range overflows or does not fit the message
    """
    msg_bits = _message_bits(msg, sig)
    declared = _checked(sig.start_bit, "start_bit", msg, sig)

    byte_base = (declared // 8) * 8
    bit_from_msb = 7 - declared % 8
    start_bit = _checked(byte_base + bit_from_msb, "start_bit", msg, sig)
    end_bit = _checked(start_bit + _signal_size(msg, sig), "end_bit", msg, sig)

    if start_bit > msg_bits:
        raise LayoutError(
            f"message:{msg.name} signal:{sig.name} starts at {start_bit}, "
            f"but message is only {msg_bits} bits"
        )
    if end_bit > msg_bits:
        raise LayoutError(
            f"message:{msg.name} signal:{sig.name} ends at {end_bit}, "
            f"but message is only {msg_bits} bits"
        )
    return start_bit, end_bit


def start_end_bit(sig: Signal, msg: Message) -> tuple[int, int]:
    """Resolve the range for the byte order of *sig*."""
    if sig.byte_order is ByteOrder.BIG_ENDIAN:
        return be_start_end_bit(sig, msg)
    return le_start_end_bit(sig, msg)
