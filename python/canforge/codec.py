"""Storage type selection and encode/decode rendering for one signal

Decoding always extracts the raw unsigned bits first, then:

- width 1: ``raw == 1``
- signed: sign-extend to the storage width (shift left, arithmetic shift right)
- scaled: ``raw * factor + offset``

Encoding reverses it: boolean stores ``int(value)``; scaled values are
rounded and saturated into a 64-bit intermediate; everything is masked to the
signal width before it is packed into the frame.
"""

from __future__ import annotations

import math
import sys
from dataclasses import dataclass
from enum import Enum

from .errors import LayoutError, ModelError
from .layout import start_end_bit
from .model import Message, Signal
from .protocols import ByteOrder

SCALING_EPSILON = 1e-12

_FLOAT_MAX = sys.float_info.max
_WIDTHS = (8, 16, 32, 64)


class TypeKind(str, Enum):
    """Family of a storage type"""
    BOOL = "bool"
    INT = "int"
    FLOAT = "float"


@dataclass(frozen=True)
class DataType:
    """A storage type of the generated code.

    Attributes:
        name: Type tag used by the runtime ("bool", "u8".."u64", "i8".."i64", "f64")
        bits: Storage width
        signed: True for i8..i64 and f64
        kind: Type family
        min: Smallest representable value
        max: Largest representable value
    """

    name: str
    bits: int
    signed: bool
    kind: TypeKind
    min: int | float
    max: int | float


BOOL = DataType("bool", 1, False, TypeKind.BOOL, 0, 1)
F64 = DataType("f64", 64, True, TypeKind.FLOAT, -_FLOAT_MAX, _FLOAT_MAX)

_UNSIGNED = {
    w: DataType(f"u{w}", w, False, TypeKind.INT, 0, (1 << w) - 1) for w in _WIDTHS
}
_SIGNED = {
    w: DataType(f"i{w}", w, True, TypeKind.INT, -(1 << (w - 1)), (1 << (w - 1)) - 1)
    for w in _WIDTHS
}


def _width(sig: Signal) -> int:
    for width in _WIDTHS:
        if sig.size <= width:
            return width
    raise LayoutError(f"signal:{sig.name} size > 64 bits; unsupported")


def has_scaling(sig: Signal) -> bool:
    """True when factor or offset differ from the identity beyond 1e-12."""
    return abs(sig.offset) > SCALING_EPSILON or abs(sig.factor - 1.0) > SCALING_EPSILON


def data_type(sig: Signal) -> DataType:
    """Storage type of the physical value.

    Raises:
        LayoutError: Signal wider than 64 bits
    """
    width = _width(sig)
    if sig.size == 1:
        return BOOL
    if has_scaling(sig):
        return F64
    if sig.is_signed:
        return _SIGNED[width]
    return _UNSIGNED[width]


def raw_type(sig: Signal) -> DataType:
    """Minimal unsigned type holding the raw bits."""
    return _UNSIGNED[_width(sig)]


def signed_raw_type(sig: Signal) -> DataType:
    return _SIGNED[_width(sig)]


def clamp_literal(value: float, dtype: DataType) -> bool | int | float:
    """Clamp *value* into *dtype* so the emitted literal always fits.

    Integers are truncated toward zero before clamping; non-finite floats
    become the largest finite value of the same sign (NaN becomes 0.0).
    """
    if dtype.kind is TypeKind.FLOAT:
        if math.isnan(value):
            return 0.0
        return float(min(max(value, -_FLOAT_MAX), _FLOAT_MAX))

    if isinstance(value, float):
        if math.isnan(value):
            value = 0
        elif math.isinf(value):
            value = dtype.max if value > 0 else dtype.min
        else:
            value = int(value)
    clamped = min(max(value, dtype.min), dtype.max)
    if dtype.kind is TypeKind.BOOL:
        return bool(clamped)
    return clamped


def render_literal(value: bool | int | float) -> str:
    """Python source text of a clamped literal."""
    if isinstance(value, bool):
        return "True" if value else "False"
    if isinstance(value, float):
        return repr(value)
    return str(value)


def render_mask(bits: int) -> str:
    return f"0x{(1 << bits) - 1:X}"


def _affine(var: str, factor: float, offset: float) -> str:
    term = f"{var} * {render_literal(float(factor))}"
    if offset < 0:
        return f"{term} - {render_literal(float(-offset))}"
    return f"{term} + {render_literal(float(offset))}"


def _unshift(var: str, factor: float, offset: float) -> str:
    if offset < 0:
        inner = f"{var} + {render_literal(float(-offset))}"
    else:
        inner = f"{var} - {render_literal(float(offset))}"
    return f"({inner}) / {render_literal(float(factor))}"


@dataclass(frozen=True)
class SignalCodec:
    """Resolved layout, types and rendered arithmetic of one signal.

    Rendered lines are unindented Python statements; the emitter places them
    in method bodies where ``data`` is the frame payload and ``value`` the
    typed value being written.
    """

    signal: Signal
    data_type: DataType
    raw_type: DataType
    start: int
    end: int
    scaled: bool
    min_literal: bool | int | float
    max_literal: bool | int | float
    range_check: bool

    @property
    def mask(self) -> int:
        return (1 << self.signal.size) - 1

    @property
    def _suffix(self) -> str:
        return "be" if self.signal.byte_order is ByteOrder.BIG_ENDIAN else "le"

    def extract_expr(self, data: str = "data") -> str:
        """Unsigned raw bits of the signal."""
        return f"rt.load_{self._suffix}({data}, {self.start}, {self.end})"

    def raw_expr(self, data: str = "data") -> str:
        """Raw value, sign-extended when the signal is signed."""
        expr = self.extract_expr(data)
        if self.signal.is_signed and self.data_type is not BOOL:
            expr = f"rt.sign_extend({expr}, {self.signal.size}, {self.raw_type.bits})"
        return expr

    def store_line(self, raw: str = "raw", data: str = "data") -> str:
        return f"rt.store_{self._suffix}({data}, {self.start}, {self.end}, {raw})"

    def decode_lines(self) -> list[str]:
        """Body of ``decode(data)`` returning ``(raw, value)``."""
        lines = [f"raw = {self.raw_expr()}"]
        if self.data_type is BOOL:
            lines.append("return raw, raw == 1")
        elif self.scaled:
            lines.append(
                f"return raw, {_affine('raw', self.signal.factor, self.signal.offset)}"
            )
        else:
            lines.append("return raw, raw")
        return lines

    def encode_lines(self) -> list[str]:
        """Body of ``set_typed_value(value, data)``."""
        lines: list[str] = []
        if self.range_check:
            lines += [
                "if value < self.MIN or value > self.MAX:",
                "    raise rt.CanError(",
                '        "invalid-signal-value",',
                '        f"{self.NAME}: value={value} not in [{self.MIN}, {self.MAX}]",',
                "    )",
            ]

        mask = render_mask(self.signal.size)
        if self.data_type is BOOL:
            lines.append("raw = int(value)")
        elif self.scaled:
            scaled = _unshift("value", self.signal.factor, self.signal.offset)
            if self.signal.is_signed:
                lines.append(f"raw = rt.to_u64(rt.saturate_i64({scaled})) & {mask}")
            else:
                lines.append(f"raw = rt.saturate_u64({scaled}) & {mask}")
        elif self.signal.is_signed:
            lines.append(f"raw = rt.to_u64(value) & {mask}")
        else:
            lines.append(f"raw = value & {mask}")
        lines.append(self.store_line())
        return lines


def build_codec(sig: Signal, msg: Message, range_check: bool = True) -> SignalCodec:
    """Resolve everything the emitter needs to render *sig*.

    Raises:
        LayoutError: Bad bit range or width above 64 bits
        ModelError: Scaled signal with a zero factor
    """
    dtype = data_type(sig)
    start, end = start_end_bit(sig, msg)
    scaled = has_scaling(sig)
    if scaled and dtype is not BOOL and sig.factor == 0:
        raise ModelError(f"message:{msg.name} signal:{sig.name} has a zero factor")

    if dtype.kind is TypeKind.INT:
        lo = clamp_literal(math.ceil(sig.minimum) if math.isfinite(sig.minimum) else sig.minimum, dtype)
        hi = clamp_literal(math.floor(sig.maximum) if math.isfinite(sig.maximum) else sig.maximum, dtype)
    elif dtype.kind is TypeKind.BOOL:
        lo, hi = False, True
    else:
        lo = clamp_literal(sig.minimum, dtype)
        hi = clamp_literal(sig.maximum, dtype)

    checked = range_check and dtype is not BOOL and sig.minimum < sig.maximum
    return SignalCodec(
        signal=sig,
        data_type=dtype,
        raw_type=raw_type(sig),
        start=start,
        end=end,
        scaled=scaled,
        min_literal=lo,
        max_literal=hi,
        range_check=checked,
    )
