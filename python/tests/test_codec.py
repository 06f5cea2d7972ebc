"""Unit tests for storage type selection and codec rendering

Tests cover:
- has_scaling: epsilon threshold
- data_type / raw_type: bool, f64, minimal signed/unsigned widths
- clamp_literal: integer and float clamping, non-finite values
- build_codec: bounds literals, range check activation, rendered lines
"""

from __future__ import annotations

import sys

import pytest

from canforge.codec import (
    BOOL,
    F64,
    build_codec,
    clamp_literal,
    data_type,
    has_scaling,
    raw_type,
    render_literal,
)
from canforge.errors import LayoutError, ModelError
from canforge.model import Message, Signal
from canforge.protocols import ByteOrder, ValueType

_MSG = Message(id=1, name="Msg", size=8)


def _sig(size: int, **kwargs: object) -> Signal:
    return Signal("Sig", 0, size, **kwargs)  # type: ignore[arg-type]


# ============================================================================
# SCALING AND TYPES
# ============================================================================

class TestHasScaling:
    """Test has_scaling"""

    def test_identity(self) -> None:
        assert not has_scaling(_sig(8))

    def test_below_epsilon(self) -> None:
        """Differences within 1e-12 are not scaling"""
        assert not has_scaling(_sig(8, factor=1.0 + 1e-13, offset=1e-13))

    def test_factor(self) -> None:
        assert has_scaling(_sig(8, factor=0.5))

    def test_offset(self) -> None:
        assert has_scaling(_sig(8, offset=-40.0))


class TestDataType:
    """Test data_type and raw_type selection"""

    def test_single_bit_is_bool(self) -> None:
        assert data_type(_sig(1)) is BOOL

    def test_single_bit_scaled_is_still_bool(self) -> None:
        assert data_type(_sig(1, factor=2.0)) is BOOL

    def test_scaled_is_f64(self) -> None:
        assert data_type(_sig(12, factor=0.1)) is F64

    @pytest.mark.parametrize("size,name", [
        (2, "u8"), (8, "u8"), (9, "u16"), (16, "u16"),
        (17, "u32"), (32, "u32"), (33, "u64"), (64, "u64"),
    ])
    def test_unsigned_widths(self, size: int, name: str) -> None:
        assert data_type(_sig(size)).name == name

    @pytest.mark.parametrize("size,name", [
        (2, "i8"), (12, "i16"), (24, "i32"), (40, "i64"),
    ])
    def test_signed_widths(self, size: int, name: str) -> None:
        assert data_type(_sig(size, value_type=ValueType.SIGNED)).name == name

    def test_raw_type_is_unsigned(self) -> None:
        """Raw extraction type ignores sign and scaling"""
        sig = _sig(12, value_type=ValueType.SIGNED, factor=0.1)
        assert raw_type(sig).name == "u16"

    def test_wider_than_64_rejected(self) -> None:
        with pytest.raises(LayoutError, match="size > 64 bits; unsupported"):
            data_type(_sig(65))


# ============================================================================
# LITERALS
# ============================================================================

class TestClampLiteral:
    """Test clamp_literal"""

    def test_int_in_range(self) -> None:
        assert clamp_literal(100, data_type(_sig(8))) == 100

    def test_int_above_max(self) -> None:
        assert clamp_literal(1000, data_type(_sig(8))) == 255

    def test_unsigned_negative(self) -> None:
        assert clamp_literal(-5, data_type(_sig(16))) == 0

    def test_signed_min(self) -> None:
        i64 = data_type(_sig(64, value_type=ValueType.SIGNED))
        assert clamp_literal(-1e30, i64) == -(1 << 63)

    def test_u64_max(self) -> None:
        assert clamp_literal(1e30, data_type(_sig(64))) == (1 << 64) - 1

    def test_float_truncated_for_int(self) -> None:
        assert clamp_literal(3.9, data_type(_sig(8))) == 3

    def test_float_infinity(self) -> None:
        assert clamp_literal(float("inf"), F64) == sys.float_info.max
        assert clamp_literal(float("-inf"), F64) == -sys.float_info.max

    def test_float_nan(self) -> None:
        assert clamp_literal(float("nan"), F64) == 0.0

    def test_bool(self) -> None:
        assert clamp_literal(5, BOOL) is True
        assert clamp_literal(0, BOOL) is False

    def test_render(self) -> None:
        """Rendered literals are valid Python source"""
        assert render_literal(True) == "True"
        assert render_literal(-3) == "-3"
        assert float(render_literal(sys.float_info.max)) == sys.float_info.max


# ============================================================================
# CODEC
# ============================================================================

class TestBuildCodec:
    """Test build_codec"""

    def test_integer_bounds_rounded_inward(self) -> None:
        """Fractional integer bounds round toward the inside of the range"""
        codec = build_codec(_sig(8, minimum=0.5, maximum=200.7), _MSG)
        assert codec.min_literal == 1
        assert codec.max_literal == 200

    def test_bounds_clamped_to_type(self) -> None:
        codec = build_codec(_sig(8, minimum=-10.0, maximum=1000.0), _MSG)
        assert (codec.min_literal, codec.max_literal) == (0, 255)

    def test_range_check_only_for_real_interval(self) -> None:
        """[0|0] means unspecified: no check is emitted"""
        assert not build_codec(_sig(8), _MSG).range_check
        assert build_codec(_sig(8, maximum=100.0), _MSG).range_check

    def test_range_check_disabled(self) -> None:
        assert not build_codec(_sig(8, maximum=100.0), _MSG, range_check=False).range_check

    def test_no_range_check_for_bool(self) -> None:
        assert not build_codec(_sig(1, maximum=1.0), _MSG).range_check

    def test_zero_factor_rejected(self) -> None:
        with pytest.raises(ModelError, match="zero factor"):
            build_codec(_sig(8, factor=0.0), _MSG)

    def test_decode_lines_signed(self) -> None:
        codec = build_codec(_sig(12, value_type=ValueType.SIGNED), _MSG)
        assert codec.decode_lines() == [
            "raw = rt.sign_extend(rt.load_le(data, 0, 12), 12, 16)",
            "return raw, raw",
        ]

    def test_decode_lines_scaled(self) -> None:
        codec = build_codec(_sig(8, factor=0.5, offset=-40.0), _MSG)
        assert codec.decode_lines()[-1] == "return raw, raw * 0.5 - 40.0"

    def test_encode_lines_big_endian(self) -> None:
        sig = Signal("Sig", 7, 16, byte_order=ByteOrder.BIG_ENDIAN)
        codec = build_codec(sig, _MSG)
        assert codec.encode_lines() == [
            "raw = value & 0xFFFF",
            "rt.store_be(data, 0, 16, raw)",
        ]

    def test_encode_lines_scaled_signed(self) -> None:
        sig = _sig(11, value_type=ValueType.SIGNED, factor=0.1)
        lines = build_codec(sig, _MSG).encode_lines()
        assert lines[0] == "raw = rt.to_u64(rt.saturate_i64((value - 0.0) / 0.1)) & 0x7FF"

    def test_encode_lines_range_check(self) -> None:
        lines = build_codec(_sig(8, maximum=100.0), _MSG).encode_lines()
        assert lines[0] == "if value < self.MIN or value > self.MAX:"
        assert any("invalid-signal-value" in line for line in lines)
