"""Unit tests for the runtime used by generated modules

Tests cover:
- Bit access: load/store in both bit spaces, short frames
- Integer helpers: sign_extend, saturation, to_u64
- cast_value: bool, integer and float targets
- SharedCell: exclusive borrow semantics
- CanMsgData.from_message with python-can messages
"""

from __future__ import annotations

import can
import pytest

from canforge.runtime import (
    I64_MAX,
    I64_MIN,
    U64_MASK,
    CanBcmOpCode,
    CanError,
    CanMsgData,
    SharedCell,
    cast_value,
    default_value,
    load_be,
    load_le,
    saturate_i64,
    saturate_u64,
    sign_extend,
    store_be,
    store_le,
    to_u64,
)


# ============================================================================
# BIT ACCESS
# ============================================================================

class TestLoad:
    """Test load_le and load_be"""

    def test_le_byte(self) -> None:
        assert load_le(b"\x00\xAB", 8, 16) == 0xAB

    def test_le_across_bytes(self) -> None:
        """Bits [4, 12) take the high nibble of byte 0 and low nibble of byte 1"""
        assert load_le(b"\xF0\x0A", 4, 12) == 0xAF

    def test_be_first_word(self) -> None:
        assert load_be(b"\x12\x34\x56", 0, 16) == 0x1234

    def test_be_unaligned(self) -> None:
        """MSB-first bits [4, 12) are the low nibble of byte 0 and high nibble of byte 1"""
        assert load_be(b"\x1A\xB2", 4, 12) == 0xAB

    def test_short_frame_reads_zero(self) -> None:
        assert load_le(b"\xFF", 8, 16) == 0
        assert load_be(b"", 0, 8) == 0

    def test_full_64_bits(self) -> None:
        assert load_le(b"\xFF" * 8, 0, 64) == U64_MASK


class TestStore:
    """Test store_le and store_be"""

    def test_le_preserves_neighbours(self) -> None:
        data = bytearray(b"\xFF\xFF")
        store_le(data, 4, 12, 0)
        assert data == bytearray(b"\x0F\xF0")

    def test_be_preserves_neighbours(self) -> None:
        data = bytearray(b"\xFF\xFF")
        store_be(data, 4, 12, 0)
        assert data == bytearray(b"\xF0\x0F")

    def test_value_masked_to_width(self) -> None:
        data = bytearray(1)
        store_le(data, 0, 4, 0xFF)
        assert data == bytearray(b"\x0F")

    def test_round_trip(self) -> None:
        data = bytearray(8)
        store_be(data, 5, 19, 0x2ABC)
        assert load_be(data, 5, 19) == 0x2ABC

    def test_short_frame_rejected(self) -> None:
        with pytest.raises(CanError) as exc:
            store_le(bytearray(1), 8, 16, 1)
        assert exc.value.uid == "frame-too-short"


# ============================================================================
# INTEGER HELPERS
# ============================================================================

class TestIntegerHelpers:
    """Test sign_extend, to_u64 and saturation"""

    def test_sign_extend_negative(self) -> None:
        assert sign_extend(0xFFF, 12, 16) == -1
        assert sign_extend(0x800, 12, 16) == -2048

    def test_sign_extend_positive(self) -> None:
        assert sign_extend(0x7FF, 12, 16) == 2047

    def test_sign_extend_64(self) -> None:
        assert sign_extend(U64_MASK, 64, 64) == -1

    def test_to_u64(self) -> None:
        assert to_u64(-1) == U64_MASK
        assert to_u64(5) == 5

    def test_saturate_i64_rounds(self) -> None:
        assert saturate_i64(-29.999999999999996) == -30
        assert saturate_i64(2.4) == 2

    def test_saturate_i64_limits(self) -> None:
        assert saturate_i64(1e30) == I64_MAX
        assert saturate_i64(-1e30) == I64_MIN
        assert saturate_i64(float("nan")) == 0

    def test_saturate_u64_limits(self) -> None:
        assert saturate_u64(1e30) == U64_MASK
        assert saturate_u64(-3.0) == 0
        assert saturate_u64(float("nan")) == 0


class TestCastValue:
    """Test cast_value and default_value"""

    def test_bool(self) -> None:
        assert cast_value(True, "bool") is True
        assert cast_value(0, "bool") is False

    def test_bool_rejects_other_ints(self) -> None:
        with pytest.raises(CanError, match="invalid-signal-type"):
            cast_value(2, "bool")

    def test_f64(self) -> None:
        assert cast_value(3, "f64") == 3.0
        assert isinstance(cast_value(3, "f64"), float)

    def test_integral_float_to_int(self) -> None:
        assert cast_value(4.0, "u8") == 4

    def test_fractional_float_rejected(self) -> None:
        with pytest.raises(CanError, match="invalid-signal-type"):
            cast_value(4.5, "u8")

    def test_out_of_type_range(self) -> None:
        with pytest.raises(CanError, match="invalid-signal-value"):
            cast_value(256, "u8")
        with pytest.raises(CanError, match="invalid-signal-value"):
            cast_value(-1, "u16")

    def test_string_rejected(self) -> None:
        with pytest.raises(CanError, match="invalid-signal-type"):
            cast_value("12", "i32")

    def test_bool_is_not_a_number(self) -> None:
        with pytest.raises(CanError, match="invalid-signal-type"):
            cast_value(True, "u8")

    def test_defaults(self) -> None:
        assert default_value("bool") is False
        assert default_value("f64") == 0.0
        assert default_value("i64") == 0


# ============================================================================
# SHARED CELL
# ============================================================================

class TestSharedCell:
    """Test SharedCell borrow rules"""

    def test_borrow_mut_releases(self) -> None:
        cell = SharedCell([1])
        with cell.borrow_mut() as value:
            assert cell.borrowed
            value.append(2)
        assert not cell.borrowed
        assert cell.borrow() == [1, 2]

    def test_nested_borrow_mut_fails_fast(self) -> None:
        cell = SharedCell(0)
        with cell.borrow_mut():
            with pytest.raises(CanError) as exc:
                with cell.borrow_mut("outer-busy"):
                    pass
        assert exc.value.uid == "outer-busy"

    def test_borrow_during_borrow_mut_fails(self) -> None:
        cell = SharedCell(0)
        with cell.borrow_mut():
            with pytest.raises(CanError):
                cell.borrow()

    def test_released_after_exception(self) -> None:
        cell = SharedCell(0)
        with pytest.raises(RuntimeError):
            with cell.borrow_mut():
                raise RuntimeError("boom")
        assert not cell.borrowed


# ============================================================================
# FRAMES
# ============================================================================

class TestCanMsgData:
    """Test CanMsgData.from_message"""

    def test_from_message(self) -> None:
        msg = can.Message(timestamp=1.5, arbitration_id=0x101, data=[1, 2, 3])
        frame = CanMsgData.from_message(msg)
        assert frame.canid == 0x101
        assert frame.stamp == 1_500_000
        assert frame.opcode is CanBcmOpCode.RX_CHANGED
        assert frame.data == b"\x01\x02\x03"

    def test_error_frame(self) -> None:
        msg = can.Message(arbitration_id=0x101, is_error_frame=True)
        assert CanMsgData.from_message(msg).opcode is CanBcmOpCode.RX_ERROR

    def test_explicit_opcode(self) -> None:
        msg = can.Message(arbitration_id=0x101, data=b"")
        frame = CanMsgData.from_message(msg, CanBcmOpCode.RX_TIMEOUT)
        assert frame.opcode is CanBcmOpCode.RX_TIMEOUT

    def test_can_error_text(self) -> None:
        err = CanError("fail-canid-search", "canid:7 not found")
        assert str(err) == "fail-canid-search: canid:7 not found"
