"""Map signal value descriptions (``VAL_``) onto generated enum classes

Each description becomes one variant of an ``enum.Enum`` named
``Dbc<Signal>``. Raw values without a description decode to
``rt.Other(value)``, except for 1-bit signals with exactly two descriptions,
which map onto a closed pair with no fallback.

For scaled signals the enum is keyed on the last raw value decoded from the
bus rather than on the physical float.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from . import naming
from .codec import BOOL, SignalCodec, clamp_literal, render_literal, render_mask, signed_raw_type
from .model import ValueDescription


@dataclass(frozen=True)
class Variant:
    """One enum member.

    Attributes:
        name: Python identifier of the member
        description: Text from the database
        raw_id: Declared id
        literal: Comparison key, sign-reinterpreted and clamped
    """

    name: str
    description: str
    raw_id: int
    literal: int


@dataclass(frozen=True)
class ValueTable:
    """Enum rendering plan for one signal."""

    type_name: str
    variants: tuple[Variant, ...]
    closed: bool
    key_attr: str

    @property
    def has_fallback(self) -> bool:
        return not self.closed


def signed_id(raw_id: int, size: int) -> int:
    """Reinterpret *raw_id* as a two's-complement value of *size* bits."""
    if raw_id >= 1 << (size - 1):
        return raw_id - (1 << size)
    return raw_id


def _key_literal(raw_id: int, codec: SignalCodec) -> int:
    sig = codec.signal
    if codec.data_type is BOOL:
        return int(clamp_literal(raw_id, BOOL))
    if sig.is_signed:
        raw_id = signed_id(raw_id, sig.size)
    if codec.scaled:
        dtype = signed_raw_type(sig) if sig.is_signed else codec.raw_type
    else:
        dtype = codec.data_type
    return int(clamp_literal(raw_id, dtype))


def _unique(name: str, raw_id: int, mask: int, used: set[str]) -> str:
    if name not in used:
        return name
    candidate = f"{name}_{raw_id & mask}"
    suffix = 2
    while candidate in used:
        candidate = f"{name}_{raw_id & mask}_{suffix}"
        suffix += 1
    return candidate


def build_value_table(
    codec: SignalCodec,
    descriptions: Sequence[ValueDescription] | None,
) -> ValueTable | None:
    """Plan the enum of one signal, or None when it has no descriptions."""
    if not descriptions:
        return None

    sig = codec.signal
    used: set[str] = set()
    variants: list[Variant] = []
    for desc in descriptions:
        name = _unique(naming.type_name(desc.description), desc.id, codec.mask, used)
        used.add(name)
        variants.append(Variant(
            name=name,
            description=desc.description,
            raw_id=desc.id,
            literal=_key_literal(desc.id, codec),
        ))

    closed = sig.size == 1 and len(variants) == 2
    key_attr = "raw" if codec.scaled or codec.data_type is BOOL else "value"
    return ValueTable(
        type_name=f"Dbc{naming.type_name(sig.name)}",
        variants=tuple(variants),
        closed=closed,
        key_attr=key_attr,
    )


# ============================================================================
# Rendering
# ============================================================================

def enum_lines(table: ValueTable) -> list[str]:
    """Class statement of the enum."""
    lines = [f"class {table.type_name}(enum.Enum):"]
    for variant in table.variants:
        lines.append(f"    {variant.name} = {render_literal(variant.literal)}")
    return lines


def get_as_def_lines(table: ValueTable, owner: str) -> list[str]:
    """Body of ``get_as_def()``; *owner* is the enclosing namespace class."""
    enum_ref = f"{owner}.{table.type_name}"
    key = f"self.{table.key_attr}"
    if not table.has_fallback:
        first, second = table.variants
        return [
            f"return {enum_ref}.{first.name} if {key} == {render_literal(first.literal)} "
            f"else {enum_ref}.{second.name}",
        ]
    return [
        "try:",
        f"    return {enum_ref}({key})",
        "except ValueError:",
        "    return rt.Other(self.value)",
    ]


def set_as_def_lines(table: ValueTable, codec: SignalCodec) -> list[str]:
    """Body of ``set_as_def(signal_def, data)``.

    Declared variants write their raw id straight into the frame; ``Other``
    goes through ``set_typed_value``.
    """
    store = codec.store_line(f"signal_def.value & {render_mask(codec.signal.size)}")
    if not table.has_fallback:
        return [store]
    return [
        "if isinstance(signal_def, rt.Other):",
        "    self.set_typed_value(signal_def.value, data)",
        "    return",
        store,
    ]
