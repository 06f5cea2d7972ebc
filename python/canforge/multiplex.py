"""Partition the signals of a message by multiplexing role

A message has at most one multiplexor. Signals multiplexed by value ``V``
are only read or written when the multiplexor's raw value equals ``V``;
plain signals and ``MULTIPLEXOR_AND_MULTIPLEXED`` signals are unconditional.
"""

from __future__ import annotations

from dataclasses import dataclass

from .codec import has_scaling
from .errors import MultiplexError
from .model import Message, Signal
from .protocols import MultiplexRole


@dataclass(frozen=True)
class MultiplexPlan:
    """Signals of one message in declaration order.

    Attributes:
        multiplexor: The selector signal, or None for plain messages
        always: Signals handled on every frame (multiplexor excluded)
        conditional: ``(selector value, signal)`` pairs
    """

    multiplexor: Signal | None
    always: tuple[Signal, ...]
    conditional: tuple[tuple[int, Signal], ...]

    @property
    def is_multiplexed(self) -> bool:
        return self.multiplexor is not None


def resolve_multiplex(msg: Message) -> MultiplexPlan:
    """Find the multiplexor of *msg* and partition its signals.

    Raises:
        MultiplexError: Several multiplexors, a multiplexed signal without
            multiplexor, or a multiplexor that is scaled or wider than 64 bits
    """
    muxes = [s for s in msg.signals if s.multiplex is MultiplexRole.MULTIPLEXOR]
    if len(muxes) > 1:
        names = ", ".join(s.name for s in muxes)
        raise MultiplexError(
            f"message:{msg.name} multiple multiplexors ({names}); unsupported"
        )
    mux = muxes[0] if muxes else None

    if mux is not None:
        if has_scaling(mux):
            raise MultiplexError(
                f"message:{msg.name} signal:{mux.name} mux must be raw integer"
            )
        if mux.size > 64:
            raise MultiplexError(
                f"message:{msg.name} signal:{mux.name} size > 64 bits; unsupported"
            )

    always: list[Signal] = []
    conditional: list[tuple[int, Signal]] = []
    for sig in msg.signals:
        if sig is mux:
            continue
        if sig.multiplex is not MultiplexRole.MULTIPLEXED:
            always.append(sig)
            continue
        if mux is None:
            raise MultiplexError(
                f"message:{msg.name} signal:{sig.name} is multiplexed "
                f"but the message has no multiplexor"
            )
        if sig.multiplex_value is None:
            raise MultiplexError(
                f"message:{msg.name} signal:{sig.name} has no multiplexor value"
            )
        conditional.append((sig.multiplex_value, sig))

    return MultiplexPlan(
        multiplexor=mux,
        always=tuple(always),
        conditional=tuple(conditional),
    )
