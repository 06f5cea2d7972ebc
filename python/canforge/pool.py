"""Select, filter and order the messages that get generated

Messages are sorted by CAN ID. A non-empty whitelist keeps only its IDs;
the blacklist is applied afterwards and removes its IDs. The resulting
``ids`` tuple is what the generated registry binary-searches.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from .errors import FilterError, ModelError
from .model import Message

log = logging.getLogger(__name__)

CAN_ID_MAX = (1 << 32) - 1

_ID_SPLIT_RE = re.compile(r"[\s,]+")


@dataclass(frozen=True)
class MessagePool:
    """Messages selected for generation, sorted by CAN ID."""

    messages: tuple[Message, ...]
    ids: tuple[int, ...]

    def __len__(self) -> int:
        return len(self.messages)


def parse_can_id(text: str) -> int:
    """Parse a decimal or ``0x``/``0X`` hexadecimal CAN ID.

    Raises:
        FilterError: Token is not a valid ID or leaves 0..2**32-1
    """
    token = text.strip()
    if token[:2] in ("0x", "0X"):
        digits = token[2:]
        if not digits or not all(c in "0123456789abcdefABCDEF" for c in digits):
            raise FilterError(f"invalid hex id: {text!r}")
        value = int(digits, 16)
    else:
        if not token.isascii() or not token.isdigit():
            raise FilterError(f"invalid decimal id: {text!r}")
        value = int(token)

    if value > CAN_ID_MAX:
        raise FilterError(f"id out of range: {text!r}")
    return value


def parse_id_list(text: str) -> frozenset[int]:
    """Parse a comma or whitespace separated list of CAN IDs (duplicates collapse)."""
    return frozenset(parse_can_id(token) for token in _ID_SPLIT_RE.split(text) if token)


def assemble_pool(
    messages: Iterable[Message],
    whitelist: Iterable[int] | None = None,
    blacklist: Iterable[int] | None = None,
) -> MessagePool:
    """Filter and sort *messages*.

    Args:
        messages: Candidate messages in any order
        whitelist: IDs to keep; None or empty keeps everything
        blacklist: IDs to drop, applied after the whitelist

    Raises:
        ModelError: Two messages share one CAN ID
    """
    ordered = sorted(messages, key=lambda m: m.id)
    _check_unique_ids(ordered)

    allowed = frozenset(whitelist or ())
    denied = frozenset(blacklist or ())

    selected: Sequence[Message] = ordered
    if allowed:
        selected = [m for m in selected if m.id in allowed]
        log.debug("whitelist kept %d of %d messages", len(selected), len(ordered))
    if denied:
        before = len(selected)
        selected = [m for m in selected if m.id not in denied]
        log.debug("blacklist dropped %d messages", before - len(selected))

    pool = tuple(sorted(selected, key=lambda m: m.id))
    return MessagePool(messages=pool, ids=tuple(m.id for m in pool))


def _check_unique_ids(ordered: Sequence[Message]) -> None:
    for prev, cur in zip(ordered, ordered[1:]):
        if prev.id == cur.id:
            raise ModelError(
                f"messages {prev.name} and {cur.name} share CAN id 0x{cur.id:X}"
            )
