"""Type definitions for structured data

Defines the Enums shared by the model and the code generator, and the
TypedDict shapes used for JSON listings and YAML configuration files.
"""

from __future__ import annotations

from enum import Enum
from typing import TypedDict, NotRequired


class ByteOrder(str, Enum):
    """CAN signal byte order"""
    LITTLE_ENDIAN = "little_endian"
    BIG_ENDIAN = "big_endian"


class ValueType(str, Enum):
    """Raw value interpretation of a CAN signal"""
    SIGNED = "signed"
    UNSIGNED = "unsigned"


class MultiplexRole(str, Enum):
    """Multiplexing role of a signal inside its message"""
    PLAIN = "plain"
    MULTIPLEXOR = "multiplexor"
    MULTIPLEXED = "multiplexed"  # Present when multiplexor == multiplex_value
    MULTIPLEXOR_AND_MULTIPLEXED = "multiplexor_and_multiplexed"


class HeaderMode(str, Enum):
    """What goes on top of a generated file"""
    DEFAULT = "default"
    CUSTOM = "custom"
    NONE = "none"


# ============================================================================
# Signal listing (``canforge signals --json``)
# ============================================================================

class SignalSummary(TypedDict):
    """One signal as listed by the CLI, with its resolved layout"""
    name: str
    startBit: int
    length: int
    byteOrder: str  # "little_endian" | "big_endian"
    signed: bool
    factor: float
    offset: float
    minimum: float
    maximum: float
    unit: str
    dataType: str  # "bool" | "f64" | "u8" ... "i64"
    bitRange: list[int]  # [start, end) in the linear bit space
    multiplex: str
    multiplexValue: NotRequired[int]
    choices: NotRequired[dict[str, str]]


class MessageSummary(TypedDict):
    """One message as listed by the CLI"""
    id: int
    name: str
    dlc: int
    sender: str
    signals: list[SignalSummary]


# ============================================================================
# Generator configuration file
# ============================================================================

class GeneratorConfigDict(TypedDict):
    """YAML layout of a saved generator configuration"""
    infile: str
    outfile: NotRequired[str]
    uid: str
    header: str  # "default" | "none" | "custom"
    header_file: NotRequired[str]
    range_check: bool
    serde_json: bool
    whitelist: NotRequired[list[int]]
    blacklist: NotRequired[list[int]]
