"""Shared test fixtures for all test modules

Provides a small in-memory database covering every code path of the
generator, and a loader that renders a database and imports the result.
"""

from __future__ import annotations

import importlib.util
import itertools
import sys
from collections.abc import Callable, Iterator
from pathlib import Path
from types import ModuleType

import pytest

from canforge.gencode import DbcParser
from canforge.model import Database, Message, Signal, ValueDescription
from canforge.protocols import ByteOrder, MultiplexRole, ValueType

_module_ids = itertools.count()


# ============================================================================
# Sample model
# ============================================================================

ENGINE = Message(
    id=0x101,
    name="EngineData",
    size=8,
    transmitter="ECU1",
    signals=(
        Signal("EngineSpeed", 0, 16, factor=0.25, maximum=16383.75, unit="rpm"),
        Signal(
            "EngineTemp", 16, 8,
            value_type=ValueType.SIGNED, offset=-40.0,
            minimum=-40.0, maximum=87.0, unit="degC",
        ),
        Signal("Gear", 24, 4),
        Signal(
            "Torque", 28, 12,
            value_type=ValueType.SIGNED, minimum=-2048.0, maximum=2047.0,
        ),
        Signal("Running", 40, 1),
    ),
)

BRAKE = Message(
    id=0x201,
    name="BrakeStatus",
    size=8,
    signals=(
        Signal(
            "Pressure", 7, 16,
            byte_order=ByteOrder.BIG_ENDIAN, factor=0.1, maximum=6553.5,
        ),
    ),
)

MUX = Message(
    id=0x300,
    name="MuxFrame",
    size=4,
    signals=(
        Signal("Mode", 0, 2, multiplex=MultiplexRole.MULTIPLEXOR),
        Signal("Counter", 2, 6),
        Signal("Alpha", 8, 16, multiplex=MultiplexRole.MULTIPLEXED, multiplex_value=1),
        Signal(
            "Beta", 8, 16,
            value_type=ValueType.SIGNED,
            multiplex=MultiplexRole.MULTIPLEXED, multiplex_value=2,
        ),
    ),
)

VALUE_TABLES = {
    (0x101, "Gear"): (
        ValueDescription(0, "Neutral"),
        ValueDescription(1, "First"),
        ValueDescription(2, "Second"),
    ),
    (0x101, "Running"): (
        ValueDescription(0, "Off"),
        ValueDescription(1, "On"),
    ),
}


@pytest.fixture
def sample_db() -> Database:
    """Engine (scaling, enums, signed), brake (big endian) and mux messages"""
    return Database(messages=(MUX, BRAKE, ENGINE), value_descriptions=VALUE_TABLES)


# ============================================================================
# Generated module loader
# ============================================================================

def import_source(directory: Path, source: str) -> ModuleType:
    """Write *source* into *directory* and import it under a unique name."""
    name = f"generated_dbc_{next(_module_ids)}"
    path = directory / f"{name}.py"
    path.write_text(source, encoding="utf-8")

    spec = importlib.util.spec_from_file_location(name, path)
    assert spec is not None and spec.loader is not None
    module = importlib.util.module_from_spec(spec)
    sys.modules[name] = module
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def load_generated(tmp_path: Path) -> Iterator[Callable[..., ModuleType]]:
    """Render a database with DbcParser options and import the result.

    Usage: ``load_generated(db, range_check=False, whitelist=[0x101])``
    """
    loaded: list[str] = []

    def _load(db: Database, **options: object) -> ModuleType:
        parser = DbcParser("test-uid").database(db).gen_time("fixed")
        for option, value in options.items():
            getattr(parser, option)(value)
        module = import_source(tmp_path, parser.generate())
        loaded.append(module.__name__)
        return module

    yield _load

    for name in loaded:
        sys.modules.pop(name, None)


@pytest.fixture
def generated(sample_db: Database, load_generated: Callable[..., ModuleType]) -> ModuleType:
    """The sample database, generated with default options"""
    return load_generated(sample_db)
