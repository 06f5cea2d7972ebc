"""canforge - CAN database to Python code generator

Code generation
===============

Compile a .dbc file into one importable module of typed accessors:

    from canforge import DbcParser

    DbcParser("my-car").dbcfile("car.dbc").outfile("car_dbc.py").generate()

or from the command line:

    canforge generate -i car.dbc -o car_dbc.py

Using the generated module
==========================

Every message is a namespace class; ``CanMsgPool`` routes received frames
to the right message by CAN ID:

    import can
    from car_dbc import CanMsgPool, EngineData
    from canforge.runtime import CanMsgData

    pool = CanMsgPool()
    for msg in can.LogReader("drive.asc"):
        pool.update(CanMsgData.from_message(msg))

    engine = EngineData.DbcMessage()
    frame = engine.set_values(1500.0, 90, engine.new_frame())
"""

from canforge.config import GeneratorOptions, load_config, save_config
from canforge.dbc_converter import load_dbc, load_dbc_string
from canforge.errors import (
    CanforgeError,
    FilterError,
    LayoutError,
    ModelError,
    MultiplexError,
)
from canforge.gencode import DEFAULT_HEADER, DbcParser
from canforge.model import Database, Message, Signal, ValueDescription

__version__ = "0.1.0"
__all__ = [
    "DbcParser",
    "DEFAULT_HEADER",
    "GeneratorOptions",
    "load_config",
    "save_config",
    "load_dbc",
    "load_dbc_string",
    "Database",
    "Message",
    "Signal",
    "ValueDescription",
    "CanforgeError",
    "FilterError",
    "LayoutError",
    "ModelError",
    "MultiplexError",
]
