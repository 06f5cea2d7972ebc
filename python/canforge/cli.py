"""Command-line interface for the canforge code generator

Subcommands:
    generate — render a .dbc (or .xlsx) database into a Python module
    signals  — list messages, resolved bit ranges and storage types

Usage:
    canforge generate -i vehicle.dbc -o vehicle_dbc.py --whitelist 0x101,0x102
    canforge generate --config vehicle.yaml
    canforge signals --dbc vehicle.dbc --json
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import NoReturn

from .config import GeneratorOptions, load_config, save_config
from .dbc_converter import load_dbc
from .errors import CanforgeError
from .excel_loader import load_dbc_from_excel
from .gencode import summarize_message
from .model import Database
from .pool import parse_id_list
from .protocols import HeaderMode, MessageSummary, SignalSummary


# ============================================================================
# Exit codes
# ============================================================================

_EXIT_OK = 0
_EXIT_ERROR = 2

_LOG_LEVELS = (logging.WARNING, logging.INFO, logging.DEBUG)


# ============================================================================
# Helpers
# ============================================================================

def _die(msg: str) -> NoReturn:
    """Print error to stderr and exit with code 2."""
    print(f"Error: {msg}", file=sys.stderr)
    sys.exit(_EXIT_ERROR)


def _configure_logging(verbosity: int) -> None:
    level = _LOG_LEVELS[min(verbosity, len(_LOG_LEVELS) - 1)]
    logging.basicConfig(
        level=level,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _load_database(path: Path) -> Database:
    """Load a .dbc or .xlsx database."""
    if not path.is_file():
        _die(f"input file does not exist: {path}")
    if path.suffix == ".xlsx":
        return load_dbc_from_excel(path)
    return load_dbc(path)


# ============================================================================
# Subcommand: generate
# ============================================================================

def _options_from_args(args: argparse.Namespace) -> GeneratorOptions:
    """Merge --config (if any) with the flags given on the command line."""
    if args.config is not None:
        options = load_config(args.config)
    elif args.infile is not None:
        options = GeneratorOptions(infile=Path(args.infile))
    else:
        _die("no input file (use -i/--in or --config)")

    changes: dict[str, object] = {}
    if args.infile is not None:
        changes["infile"] = Path(args.infile)
    if args.outfile is not None:
        changes["outfile"] = Path(args.outfile)
    if args.uid is not None:
        changes["uid"] = args.uid
    if args.no_header:
        changes["header"] = HeaderMode.NONE
        changes["header_file"] = None
    elif args.header_file is not None:
        changes["header"] = HeaderMode.CUSTOM
        changes["header_file"] = Path(args.header_file)
    if args.whitelist is not None:
        changes["whitelist"] = parse_id_list(args.whitelist)
    if args.blacklist is not None:
        changes["blacklist"] = parse_id_list(args.blacklist)
    if args.no_range_check:
        changes["range_check"] = False
    if args.no_serde:
        changes["serde_json"] = False
    return replace(options, **changes)


def _cmd_generate(args: argparse.Namespace) -> int:
    """Generate a Python module from a CAN database."""
    options = _options_from_args(args)
    db = _load_database(options.infile)

    source = options.parser().database(db).generate()

    if args.save_config is not None:
        save_config(args.save_config, options)

    if options.outfile is None:
        sys.stdout.write(source)
    else:
        print(f"Generated: {options.outfile}", file=sys.stderr)
    return _EXIT_OK


# ============================================================================
# Subcommand: signals
# ============================================================================

def _format_signal_line(sig: SignalSummary) -> str:
    """Format a single signal as a one-line summary."""
    start, end = sig["bitRange"]
    order = "LE" if sig["byteOrder"] == "little_endian" else "BE"
    sign = "signed" if sig["signed"] else "unsigned"
    offset = sig["offset"]
    offset_str = f"+{offset}" if offset >= 0 else str(offset)

    mux = ""
    if sig["multiplex"] == "multiplexor":
        mux = "  [mux]"
    elif "multiplexValue" in sig:
        mux = f"  [mux={sig['multiplexValue']}]"

    return (
        f"  {sig['name']:<20s} bits[{start}:{end})"
        + f"   {order}  {sign:<10s}"
        + f"  {sig['dataType']:<4s}"
        + f"  x{sig['factor']} {offset_str}"
        + f"  {sig['unit']:>6s}{mux}"
    )


def _print_signals_text(summaries: list[MessageSummary]) -> None:
    """Print messages and their signals in human-readable text format."""
    total_signals = 0

    for msg in summaries:
        sender = msg["sender"]
        sender_part = f", sender {sender}" if sender else ""
        print(f"Message 0x{msg['id']:X} {msg['name']} (DLC {msg['dlc']}{sender_part})")

        for sig in msg["signals"]:
            total_signals += 1
            print(_format_signal_line(sig))

        print()

    print(f"{len(summaries)} messages, {total_signals} signals")


def _cmd_signals(args: argparse.Namespace) -> int:
    """List signals defined in a database."""
    db = _load_database(Path(args.dbc))
    summaries = [
        summarize_message(msg, db)
        for msg in sorted(db.messages, key=lambda m: m.id)
    ]

    if args.json:
        print(json.dumps(summaries, indent=2))
    else:
        _print_signals_text(summaries)

    return _EXIT_OK


# ============================================================================
# Argument parser
# ============================================================================

def _build_parser() -> argparse.ArgumentParser:
    """Build the top-level argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        prog="canforge",
        description="Generate typed Python accessors from CAN databases",
    )
    parser.add_argument(
        "-v", "--verbose", action="count", default=0,
        help="log progress (-v info, -vv debug)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # -- generate ------------------------------------------------------------
    p_gen = subparsers.add_parser(
        "generate",
        help="render a database into a Python module",
    )
    p_gen.add_argument("-i", "--in", dest="infile", help=".dbc or .xlsx input file")
    p_gen.add_argument("-o", "--out", dest="outfile", help="output .py file (default: stdout)")
    p_gen.add_argument("--uid", help="identifier stored in the generated pool")
    header = p_gen.add_mutually_exclusive_group()
    header.add_argument("--header-file", help="file whose text replaces the default header")
    header.add_argument("--no-header", action="store_true", help="omit the header block")
    p_gen.add_argument("--whitelist", help="CAN ids to keep, e.g. 0x101,257")
    p_gen.add_argument("--blacklist", help="CAN ids to drop, applied after --whitelist")
    p_gen.add_argument(
        "--no-range-check", action="store_true",
        help="do not check values against the declared [min, max] on write",
    )
    p_gen.add_argument("--no-serde", action="store_true", help="omit to_json() methods")
    p_gen.add_argument("--config", help="YAML file with saved options")
    p_gen.add_argument("--save-config", help="write the effective options to a YAML file")

    # -- signals -------------------------------------------------------------
    p_signals = subparsers.add_parser(
        "signals",
        help="list messages, bit ranges and storage types",
    )
    p_signals.add_argument("--dbc", required=True, help=".dbc or .xlsx file")
    p_signals.add_argument("--json", action="store_true", help="output as JSON")

    return parser


# ============================================================================
# Entry point
# ============================================================================

_COMMANDS = {
    "generate": _cmd_generate,
    "signals": _cmd_signals,
}


def main(argv: list[str] | None = None) -> int:
    """CLI entry point. Returns exit code."""
    parser = _build_parser()

    try:
        args = parser.parse_args(argv)
        _configure_logging(args.verbose)
        handler = _COMMANDS[args.command]
        return handler(args)
    except SystemExit as e:
        return e.code if isinstance(e.code, int) else _EXIT_ERROR
    except (CanforgeError, ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return _EXIT_ERROR
