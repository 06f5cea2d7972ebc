"""Unit tests for generator options and YAML configuration files

Tests cover:
- options_from_dict: defaults, type checking, unknown keys, header modes
- load_config / save_config: YAML round trip
- GeneratorOptions.parser: options reach the DbcParser builder
"""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml  # type: ignore[import-untyped]

from canforge.config import GeneratorOptions, load_config, options_from_dict, save_config
from canforge.gencode import DEFAULT_HEADER
from canforge.model import Database
from canforge.protocols import HeaderMode


# ============================================================================
# VALIDATION
# ============================================================================

class TestOptionsFromDict:
    """Test options_from_dict"""

    def test_defaults(self) -> None:
        options = options_from_dict({"infile": "car.dbc"})
        assert options == GeneratorOptions(infile=Path("car.dbc"))
        assert options.uid == "dbc"
        assert options.header is HeaderMode.DEFAULT
        assert options.range_check and options.serde_json

    def test_all_fields(self) -> None:
        options = options_from_dict({
            "infile": "car.dbc",
            "outfile": "car_dbc.py",
            "uid": "my-car",
            "header": "custom",
            "header_file": "hdr.txt",
            "range_check": False,
            "serde_json": False,
            "whitelist": [257, 513],
            "blacklist": [513],
        })
        assert options.outfile == Path("car_dbc.py")
        assert options.header is HeaderMode.CUSTOM
        assert options.header_file == Path("hdr.txt")
        assert not options.range_check
        assert not options.serde_json
        assert options.whitelist == frozenset({257, 513})
        assert options.blacklist == frozenset({513})

    def test_not_a_mapping(self) -> None:
        with pytest.raises(ValueError, match="expected a YAML mapping"):
            options_from_dict(["infile"])

    def test_missing_infile(self) -> None:
        with pytest.raises(ValueError, match="'infile'"):
            options_from_dict({"uid": "x"})

    def test_unknown_key(self) -> None:
        with pytest.raises(ValueError, match="unknown key\\(s\\) outpt"):
            options_from_dict({"infile": "a.dbc", "outpt": "b.py"})

    def test_invalid_header(self) -> None:
        with pytest.raises(ValueError, match="invalid 'header' 'fancy'"):
            options_from_dict({"infile": "a.dbc", "header": "fancy"})

    def test_custom_header_needs_file(self) -> None:
        with pytest.raises(ValueError, match="requires 'header_file'"):
            options_from_dict({"infile": "a.dbc", "header": "custom"})

    def test_bool_type_checked(self) -> None:
        with pytest.raises(ValueError, match="'range_check' \\(expected boolean\\)"):
            options_from_dict({"infile": "a.dbc", "range_check": "yes"})

    @pytest.mark.parametrize("ids", [[-1], ["0x101"], [True], 257])
    def test_id_list_type_checked(self, ids: object) -> None:
        with pytest.raises(ValueError, match="'whitelist'"):
            options_from_dict({"infile": "a.dbc", "whitelist": ids})


# ============================================================================
# FILES
# ============================================================================

class TestConfigFiles:
    """Test load_config and save_config"""

    def test_round_trip(self, tmp_path: Path) -> None:
        options = GeneratorOptions(
            infile=Path("car.dbc"),
            outfile=Path("car_dbc.py"),
            uid="my-car",
            header=HeaderMode.NONE,
            whitelist=frozenset({0x201, 0x101}),
        )
        path = tmp_path / "gen.yaml"
        save_config(path, options)
        assert load_config(path) == options

    def test_saved_layout(self, tmp_path: Path) -> None:
        path = tmp_path / "gen.yaml"
        save_config(path, GeneratorOptions(infile=Path("car.dbc"), blacklist=frozenset({3, 1})))
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
        assert data == {
            "infile": "car.dbc",
            "uid": "dbc",
            "header": "default",
            "range_check": True,
            "serde_json": True,
            "blacklist": [1, 3],
        }

    def test_load_missing(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.yaml")

    def test_load_empty_file(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.yaml"
        path.write_text("")
        with pytest.raises(ValueError, match="expected a YAML mapping"):
            load_config(path)


# ============================================================================
# BUILDER
# ============================================================================

class TestParser:
    """Test GeneratorOptions.parser"""

    def test_no_header(self, sample_db: Database) -> None:
        options = GeneratorOptions(infile=Path("car.dbc"), header=HeaderMode.NONE)
        source = options.parser().database(sample_db).gen_time("t").render()
        assert source.startswith("# - code generated from car.dbc (t)")

    def test_custom_header(self, sample_db: Database, tmp_path: Path) -> None:
        header = tmp_path / "hdr.txt"
        header.write_text("Property of ACME\n")
        options = GeneratorOptions(
            infile=Path("car.dbc"), header=HeaderMode.CUSTOM, header_file=header,
        )
        source = options.parser().database(sample_db).render()
        assert source.startswith("# Property of ACME\n")

    def test_default_header_and_filters(self, sample_db: Database) -> None:
        options = GeneratorOptions(
            infile=Path("car.dbc"), uid="car", whitelist=frozenset({0x101}),
        )
        source = options.parser().database(sample_db).render()
        assert source.startswith(DEFAULT_HEADER)
        assert "UID = 'car'" in source
        assert "IDS = (0x101,)" in source
        assert "class BrakeStatus" not in source

    def test_flags(self, sample_db: Database) -> None:
        options = GeneratorOptions(infile=Path("car.dbc"), range_check=False, serde_json=False)
        source = options.parser().database(sample_db).render()
        assert "invalid-signal-value" not in source
        assert "to_json" not in source
