"""Tests for the stub generator that merges type stubs with module stubs.

Tests:
- generate_module: type classes without the export table, then functions
- generate_combined / generate_types
- generate(GenerateConfig) file output
- write_modules: per-module files, shared types file, unknown modules
"""

from dataclasses import dataclass, field
from pathlib import Path

import pytest

from luabridge.config import GenerateConfig
from luabridge.errors import StubLookupError
from luabridge.stubgen import StubGenerator, strip_export_table
from luabridge.type_registry import EXPORT_HEADER

TESTDATA = Path(__file__).parent / "testdata"
PREFIX = __name__.rsplit(".", 1)[-1]


@dataclass
class Record:
    id: str
    tags: list[str] = field(default_factory=list)


def _make_generator(*types):
    gen = StubGenerator()
    gen.scan_directory(TESTDATA)
    for tp in types:
        gen.register_type(tp)
    gen.process_types()
    return gen


RECORD_CLASS = f"""\
---@class {PREFIX}.Record
---@field id string
---@field tags string[]"""


class TestStripExportTable:
    def test_keeps_class_blocks(self):
        stubs = f"---@class a.B\n---@field x number\n\n{EXPORT_HEADER}\nlocal types = {{\n}}\n\nreturn types\n"
        assert strip_export_table(stubs) == "---@class a.B\n---@field x number"

    def test_empty_registry(self):
        assert strip_export_table(f"{EXPORT_HEADER}\nlocal types = {{\n}}\n") == ""


class TestGenerateModule:
    def test_without_types_is_function_stub(self):
        gen = _make_generator()
        assert gen.generate_module("log") == gen.extractor.generate_module_stub("log")

    def test_types_precede_functions(self):
        gen = _make_generator(Record)
        result = gen.generate_module("log")
        assert result == RECORD_CLASS + "\n\n" + gen.extractor.generate_module_stub("log")
        assert EXPORT_HEADER not in result

    def test_unknown_module(self):
        with pytest.raises(StubLookupError):
            _make_generator(Record).generate_module("nope")

    def test_lookup_error_is_a_lookup_error(self):
        with pytest.raises(LookupError):
            _make_generator().generate_module("nope")


class TestGenerateCombined:
    def test_combined_with_types(self):
        gen = _make_generator(Record)
        result = gen.generate_combined()
        assert result.startswith(RECORD_CLASS + "\n\n---@meta\n")
        assert "--- custom_annotations module" in result
        assert "--- log module" in result

    def test_combined_without_types(self):
        gen = _make_generator()
        assert gen.generate_combined() == gen.extractor.generate_stubs()

    def test_generate_types_keeps_export_table(self):
        gen = _make_generator(Record)
        assert gen.generate_types() == gen.registry.generate_stubs()
        assert f'["{PREFIX}.Record"] = {{}},' in gen.generate_types()


class TestGenerate:
    def test_default_output_file(self, tmp_path):
        config = GenerateConfig(scan_dir=TESTDATA, output_dir=tmp_path, module_name="log", types=[Record])
        path = StubGenerator().generate(config)
        assert path == tmp_path / "log.gen.lua"
        text = path.read_text(encoding="utf-8")
        assert text.startswith(RECORD_CLASS)
        assert text.endswith("return log\n")

    def test_custom_output_file(self, tmp_path):
        config = GenerateConfig(
            scan_dir=TESTDATA, output_dir=tmp_path / "nested", module_name="custom_annotations",
            output_file="custom.lua",
        )
        path = StubGenerator().generate(config)
        assert path == tmp_path / "nested" / "custom.lua"
        assert "---@alias ID string|number" in path.read_text(encoding="utf-8")

    def test_unknown_module_writes_nothing(self, tmp_path):
        config = GenerateConfig(scan_dir=TESTDATA, output_dir=tmp_path, module_name="nope")
        with pytest.raises(StubLookupError):
            StubGenerator().generate(config)
        assert list(tmp_path.iterdir()) == []


class TestWriteModules:
    def test_every_module_plus_types(self, tmp_path):
        gen = _make_generator(Record)
        written = gen.write_modules(tmp_path, types_file="types.gen.lua")
        assert written == [
            tmp_path / "custom_annotations.gen.lua",
            tmp_path / "log.gen.lua",
            tmp_path / "types.gen.lua",
        ]
        assert (tmp_path / "types.gen.lua").read_text(encoding="utf-8") == gen.generate_types()
        assert (tmp_path / "log.gen.lua").read_text(encoding="utf-8") == gen.generate_module("log")

    def test_selected_modules(self, tmp_path):
        gen = _make_generator()
        written = gen.write_modules(tmp_path, modules=["log"], types_file="types.gen.lua")
        assert written == [tmp_path / "log.gen.lua"]

    def test_no_types_file_without_types(self, tmp_path):
        _make_generator().write_modules(tmp_path, types_file="types.gen.lua")
        assert not (tmp_path / "types.gen.lua").exists()

    def test_unknown_module_writes_nothing(self, tmp_path):
        gen = _make_generator()
        with pytest.raises(StubLookupError, match="nope"):
            gen.write_modules(tmp_path, modules=["log", "nope"])
        assert list(tmp_path.iterdir()) == []
