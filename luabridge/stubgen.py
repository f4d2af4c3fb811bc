"""Stub generator: merges type stubs and docstring function stubs per Lua module."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable

from luabridge.annotations import AnnotationExtractor
from luabridge.config import GenerateConfig
from luabridge.errors import StubLookupError
from luabridge.type_registry import EXPORT_HEADER, TypeRegistry

log = logging.getLogger(__name__)


def strip_export_table(stubs: str) -> str:
    """Drop the registry's trailing export table, keeping only class blocks."""
    head, _, _ = stubs.partition(EXPORT_HEADER)
    return head.strip()


class StubGenerator:
    """Combines a TypeRegistry and an AnnotationExtractor.

    Per-module files carry the type classes without the export table, which
    is written once to a shared types file by ``generate_types``.
    """

    def __init__(self, registry: TypeRegistry | None = None,
                 extractor: AnnotationExtractor | None = None) -> None:
        self.registry = registry or TypeRegistry()
        self.extractor = extractor or AnnotationExtractor()

    def scan_directory(self, path: str | Path) -> None:
        self.extractor.scan_directory(path)

    def register_type(self, obj: Any) -> None:
        self.registry.register(obj)

    def process_types(self) -> None:
        self.registry.process()

    def generate_module(self, name: str) -> str:
        """Type classes followed by the module's function stubs."""
        if name not in self.extractor.get_modules():
            raise StubLookupError(f"module {name} not found")
        function_stubs = self.extractor.generate_module_stub(name)
        type_stubs = strip_export_table(self.registry.generate_stubs())
        if not type_stubs:
            return function_stubs
        return f"{type_stubs}\n\n{function_stubs}"

    def generate_types(self) -> str:
        return self.registry.generate_stubs()

    def generate_combined(self) -> str:
        """Every module in one file, preceded by the type classes."""
        function_stubs = self.extractor.generate_stubs()
        type_stubs = strip_export_table(self.registry.generate_stubs())
        if not type_stubs:
            return function_stubs
        return f"{type_stubs}\n\n{function_stubs}"

    def generate(self, config: GenerateConfig) -> Path:
        """Scan, register, process and write one module's stub file."""
        self.scan_directory(config.scan_dir)
        for obj in config.types:
            self.register_type(obj)
        self.process_types()

        stubs = self.generate_module(config.module_name)
        output_file = config.output_file or f"{config.module_name}.gen.lua"
        return _write(Path(config.output_dir) / output_file, stubs)

    def write_modules(self, output_dir: str | Path, modules: Iterable[str] | None = None,
                      types_file: str | None = None) -> list[Path]:
        """Write ``<name>.gen.lua`` per module, plus the shared types file if any types exist."""
        output_dir = Path(output_dir)
        known = self.extractor.get_modules()
        names = list(modules) if modules else sorted(known)
        missing = [name for name in names if name not in known]
        if missing:
            raise StubLookupError(f"modules not found: {', '.join(missing)}")
        written = [_write(output_dir / f"{name}.gen.lua", self.generate_module(name)) for name in names]
        if types_file and self.registry.type_count:
            written.append(_write(output_dir / types_file, self.generate_types()))
        return written


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    log.info("Generated %s", path)
    return path
