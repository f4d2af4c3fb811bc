"""Docstring annotation mining for Lua module stubs.

Python sources are parsed with ``ast`` (never imported) and their docstrings
are read in source order. Tags recognised inside a docstring:

    @luamodule <name>                     start (or resume) a Lua module
    @luafunc <name>                       export a module function
    @luamethod <Class> <name>             export a method of a module class
    @luaclass <Name>                      declare a data class ...
    @luafield <name> <type> [desc]        ... and its fields
    @luaconst <NAME> <type> [desc]        declare a module constant
    @luaparam <name> <type> [desc]        function/method parameter
    @luareturn <type> [desc]              function/method return value
    @luaannotation <text>                 emitted verbatim as ``---<text>``

Free text before ``@luafunc``/``@luamethod`` becomes the description. A
docstring that carries none of the export tags is ordinary documentation.
"""

from __future__ import annotations

import ast
import inspect
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator

from luabridge.errors import ScanError, StubLookupError

log = logging.getLogger(__name__)


@dataclass(slots=True)
class ParamDoc:
    name: str
    type: str
    description: str = ""


@dataclass(slots=True)
class ReturnDoc:
    type: str
    description: str = ""


@dataclass(slots=True)
class FunctionDoc:
    name: str
    description: str = ""
    params: list[ParamDoc] = field(default_factory=list)
    returns: list[ReturnDoc] = field(default_factory=list)
    annotations: list[str] = field(default_factory=list)


@dataclass(slots=True)
class FieldDoc:
    name: str
    type: str
    description: str = ""


@dataclass(slots=True)
class ClassDoc:
    name: str
    description: str = ""
    fields: list[FieldDoc] = field(default_factory=list)
    methods: list[FunctionDoc] = field(default_factory=list)
    annotations: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ConstDoc:
    name: str
    type: str
    description: str = ""


@dataclass(slots=True)
class ModuleDoc:
    name: str
    functions: list[FunctionDoc] = field(default_factory=list)
    classes: list[ClassDoc] = field(default_factory=list)
    constants: list[ConstDoc] = field(default_factory=list)
    annotations: list[str] = field(default_factory=list)

    def get_class(self, name: str) -> ClassDoc:
        for cls in self.classes:
            if cls.name == name:
                return cls
        cls = ClassDoc(name=name)
        self.classes.append(cls)
        return cls


def is_test_file(path: Path) -> bool:
    name = path.name
    return name.startswith("test_") or name.endswith("_test.py") or name == "conftest.py"


class AnnotationExtractor:
    """Collects Lua module definitions from annotated Python docstrings."""

    def __init__(self) -> None:
        self._modules: dict[str, ModuleDoc] = {}

    # ── Scanning ─────────────────────────────────────────────────

    def scan_directory(self, path: str | Path) -> None:
        """Parse every non-test ``*.py`` file under ``path`` in sorted order."""
        root = Path(path)
        if not root.is_dir():
            raise ScanError(f"not a directory: {root}")
        for source_file in sorted(root.rglob("*.py")):
            rel = source_file.relative_to(root)
            if any(part.startswith(".") or part == "__pycache__" for part in rel.parts[:-1]):
                continue
            if is_test_file(source_file):
                log.debug("Skipping test file %s", source_file)
                continue
            self.parse_file(source_file)

    def parse_file(self, path: str | Path) -> None:
        path = Path(path)
        try:
            source = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ScanError(f"failed to read {path}: {e}") from e
        self.parse_source(source, str(path))

    def parse_source(self, source: str, filename: str = "<string>") -> None:
        """Extract annotations from one file's source. Module context resets per file."""
        try:
            tree = ast.parse(source, filename=filename)
        except SyntaxError as e:
            raise ScanError(f"failed to parse {filename}: {e}") from e

        current: ModuleDoc | None = None
        for doc in _iter_docstrings(tree):
            lines = [line.strip() for line in doc.splitlines()]

            name = _module_name(lines)
            if name:
                current = self._modules.get(name)
                if current is None:
                    current = ModuleDoc(name=name)
                    self._modules[name] = current
                    log.debug("Discovered Lua module %s in %s", name, filename)
                current.annotations.extend(_custom_annotations(lines))
                continue

            if current is None:
                continue

            fn = _extract_function(lines, "@luafunc ")
            if fn is not None:
                current.functions.append(fn)
                continue

            method = _extract_method(lines)
            if method is not None:
                class_name, fn = method
                current.get_class(class_name).methods.append(fn)
                continue

            cls = _extract_class(lines)
            if cls is not None:
                existing = current.get_class(cls.name)
                existing.fields.extend(cls.fields)
                existing.annotations.extend(cls.annotations)
                if not existing.description:
                    existing.description = cls.description

            current.constants.extend(_extract_constants(lines))

    # ── Access ───────────────────────────────────────────────────

    def get_modules(self) -> dict[str, ModuleDoc]:
        return dict(self._modules)

    @property
    def module_count(self) -> int:
        return len(self._modules)

    # ── Rendering ────────────────────────────────────────────────

    def generate_stubs(self) -> str:
        """One combined ``---@meta`` file holding every module's functions."""
        out: list[str] = ["---@meta", ""]
        names = sorted(self._modules)
        for name in names:
            module = self._modules[name]
            out.append(f"--- {name} module")
            out.extend(f"---{a}" for a in module.annotations)
            out.append(f"---@class {name}")
            out.append(f"local {name} = {{}}")
            out.append("")
            for fn in module.functions:
                out.extend(_render_function(fn, f"{name}.{fn.name}", skip_self=False))
        if names:
            out.append("return {}")
        return "\n".join(out) + "\n"

    def generate_module_stub(self, name: str) -> str:
        """Render one module as a self-contained ``---@meta <name>`` file."""
        module = self._modules.get(name)
        if module is None:
            raise StubLookupError(f"module {name} not found")

        out: list[str] = [f"---@meta {name}", ""]
        out.extend(f"---{a}" for a in module.annotations)

        prefix = name + "."
        namespaced: list[str] = []
        for cls in module.classes:
            out.append(f"---@class {cls.name}")
            out.extend(f"---{a}" for a in cls.annotations)
            for fd in cls.fields:
                out.append(_join("---@field", fd.name, fd.type, fd.description))
            local = cls.name
            if cls.name.startswith(prefix):
                local = cls.name[len(prefix):]
                namespaced.append(local)
            if cls.methods:
                out.append(f"local {local} = {{}}")
            out.append("")
            for method in cls.methods:
                out.extend(_render_function(method, f"{local}:{method.name}", skip_self=True))

        out.append(f"---@class {name}")
        for local in namespaced:
            out.append(f"---@field {local} {prefix}{local}")
        out.append(f"local {name} = {{}}")
        out.append("")

        for fn in module.functions:
            out.extend(_render_function(fn, f"{name}.{fn.name}", skip_self=False))

        for const in module.constants:
            out.append(_join("---@type", const.type, const.description))
            out.append(f"{name}.{const.name} = nil")
            out.append("")

        for local in namespaced:
            out.append(f"{name}.{local} = {local}")
            out.append("")

        out.append(f"return {name}")
        return "\n".join(out) + "\n"


# ── Docstring walking ────────────────────────────────────────────


def _iter_docstrings(tree: ast.Module) -> Iterator[str]:
    doc = ast.get_docstring(tree)
    if doc:
        yield doc
    body = tree.body
    if doc:
        body = body[1:]
    for node in body:
        yield from _iter_node(node, top_level=True)


def _iter_node(node: ast.AST, top_level: bool = False) -> Iterator[str]:
    if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
        doc = ast.get_docstring(node)
        if doc:
            yield doc
    elif isinstance(node, ast.ClassDef):
        doc = ast.get_docstring(node)
        if doc:
            yield doc
        for child in node.body:
            yield from _iter_node(child)
    elif top_level and isinstance(node, ast.Expr):
        # Attribute docstrings: a bare string right after a module-level assignment.
        value = node.value
        if isinstance(value, ast.Constant) and isinstance(value.value, str):
            yield inspect.cleandoc(value.value)


# ── Tag parsing ──────────────────────────────────────────────────


def _tag_value(line: str, tag: str) -> str | None:
    if line.startswith(tag):
        return line[len(tag):].strip()
    return None


def _module_name(lines: list[str]) -> str:
    for line in lines:
        value = _tag_value(line, "@luamodule ")
        if value:
            return value
    return ""


def _custom_annotations(lines: list[str]) -> list[str]:
    result = []
    for line in lines:
        value = _tag_value(line, "@luaannotation ")
        if value:
            result.append(value)
    return result


def _extract_function(lines: list[str], tag: str) -> FunctionDoc | None:
    fn: FunctionDoc | None = None
    description: list[str] = []
    for line in lines:
        value = _tag_value(line, tag)
        if value is not None:
            fn = FunctionDoc(name=value)
            continue
        if fn is None:
            if line and not line.startswith("@"):
                description.append(line)
            continue
        _apply_tag(fn, line)
    if fn is not None:
        fn.description = " ".join(description)
    return fn


def _extract_method(lines: list[str]) -> tuple[str, FunctionDoc] | None:
    for i, line in enumerate(lines):
        value = _tag_value(line, "@luamethod ")
        if value is None:
            continue
        parts = value.split()
        if len(parts) < 2:
            return None
        # Same grammar as a function once the tag line names only the method.
        rewritten = lines[:i] + [f"@luafunc {parts[1]}"] + lines[i + 1:]
        fn = _extract_function(rewritten, "@luafunc ")
        return (parts[0], fn) if fn is not None else None
    return None


def _apply_tag(fn: FunctionDoc, line: str) -> None:
    value = _tag_value(line, "@luaparam ")
    if value is not None:
        parts = value.split(None, 2)
        if len(parts) >= 2:
            fn.params.append(ParamDoc(*parts))
        return
    value = _tag_value(line, "@luareturn ")
    if value is not None:
        parts = value.split(None, 1)
        if parts:
            fn.returns.append(ReturnDoc(*parts))
        return
    value = _tag_value(line, "@luaannotation ")
    if value:
        fn.annotations.append(value)


def _extract_class(lines: list[str]) -> ClassDoc | None:
    cls: ClassDoc | None = None
    description: list[str] = []
    for line in lines:
        value = _tag_value(line, "@luaclass ")
        if value:
            cls = ClassDoc(name=value)
            continue
        if cls is None:
            if line and not line.startswith("@"):
                description.append(line)
            continue
        value = _tag_value(line, "@luafield ")
        if value is not None:
            parts = value.split(None, 2)
            if len(parts) >= 2:
                cls.fields.append(FieldDoc(*parts))
            continue
        value = _tag_value(line, "@luaannotation ")
        if value:
            cls.annotations.append(value)
    if cls is not None:
        cls.description = " ".join(description)
    return cls


def _extract_constants(lines: list[str]) -> list[ConstDoc]:
    result = []
    for line in lines:
        value = _tag_value(line, "@luaconst ")
        if value is None:
            continue
        parts = value.split(None, 2)
        if len(parts) >= 2:
            result.append(ConstDoc(*parts))
    return result


# ── Rendering helpers ────────────────────────────────────────────


def _join(*parts: str) -> str:
    return " ".join(p for p in parts if p)


def _render_function(fn: FunctionDoc, signature: str, skip_self: bool) -> list[str]:
    params = [p for p in fn.params if not (skip_self and p.name == "self")]
    out = [_join("---@param", p.name, p.type, p.description) for p in params]
    out.extend(_join("---@return", r.type, r.description) for r in fn.returns)
    out.extend(f"---{a}" for a in fn.annotations)
    out.append(f"function {signature}({', '.join(p.name for p in params)}) end")
    out.append("")
    return out
