"""Stub generation config: YAML loading and type reference resolution.

Example ``stubgen.yaml``::

    scan_dir: src/mylib
    output_dir: library
    types_file: types.gen.lua
    types:
      - mylib.models:Pod
    modules:
      - kubernetes
"""

from __future__ import annotations

import importlib
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

import yaml

from luabridge.errors import ConfigError

log = logging.getLogger(__name__)

DEFAULT_OUTPUT = "module_stubs.gen.lua"
DEFAULT_TYPES_FILE = "types.gen.lua"


@dataclass(slots=True)
class GenerateConfig:
    """Inputs for a single-module StubGenerator.generate run."""

    scan_dir: str | Path
    output_dir: str | Path
    module_name: str
    output_file: str = ""  # defaults to "<module_name>.gen.lua"
    types: list[Any] = field(default_factory=list)


@dataclass(slots=True)
class StubgenConfig:
    scan_dir: str = "."
    output_dir: str = ""  # empty: write one combined file to `output`
    output: str = DEFAULT_OUTPUT
    types_file: str = DEFAULT_TYPES_FILE
    types: list[str] = field(default_factory=list)
    modules: list[str] = field(default_factory=list)  # empty: every discovered module


_KEYS: dict[str, type] = {
    "scan_dir": str,
    "output_dir": str,
    "output": str,
    "types_file": str,
    "types": list,
    "modules": list,
}


def load_config(path: str | Path) -> StubgenConfig:
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"cannot read config {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {path}: {e}") from e
    log.debug("Loaded stubgen config from %s", path)
    return parse_config(raw if raw is not None else {}, source=str(path))


def parse_config(raw: Any, source: str = "<config>") -> StubgenConfig:
    if not isinstance(raw, dict):
        raise ConfigError(f"{source}: expected a mapping at the top level")
    unknown = sorted(set(raw) - set(_KEYS))
    if unknown:
        raise ConfigError(f"{source}: unknown keys: {', '.join(map(str, unknown))}")

    values: dict[str, Any] = {}
    for key, kind in _KEYS.items():
        value = raw.get(key)
        if value is None:
            continue
        if kind is list:
            if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                raise ConfigError(f"{source}: {key} must be a list of strings")
        elif not isinstance(value, str):
            raise ConfigError(f"{source}: {key} must be a string")
        values[key] = value
    return StubgenConfig(**values)


def resolve_type(ref: str) -> Any:
    """Import the object named by ``"package.module:Qualified.Name"``."""
    module_name, sep, qualname = ref.partition(":")
    if not sep or not module_name or not qualname:
        raise ConfigError(f"type reference {ref!r} must look like 'package.module:ClassName'")
    try:
        obj: Any = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigError(f"cannot import {module_name} for {ref!r}: {e}") from e
    for attr in qualname.split("."):
        try:
            obj = getattr(obj, attr)
        except AttributeError as e:
            raise ConfigError(f"{module_name} has no attribute {qualname!r}") from e
    return obj


def reload_modules(paths: Iterable[str | Path]) -> list[str]:
    """Reload already-imported modules whose source file is one of ``paths``.

    ``resolve_type`` goes through the import cache, so edited dataclasses only
    reach the registry after their module is reloaded. Returns the reloaded
    module names; a module that fails to reload keeps its previous version.
    """
    targets = {Path(p).resolve() for p in paths}
    reloaded = []
    for name, module in sorted(sys.modules.items()):
        source = getattr(module, "__file__", None)
        if not source or Path(source).resolve() not in targets:
            continue
        try:
            importlib.reload(module)
            reloaded.append(name)
            log.info("Reloaded: %s", name)
        except Exception:
            log.exception("Failed to reload: %s", name)
    return reloaded
