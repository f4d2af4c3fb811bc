"""Lua script runtime: one LuaRuntime, the Python modules exposed to it, and value translation.

Provides ScriptRuntime for registering ``require``-able Python modules,
loading Lua sources and crossing values through the Translator.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Callable, Mapping

from lupa import LuaError, LuaRuntime

from luabridge.errors import RuntimeAffinityError
from luabridge.translator import Translator

log = logging.getLogger(__name__)


class ScriptRuntime:
    """Owns one Lua runtime plus the modules and scripts loaded into it.

    A LuaRuntime must not be shared between threads: the runtime remembers
    the thread that created it and refuses calls from any other. Create one
    ScriptRuntime per thread instead.
    """

    def __init__(self, translator: Translator | None = None) -> None:
        self._lua = LuaRuntime(unpack_returned_tuples=True)
        self._owner = threading.get_ident()
        self.translator = translator or Translator()
        self._modules: dict[str, Any] = {}          # module name → Lua table
        self._loaded_scripts: dict[str, str] = {}   # key → source

    def _check_thread(self) -> None:
        if threading.get_ident() != self._owner:
            raise RuntimeAffinityError(
                "ScriptRuntime used from a thread other than the one that created it"
            )

    @property
    def lua(self) -> LuaRuntime:
        self._check_thread()
        return self._lua

    # ── Modules ──────────────────────────────────────────────────

    def register_module(self, name: str, functions: Mapping[str, Callable[..., Any]]) -> None:
        """Make ``functions`` loadable from Lua with ``require(name)``."""
        self._check_thread()
        table = self._lua.table_from(dict(functions))
        self._lua.globals().package.loaded[name] = table
        self._modules[name] = table
        log.debug("Lua module registered: %s (%d functions)", name, len(functions))

    # ── Loading ──────────────────────────────────────────────────

    def load_source(self, source: str, key: str = "<inline>") -> None:
        """Execute a Lua source string and remember it under ``key``."""
        self._check_thread()
        try:
            self._lua.execute(source)
        except LuaError as e:
            log.error("Failed to load Lua source %s: %s", key, e)
            raise
        self._loaded_scripts[key] = source

    def load_file(self, path: str | Path) -> None:
        path = Path(path)
        self.load_source(path.read_text(encoding="utf-8"), str(path))

    def load_directory(self, path: str | Path) -> int:
        """Load every ``*.lua`` file under ``path`` in sorted order. Returns the count."""
        root = Path(path)
        count = 0
        for lua_file in sorted(root.rglob("*.lua")):
            self.load_source(lua_file.read_text(encoding="utf-8"),
                             lua_file.relative_to(root).as_posix())
            count += 1
            log.debug("Loaded Lua script %s", lua_file)
        return count

    # ── Execution ────────────────────────────────────────────────

    def execute(self, source: str) -> Any:
        self._check_thread()
        try:
            return self._lua.execute(source)
        except LuaError as e:
            log.error("Lua execute failed: %s", e)
            raise

    def eval(self, expression: str) -> Any:
        self._check_thread()
        try:
            return self._lua.eval(expression)
        except LuaError as e:
            log.error("Lua eval failed: %s", e)
            raise

    def call(self, name: str, *args: Any, output: Any = None) -> Any:
        """Call global Lua function ``name`` with translated arguments.

        With ``output`` the result is translated back into it; otherwise the
        raw Lua value is returned.
        """
        self._check_thread()
        fn = self._lua.globals()[name]
        if fn is None:
            raise LookupError(f"no Lua global named {name!r}")
        lua_args = [self.translator.to_lua(self._lua, arg) for arg in args]
        try:
            result = fn(*lua_args)
        except LuaError as e:
            log.error("Lua function %s failed: %s", name, e)
            raise
        if output is None:
            return result
        return self.translator.from_lua(result, output)

    # ── Values ───────────────────────────────────────────────────

    def to_lua(self, value: Any) -> Any:
        self._check_thread()
        return self.translator.to_lua(self._lua, value)

    def from_lua(self, value: Any, output: Any) -> Any:
        self._check_thread()
        return self.translator.from_lua(value, output)

    def set_global(self, name: str, value: Any) -> None:
        self._check_thread()
        self._lua.globals()[name] = self.translator.to_lua(self._lua, value)

    def get_global(self, name: str, output: Any = Any) -> Any:
        self._check_thread()
        return self.translator.from_lua(self._lua.globals()[name], output)

    # ── Info ─────────────────────────────────────────────────────

    @property
    def module_names(self) -> list[str]:
        return sorted(self._modules)

    @property
    def loaded_scripts(self) -> dict[str, str]:
        return dict(self._loaded_scripts)
