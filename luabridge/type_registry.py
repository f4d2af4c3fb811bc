"""Type discovery and LuaLS class stub generation for Python dataclasses.

Registered roots are walked recursively: primitives map to Lua markers,
sequences and mappings wrap their element marker, and every dataclass found
along the way gets exactly one ``---@class`` block. A dataclass is entered in
the registry before its fields are walked, so self-referential and mutually
referential types resolve to the existing entry instead of recursing forever.
"""

from __future__ import annotations

import collections
import collections.abc
import datetime
import enum
import logging
import re
import typing
from dataclasses import dataclass, field
from typing import Any

from luabridge.errors import RegistrationError
from luabridge.fields import field_types, is_record, strip_optional, tagged_fields

log = logging.getLogger(__name__)

ANY = "any"
EXPORT_HEADER = "-- Export all types for convenience"

_SEQUENCE_TYPES = (
    list, tuple, set, frozenset,
    collections.abc.Sequence, collections.abc.MutableSequence,
    collections.abc.Set, collections.abc.MutableSet, collections.abc.Iterable,
)
_MAPPING_TYPES = (dict, collections.abc.Mapping, collections.abc.MutableMapping)

# <group>/<version> pairs under an ``api`` package, e.g. myapp.api.core.v1
_API_VERSION = re.compile(r"^v\d+(?:(?:alpha|beta)\d+)?$")


@dataclass(slots=True)
class FieldDescriptor:
    name: str
    type_key: str
    is_array: bool = False


@dataclass(slots=True)
class TypeDescriptor:
    name: str                 # Lua-facing name, e.g. "corev1.Pod"
    key: str                  # identity key, module + qualified name
    host_type: Any = None
    fields: dict[str, FieldDescriptor] = field(default_factory=dict)
    is_array: bool = False
    element_key: str = ""


class TypeRegistry:
    """Discovers dataclass types and renders them as Lua annotations."""

    def __init__(self) -> None:
        self._types: dict[str, TypeDescriptor] = {}
        self._queue: collections.deque[Any] = collections.deque()

    def register(self, obj: Any) -> None:
        """Queue a root type for processing.

        ``obj`` may be a class, a typing form such as ``list[Pod]``, or an
        instance whose class is used.
        """
        if obj is None:
            raise RegistrationError("cannot register None")
        if isinstance(obj, type) or typing.get_origin(obj) is not None:
            self._queue.append(obj)
        else:
            self._queue.append(type(obj))

    def process(self) -> None:
        """Drain the queue in FIFO order, discovering every reachable type."""
        while self._queue:
            self.resolve(self._queue.popleft())

    def resolve(self, tp: Any) -> str:
        """Return the Lua type marker for ``tp``, registering dataclasses on the way."""
        tp, _ = strip_optional(tp)

        marker = _primitive_marker(tp)
        if marker:
            return marker

        origin = typing.get_origin(tp)
        container = origin or tp
        args = typing.get_args(tp)

        if container in _SEQUENCE_TYPES:
            return self._resolve_sequence(container, args) + "[]"
        if container in _MAPPING_TYPES:
            value = self.resolve(args[1]) if len(args) == 2 else ANY
            return f"table<string, {value}>"
        if is_record(tp):
            return self._resolve_record(tp)
        return ANY

    def _resolve_sequence(self, container: Any, args: tuple) -> str:
        if not args:
            return ANY
        if container is tuple:
            if len(args) == 2 and args[1] is Ellipsis:
                return self.resolve(args[0])
            markers = {self.resolve(arg) for arg in args}
            return markers.pop() if len(markers) == 1 else ANY
        return self.resolve(args[0])

    def _resolve_record(self, tp: type) -> str:
        key = type_key(tp)
        existing = self._types.get(key)
        if existing is not None:
            return existing.name

        info = TypeDescriptor(name=type_name(tp), key=key, host_type=tp)
        self._types[key] = info
        log.debug("Registered type %s (%s)", info.name, key)

        hints = field_types(tp)
        for tf in tagged_fields(tp):
            hint = hints.get(tf.field.name, Any)
            if isinstance(hint, (str, typing.ForwardRef)):
                log.debug("Unresolved annotation %r on %s.%s", hint, info.name, tf.field.name)
                marker = ANY
            else:
                marker = self.resolve(hint)
            info.fields[tf.name] = FieldDescriptor(
                name=tf.name, type_key=marker, is_array=marker.endswith("[]"),
            )
        return info.name

    def generate_stubs(self) -> str:
        """Render every registered type as ``---@class``/``---@field`` lines.

        Classes are ordered by identity key and fields by name, followed by a
        table exporting every type name, so identical registrations always
        produce identical text.
        """
        lines: list[str] = []
        keys = sorted(self._types)
        for key in keys:
            info = self._types[key]
            lines.append(f"---@class {info.name}")
            for name in sorted(info.fields):
                lines.append(f"---@field {name} {info.fields[name].type_key}")
            lines.append("")

        lines.append(EXPORT_HEADER)
        lines.append("local types = {")
        for name in sorted(self._types[key].name for key in keys):
            lines.append(f'  ["{name}"] = {{}},')
        lines.append("}")
        lines.append("")
        lines.append("return types")
        return "\n".join(lines) + "\n"

    def get_types(self) -> dict[str, TypeDescriptor]:
        return dict(self._types)

    @property
    def type_count(self) -> int:
        return len(self._types)


def type_key(tp: type) -> str:
    """Identity key: defining module plus qualified name, never shown to Lua."""
    return f"{tp.__module__}.{tp.__qualname__}"


def type_name(tp: type) -> str:
    """Lua-facing name: ``<module>.<Class>``, or ``<group><version>.<Class>`` for API packages."""
    parts = tp.__module__.split(".")
    for i, part in enumerate(parts):
        if part == "api" and i + 2 < len(parts) and _API_VERSION.match(parts[i + 2]):
            return f"{parts[i + 1]}{parts[i + 2]}.{tp.__name__}"
    return f"{parts[-1]}.{tp.__name__}"


def _primitive_marker(tp: Any) -> str:
    if tp is Any or tp is object:
        return ANY
    if not isinstance(tp, type) or typing.get_origin(tp) is not None:
        return ""
    if issubclass(tp, bool):
        return "boolean"
    if issubclass(tp, (int, float)):
        return "number"
    if issubclass(tp, str):
        return "string"
    if issubclass(tp, (datetime.date, datetime.time)):
        return "string"
    if issubclass(tp, enum.Enum):
        return _enum_marker(tp)
    return ""


def _enum_marker(tp: type[enum.Enum]) -> str:
    kinds = {_primitive_marker(type(member.value)) for member in tp}
    if len(kinds) == 1:
        return kinds.pop() or ANY
    return ANY
