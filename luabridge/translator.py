"""Value translation between Python and Lua.

Both directions go through one JSON intermediate form: Python values are
dumped and re-parsed into plain dicts/lists before being turned into Lua
tables, and Lua values are walked into plain dicts/lists, round-tripped
through JSON and decoded into the requested Python type. There is a single
array-vs-map rule and a single numeric rule (double precision), at the cost
of rounding integers above 2**53.
"""

from __future__ import annotations

import collections.abc
import dataclasses
import datetime
import enum
import json
import logging
import types
import typing
from typing import TYPE_CHECKING, Any

from lupa import lua_type

from luabridge.errors import DeserializationError, SerializationError
from luabridge.fields import field_types, is_record, strip_optional, tagged_fields

if TYPE_CHECKING:
    from lupa import LuaRuntime

log = logging.getLogger(__name__)

# Largest integer magnitude a double holds exactly. Anything beyond crosses
# the boundary as the nearest double.
MAX_SAFE_INTEGER = 2**53

# Tables nested deeper than this are rejected; also the cycle guard.
MAX_TABLE_DEPTH = 200

_SEQUENCE_TYPES = (
    list, tuple, set, frozenset,
    collections.abc.Sequence, collections.abc.MutableSequence,
    collections.abc.Set, collections.abc.MutableSet, collections.abc.Iterable,
)
_SET_TYPES = (set, collections.abc.Set, collections.abc.MutableSet)
_MAPPING_TYPES = (dict, collections.abc.Mapping, collections.abc.MutableMapping)


class Translator:
    """Converts Python values to Lua values and back.

    Holds no state; one instance can serve any number of runtimes, but every
    table it builds belongs to the runtime passed to ``to_lua``.
    """

    def to_lua(self, lua: LuaRuntime, value: Any) -> Any:
        """Convert ``value`` into a Lua value owned by ``lua``.

        Dataclasses are encoded by their ``json`` field tags, enums by value,
        dates as ISO 8601 strings and sets as sorted sequences. Raises
        SerializationError for values JSON cannot represent (functions, NaN, ...).
        """
        data = json.loads(_dumps(value), parse_int=_parse_int)
        return self._to_lua_value(lua, data)

    def _to_lua_value(self, lua: LuaRuntime, data: Any) -> Any:
        if isinstance(data, list):
            return lua.table_from([self._to_lua_value(lua, item) for item in data])
        if isinstance(data, dict):
            return lua.table_from(
                {str(key): self._to_lua_value(lua, item) for key, item in data.items()}
            )
        return data

    def from_lua(self, value: Any, output: Any) -> Any:
        """Convert a Lua value into ``output`` and return the result.

        ``output`` is either a type (a new value is built) or a mutable
        dataclass, dict or list instance (updated in place). Lua table handles
        carry their runtime, so none is passed here.
        """
        data = self._from_lua_value(value, "", 0)
        data = json.loads(_dumps(data), parse_int=_parse_int)

        if _is_type_target(output):
            return _decode(data, output, "")
        if is_record(type(output)):
            if type(output).__dataclass_params__.frozen:
                raise DeserializationError(
                    f"output {type(output).__name__} is frozen and cannot be updated"
                )
            _fill_record(output, data, "")
            return output
        if isinstance(output, dict):
            if data is not None:
                if not isinstance(data, dict):
                    raise DeserializationError(f"value: expected object, got {_kind(data)}")
                output.update(data)
            return output
        if isinstance(output, list):
            if data is not None:
                if data == {}:
                    data = []
                if not isinstance(data, list):
                    raise DeserializationError(f"value: expected array, got {_kind(data)}")
                output[:] = data
            return output
        raise DeserializationError(
            "output must be a type or a mutable dataclass, dict or list instance, "
            f"got {type(output).__name__}"
        )

    def _from_lua_value(self, value: Any, path: str, depth: int) -> Any:
        kind = lua_type(value)
        if kind is None:
            if isinstance(value, bytes):
                try:
                    return value.decode("utf-8")
                except UnicodeDecodeError as e:
                    raise SerializationError(f"{_where(path)}: string is not valid UTF-8") from e
            if isinstance(value, int) and not isinstance(value, bool):
                return value if abs(value) <= MAX_SAFE_INTEGER else float(value)
            # Plain Python values (including objects handed through Lua
            # untouched) are left for the JSON encoder to accept or reject.
            return value
        if kind != "table":
            raise SerializationError(f"{_where(path)}: unsupported Lua type {kind}")
        # lupa wraps the same table in a fresh object on every access, so a
        # cycle shows up as unbounded nesting.
        if depth >= MAX_TABLE_DEPTH:
            raise SerializationError(
                f"{_where(path)}: cyclic table or nesting deeper than {MAX_TABLE_DEPTH}"
            )

        items = list(value.items())
        size = _sequence_length(items)
        if size > 0:
            if len(items) > size:
                log.warning("%s: dropping %d non-sequence keys from array table",
                            _where(path), len(items) - size)
            by_index = {key: item for key, item in items if type(key) is int}
            return [
                self._from_lua_value(by_index[i], f"{path}[{i - 1}]", depth + 1)
                for i in range(1, size + 1)
            ]

        result: dict[str, Any] = {}
        for key, item in items:
            name = _key_string(key, path)
            result[name] = self._from_lua_value(item, _join(path, name), depth + 1)
        return result


# ── JSON intermediate form ───────────────────────────────────────


def _dumps(value: Any) -> str:
    try:
        return json.dumps(value, default=_encode, allow_nan=False, ensure_ascii=False)
    except (TypeError, ValueError, RecursionError) as e:
        raise SerializationError(f"failed to serialize {type(value).__name__}: {e}") from e


def _encode(obj: Any) -> Any:
    if is_record(type(obj)):
        out: dict[str, Any] = {}
        for tf in tagged_fields(type(obj)):
            item = getattr(obj, tf.field.name)
            if tf.omitempty and _is_empty(item):
                continue
            out[tf.name] = item
        return out
    if isinstance(obj, enum.Enum):
        return obj.value
    if isinstance(obj, (datetime.date, datetime.time)):
        return obj.isoformat()
    if isinstance(obj, (set, frozenset)):
        # Sorted so the resulting sequence table is stable.
        try:
            return sorted(obj)
        except TypeError:
            return sorted(obj, key=repr)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def _is_empty(value: Any) -> bool:
    if value is None or value is False:
        return True
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value == 0
    if isinstance(value, (str, bytes, list, tuple, dict, set, frozenset)):
        return len(value) == 0
    return False


def _parse_int(text: str) -> int | float:
    n = int(text)
    if abs(n) > MAX_SAFE_INTEGER:
        return float(n)
    return n


# ── Lua table helpers ────────────────────────────────────────────


def _sequence_length(items: list[tuple[Any, Any]]) -> int:
    """Length of the run of integer keys 1..N (0 if key 1 is absent)."""
    int_keys = {key for key, _ in items if type(key) is int}
    n = 0
    while n + 1 in int_keys:
        n += 1
    return n


def _key_string(key: Any, path: str) -> str:
    """Stringify a table key the way Lua's tostring renders it."""
    if isinstance(key, str):
        return key
    if isinstance(key, bytes):
        return key.decode("utf-8", errors="replace")
    if isinstance(key, bool):
        return "true" if key else "false"
    if isinstance(key, int):
        return str(key)
    if isinstance(key, float):
        return format(key, ".14g")
    raise SerializationError(
        f"{_where(path)}: unsupported table key of Lua type {lua_type(key) or type(key).__name__}"
    )


def _join(path: str, name: str) -> str:
    return f"{path}.{name}" if path else name


def _where(path: str) -> str:
    return path or "value"


def _kind(data: Any) -> str:
    if data is None:
        return "null"
    if isinstance(data, bool):
        return "boolean"
    if isinstance(data, (int, float)):
        return "number"
    if isinstance(data, str):
        return "string"
    if isinstance(data, list):
        return "array"
    return "object"


# ── Decoding into Python types ───────────────────────────────────


def _is_type_target(output: Any) -> bool:
    return (
        output is Any
        or typing.get_origin(output) is not None
        or isinstance(output, type)
    )


def _decode(data: Any, tp: Any, path: str) -> Any:
    tp, optional = strip_optional(tp)
    if tp is Any or tp is object or isinstance(tp, (str, typing.ForwardRef)):
        return data
    if data is None:
        return None if optional else zero_value(tp)

    origin = typing.get_origin(tp)
    args = typing.get_args(tp)

    if origin is typing.Union or origin is types.UnionType:
        for arg in args:
            try:
                return _decode(data, arg, path)
            except DeserializationError:
                continue
        raise DeserializationError(f"{_where(path)}: {_kind(data)} matches no member of {tp}")

    if origin is typing.Literal:
        if data in args:
            return data
        raise DeserializationError(f"{_where(path)}: {data!r} is not one of {list(args)}")

    container = origin or tp
    if container in _SEQUENCE_TYPES:
        return _decode_sequence(data, container, args, path)
    if container in _MAPPING_TYPES:
        return _decode_mapping(data, args, path)
    if is_record(tp):
        return _decode_record(data, tp, path)
    if isinstance(tp, type):
        return _decode_scalar(data, tp, path)
    raise DeserializationError(f"{_where(path)}: unsupported target type {tp!r}")


def _decode_sequence(data: Any, container: Any, args: tuple, path: str) -> Any:
    # An empty Lua table reads back as an object; it is a valid empty sequence.
    if data == {}:
        data = []
    if not isinstance(data, list):
        raise DeserializationError(f"{_where(path)}: expected array, got {_kind(data)}")

    if container is tuple and args and not (len(args) == 2 and args[1] is Ellipsis):
        if len(args) != len(data):
            raise DeserializationError(
                f"{_where(path)}: expected {len(args)} items, got {len(data)}"
            )
        return tuple(
            _decode(item, arg, f"{path}[{i}]") for i, (item, arg) in enumerate(zip(data, args))
        )

    elem = args[0] if args else Any
    values = [_decode(item, elem, f"{path}[{i}]") for i, item in enumerate(data)]
    if container is tuple:
        return tuple(values)
    if container is frozenset:
        return frozenset(values)
    if container in _SET_TYPES:
        return set(values)
    return values


def _decode_mapping(data: Any, args: tuple, path: str) -> dict[Any, Any]:
    if not isinstance(data, dict):
        raise DeserializationError(f"{_where(path)}: expected object, got {_kind(data)}")
    key_tp, value_tp = args if len(args) == 2 else (str, Any)
    key_tp, _ = strip_optional(key_tp)
    result: dict[Any, Any] = {}
    for key, item in data.items():
        result[_decode_key(key, key_tp, path)] = _decode(item, value_tp, _join(path, key))
    return result


def _decode_key(key: str, tp: Any, path: str) -> Any:
    if tp is int or tp is float:
        try:
            return tp(key)
        except ValueError as e:
            raise DeserializationError(f"{_where(path)}: key {key!r} is not a {tp.__name__}") from e
    return key


def _decode_record(data: Any, tp: type, path: str) -> Any:
    if not isinstance(data, dict):
        raise DeserializationError(
            f"{_where(path)}: expected object for {tp.__name__}, got {_kind(data)}"
        )
    hints = field_types(tp)
    tagged = {tf.field.name: tf for tf in tagged_fields(tp)}
    kwargs: dict[str, Any] = {}
    for f in dataclasses.fields(tp):
        if not f.init:
            continue
        tf = tagged.get(f.name)
        raw = data.get(tf.name) if tf is not None else None
        hint = hints.get(f.name, Any)
        if raw is None:
            if f.default is not dataclasses.MISSING or f.default_factory is not dataclasses.MISSING:
                continue
            kwargs[f.name] = zero_value(hint)
        else:
            kwargs[f.name] = _decode(raw, hint, _join(path, tf.name))
    try:
        return tp(**kwargs)
    except (TypeError, ValueError) as e:
        raise DeserializationError(f"{_where(path)}: cannot build {tp.__name__}: {e}") from e


def _fill_record(obj: Any, data: Any, path: str) -> None:
    if data is None:
        return
    if not isinstance(data, dict):
        raise DeserializationError(
            f"{_where(path)}: expected object for {type(obj).__name__}, got {_kind(data)}"
        )
    hints = field_types(type(obj))
    for tf in tagged_fields(type(obj)):
        raw = data.get(tf.name)
        if raw is None:
            continue
        setattr(obj, tf.field.name, _decode(raw, hints.get(tf.field.name, Any), _join(path, tf.name)))


def _decode_scalar(data: Any, tp: type, path: str) -> Any:
    if issubclass(tp, enum.Enum):
        try:
            return tp(data)
        except ValueError as e:
            raise DeserializationError(f"{_where(path)}: {data!r} is not a valid {tp.__name__}") from e
    if issubclass(tp, bool):
        if isinstance(data, bool):
            return data
    elif issubclass(tp, int):
        if isinstance(data, int) and not isinstance(data, bool):
            return tp(data)
        if isinstance(data, float) and data.is_integer():
            return tp(int(data))
    elif issubclass(tp, float):
        if isinstance(data, (int, float)) and not isinstance(data, bool):
            return tp(data)
    elif issubclass(tp, str):
        if isinstance(data, str):
            return tp(data)
    elif tp in (datetime.datetime, datetime.date, datetime.time):
        if isinstance(data, str):
            try:
                return tp.fromisoformat(data)
            except ValueError as e:
                raise DeserializationError(f"{_where(path)}: {e}") from e
    else:
        raise DeserializationError(f"{_where(path)}: unsupported target type {tp.__name__}")
    raise DeserializationError(f"{_where(path)}: cannot use {_kind(data)} as {tp.__name__}")


def zero_value(tp: Any) -> Any:
    """The value a nil decodes to for ``tp``: 0, "", False, empty containers, ..."""
    tp, optional = strip_optional(tp)
    if optional:
        return None
    container = typing.get_origin(tp) or tp
    if container is tuple:
        return ()
    if container is frozenset:
        return frozenset()
    if container in _SET_TYPES:
        return set()
    if container in _SEQUENCE_TYPES:
        return []
    if container in _MAPPING_TYPES:
        return {}
    if is_record(tp):
        return _decode_record({}, tp, "")
    if isinstance(tp, type):
        if issubclass(tp, enum.Enum):
            return next(iter(tp), None)
        if issubclass(tp, (bool, int, float, str)):
            return tp()
    return None
