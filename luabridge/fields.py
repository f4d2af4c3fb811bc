"""Dataclass field introspection shared by the translator and the type registry.

A field's external name comes from its ``json`` metadata tag, mirroring the
usual ``name,omitempty`` convention::

    @dataclass
    class Pod:
        name: str = field(metadata={"json": "name"})
        labels: dict[str, str] = field(default_factory=dict, metadata={"json": ",omitempty"})
        cache: Any = field(default=None, metadata={"json": "-"})
"""

from __future__ import annotations

import dataclasses
import logging
import types
import typing
from typing import Any, NamedTuple

log = logging.getLogger(__name__)

TAG_KEY = "json"

_NONE_TYPE = type(None)


class TaggedField(NamedTuple):
    field: dataclasses.Field
    name: str
    omitempty: bool


def tagged_fields(cls: type) -> list[TaggedField]:
    """Exported fields of a dataclass in declaration order.

    Fields whose name starts with an underscore are unexported. A tag of
    ``"-"`` or ``""`` excludes the field; an empty first segment keeps the
    declared name.
    """
    result: list[TaggedField] = []
    for f in dataclasses.fields(cls):
        if f.name.startswith("_"):
            continue
        tag = f.metadata.get(TAG_KEY)
        if tag is None:
            result.append(TaggedField(f, f.name, False))
            continue
        tag = str(tag)
        if tag in ("", "-"):
            continue
        name, _, opts = tag.partition(",")
        result.append(TaggedField(f, name or f.name, "omitempty" in opts.split(",")))
    return result


def field_types(cls: type) -> dict[str, Any]:
    """Resolved type hints for a dataclass.

    When the class as a whole cannot be resolved (typically a name imported
    only under ``TYPE_CHECKING``), each field is resolved on its own so only
    the unresolvable ones keep their raw annotation.
    """
    try:
        return typing.get_type_hints(cls, include_extras=True)
    except (NameError, TypeError) as e:
        log.debug("Unresolved annotations on %s: %s", cls.__qualname__, e)
    return {f.name: _resolve_field(cls, f) for f in dataclasses.fields(cls)}


def _resolve_field(cls: type, f: dataclasses.Field) -> Any:
    owner = _field_owner(cls, f.name)
    # A single-annotation class in the owner's module resolves names the same
    # way the owner would, one field at a time.
    shim = type(owner.__name__, (), {
        "__annotations__": {f.name: f.type},
        "__module__": owner.__module__,
    })
    try:
        return typing.get_type_hints(shim, localns={owner.__name__: owner}, include_extras=True)[f.name]
    except (NameError, TypeError) as e:
        log.debug("Unresolved annotation on %s.%s: %s", cls.__qualname__, f.name, e)
        return f.type


def _field_owner(cls: type, name: str) -> type:
    for base in cls.__mro__:
        if name in vars(base).get("__annotations__", {}):
            return base
    return cls


def strip_optional(tp: Any) -> tuple[Any, bool]:
    """Unwrap ``Annotated[T, ...]`` and ``Optional[T]``. Returns (T, was_optional)."""
    optional = False
    while True:
        origin = typing.get_origin(tp)
        if origin is typing.Annotated:
            tp = typing.get_args(tp)[0]
            continue
        if origin is typing.Union or origin is types.UnionType:
            args = typing.get_args(tp)
            rest = [a for a in args if a is not _NONE_TYPE]
            if len(rest) < len(args):
                optional = True
                if len(rest) == 1:
                    tp = rest[0]
                    continue
        return tp, optional


def is_record(tp: Any) -> bool:
    return isinstance(tp, type) and dataclasses.is_dataclass(tp)
