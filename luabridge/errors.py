"""Exception hierarchy shared by the translator, registry and stub tooling."""

from __future__ import annotations


class LuaBridgeError(Exception):
    """Base class for every error raised by luabridge."""


class SerializationError(LuaBridgeError):
    """A value cannot be turned into the JSON intermediate form."""


class DeserializationError(LuaBridgeError):
    """The intermediate form cannot be coerced into the requested output."""


class RegistrationError(LuaBridgeError):
    """An invalid root was passed to TypeRegistry.register."""


class StubLookupError(LuaBridgeError, LookupError):
    """A stub was requested for a module that was never discovered."""


class ScanError(LuaBridgeError):
    """A source tree could not be read or parsed."""


class ConfigError(LuaBridgeError):
    """The stub generation config is missing, malformed or unresolvable."""


class RuntimeAffinityError(LuaBridgeError):
    """A ScriptRuntime was used from a thread other than the one that created it."""
