"""
Type introspection for the jsonio library.

This module answers the questions the writer and the binder ask about
Python types:

- TypeDescriptor: which fields does a class have, what is each field's
  declared type, how do I read them from an instance and write them back
  into a fresh one? Dataclasses, pydantic models and plain objects (with
  __dict__, __slots__ or __getstate__/__setstate__) are supported.
- type_name() / locate_type(): the name written to "@type" and the way
  back from that name to a class.
- concrete_type() / element_types() / map_types(): what a declared type
  annotation (list[int], Optional[Node], Mapping[str, Any]...) means for
  the class that should be instantiated and for the types of its contents.
"""

from __future__ import annotations

import builtins
import collections.abc
import dataclasses
import functools
import importlib
import inspect
import types
import typing
from collections import deque
from typing import Any

from pydantic import BaseModel

from jsonio.errors import ErrorKind, JsonIoError

# =============================================================================
# Declared Type Helpers
# =============================================================================

# Abstract collection types and the concrete class a reader builds for them
_ABSTRACT_DEFAULTS: dict[Any, type] = {
    collections.abc.Mapping: dict,
    collections.abc.MutableMapping: dict,
    collections.abc.Sequence: list,
    collections.abc.MutableSequence: list,
    collections.abc.Iterable: list,
    collections.abc.Collection: list,
    collections.abc.Set: set,
    collections.abc.MutableSet: set,
}

_UNION_TYPES: tuple = (typing.Union, types.UnionType)


def _strip_optional(declared: Any) -> Any:
    """Optional[X] -> X. Other unions are returned unchanged."""
    if typing.get_origin(declared) in _UNION_TYPES:
        members = [arg for arg in typing.get_args(declared) if arg is not type(None)]
        if len(members) == 1:
            return members[0]
    return declared


def concrete_type(declared: Any) -> type | None:
    """
    The class a reader would instantiate for a declared type, if it can tell.

    Returns None when the declaration does not pin down a class (no
    declaration, Any, a TypeVar, a real union, an abstract user class).

    Example:
        >>> concrete_type(list[int])
        <class 'list'>
        >>> concrete_type(typing.Optional[dict])
        <class 'dict'>
        >>> concrete_type(typing.Mapping[str, int])
        <class 'dict'>
    """
    if declared is None or declared is Any:
        return None
    declared = _strip_optional(declared)
    origin = typing.get_origin(declared)
    if origin is typing.Annotated:
        return concrete_type(typing.get_args(declared)[0])
    if origin is not None:
        declared = origin
    if declared in _ABSTRACT_DEFAULTS:
        return _ABSTRACT_DEFAULTS[declared]
    if not isinstance(declared, type):
        return None
    if inspect.isabstract(declared):
        return None
    return declared


def _generic_args(declared: Any) -> tuple:
    declared = _strip_optional(declared)
    if typing.get_origin(declared) is typing.Annotated:
        declared = typing.get_args(declared)[0]
    return typing.get_args(declared)


def element_types(declared: Any, count: int) -> list[Any]:
    """
    Declared element types for an array of `count` items.

    tuple[int, str] gives one type per position, tuple[int, ...] and
    list[int] repeat a single type; anything else gives Any.
    """
    args = _generic_args(declared)
    origin = concrete_type(declared)
    if origin is not None and issubclass(origin, tuple) and args:
        if len(args) == 2 and args[1] is Ellipsis:
            return [args[0]] * count
        if len(args) == count:
            return list(args)
        return [Any] * count
    if len(args) == 1:
        return [args[0]] * count
    return [Any] * count


def map_types(declared: Any) -> tuple[Any, Any]:
    """Declared (key type, value type) of a mapping annotation."""
    args = _generic_args(declared)
    if len(args) == 2:
        return args[0], args[1]
    return Any, Any


# =============================================================================
# Type Names
# =============================================================================


def type_name(cls: type) -> str:
    """
    The name written to "@type" for a class.

    Builtins are written by their bare name ("tuple", "set"), everything
    else by module and qualified name ("datetime.datetime").
    """
    if cls.__module__ == "builtins":
        return cls.__qualname__
    return f"{cls.__module__}.{cls.__qualname__}"


@functools.lru_cache(maxsize=1024)
def locate_type(name: str) -> type:
    """
    Locate a class from a name produced by type_name().

    Tries builtins first, then imports the longest importable module prefix
    and walks the remaining attribute path.

    Raises:
        JsonIoError: If no class can be found under that name.
    """
    candidate = getattr(builtins, name, None)
    if isinstance(candidate, type):
        return candidate

    parts = name.split(".")
    for split in range(len(parts) - 1, 0, -1):
        module_name = ".".join(parts[:split])
        try:
            module = importlib.import_module(module_name)
        except ImportError:
            continue
        obj: Any = module
        try:
            for attr in parts[split:]:
                obj = getattr(obj, attr)
        except AttributeError:
            continue
        if isinstance(obj, type):
            return obj
        break

    raise JsonIoError(ErrorKind.TYPE_RESOLUTION, f"Unknown type '{name}'")


# =============================================================================
# Type Descriptors
# =============================================================================


def _overrides(cls: type, name: str) -> bool:
    """True if cls defines `name` itself rather than inheriting object's."""
    return getattr(cls, name, None) is not getattr(object, name, None)


def _type_hints(cls: type) -> dict[str, Any]:
    try:
        return typing.get_type_hints(cls)
    except (NameError, TypeError, AttributeError):
        # Unresolvable forward references: fall back to whatever is not a string
        hints: dict[str, Any] = {}
        for klass in reversed(cls.__mro__):
            for key, value in getattr(klass, "__annotations__", {}).items():
                if not isinstance(value, str):
                    hints[key] = value
        return hints


def _slot_names(cls: type) -> list[str]:
    names = []
    for klass in cls.__mro__:
        slots = klass.__dict__.get("__slots__", ())
        if isinstance(slots, str):
            slots = (slots,)
        for slot in slots:
            if slot not in ("__dict__", "__weakref__") and slot not in names:
                names.append(slot)
    return names


@dataclasses.dataclass(frozen=True)
class FieldDescriptor:
    """A declared field: its name and annotation (Any when undeclared)."""

    name: str
    annotation: Any = Any


class TypeDescriptor:
    """
    Field-level view of a class.

    Attributes:
        cls: The described class.
        kind: "dataclass", "pydantic" or "object".
        fields: Declared fields keyed by name, in declaration order.
    """

    def __init__(self, cls: type):
        self.cls = cls
        if isinstance(cls, type) and issubclass(cls, BaseModel):
            self.kind = "pydantic"
            self.fields = {
                name: FieldDescriptor(name, info.annotation)
                for name, info in cls.model_fields.items()
            }
        elif dataclasses.is_dataclass(cls):
            self.kind = "dataclass"
            hints = _type_hints(cls)
            self.fields = {
                f.name: FieldDescriptor(f.name, hints.get(f.name, Any))
                for f in dataclasses.fields(cls)
            }
        else:
            self.kind = "object"
            hints = _type_hints(cls)
            self.fields = {
                name: FieldDescriptor(name, hint)
                for name, hint in hints.items()
                if typing.get_origin(hint) is not typing.ClassVar and hint is not typing.ClassVar
            }
        self._slots = _slot_names(cls)
        self._custom_getstate = self.kind == "object" and _overrides(cls, "__getstate__")
        self._custom_setstate = self.kind == "object" and _overrides(cls, "__setstate__")

    def field_type(self, name: str) -> Any:
        field = self.fields.get(name)
        return Any if field is None else field.annotation

    def accepts(self, name: str) -> bool:
        """Whether a serialized entry called `name` can be assigned."""
        if self.kind == "object":
            return True
        return name in self.fields

    # -------------------------------------------------------------------------
    # Reading state
    # -------------------------------------------------------------------------

    def state(self, obj: Any) -> dict[str, Any]:
        """
        Field values of an instance, in a stable order.

        Raises:
            JsonIoError: If a declared attribute cannot be read.
        """
        if self.kind in ("dataclass", "pydantic"):
            return {name: self._read(obj, name) for name in self.fields}

        if self._custom_getstate:
            state = obj.__getstate__()
            if state is None:
                return {}
            if isinstance(state, tuple) and len(state) == 2 and isinstance(state[1], dict):
                # (dict state, slot state) as produced for slotted classes
                merged = dict(state[0] or {})
                merged.update(state[1])
                return merged
            if not isinstance(state, dict):
                return {"__state__": state}
            return dict(state)

        state = dict(getattr(obj, "__dict__", {}))
        for slot in self._slots:
            if slot in state:
                continue
            try:
                state[slot] = getattr(obj, slot)
            except AttributeError:
                # Unset slot
                continue
        return state

    def _read(self, obj: Any, name: str) -> Any:
        try:
            return getattr(obj, name)
        except Exception as exc:
            raise JsonIoError(
                ErrorKind.FIELD_ACCESS,
                f"Cannot read field '{name}' of {type_name(self.cls)}: {exc}",
            ) from exc

    # -------------------------------------------------------------------------
    # Building instances
    # -------------------------------------------------------------------------

    def new_instance(self) -> Any:
        """A blank instance, created without calling __init__."""
        if self.kind == "pydantic":
            return self.cls.model_construct()
        return self.cls.__new__(self.cls)

    def assign(self, obj: Any, state: dict[str, Any]) -> None:
        """Set field values on an instance built by new_instance()."""
        if self._custom_setstate:
            if set(state) == {"__state__"}:
                obj.__setstate__(state["__state__"])
            else:
                obj.__setstate__(state)
            return

        for name, value in state.items():
            object.__setattr__(obj, name, value)

        if self.kind == "pydantic":
            obj.__pydantic_fields_set__.update(name for name in state if name in self.fields)

    def apply_defaults(self, obj: Any, missing: set[str]) -> None:
        """Fill dataclass fields that the document did not provide."""
        if self.kind != "dataclass":
            return
        for field in dataclasses.fields(self.cls):
            if field.name not in missing:
                continue
            if field.default is not dataclasses.MISSING:
                object.__setattr__(obj, field.name, field.default)
            elif field.default_factory is not dataclasses.MISSING:
                object.__setattr__(obj, field.name, field.default_factory())


@functools.lru_cache(maxsize=512)
def describe(cls: type) -> TypeDescriptor:
    """Cached TypeDescriptor for a class."""
    return TypeDescriptor(cls)


def is_named_tuple(cls: type) -> bool:
    return issubclass(cls, tuple) and hasattr(cls, "_fields") and hasattr(cls, "_make")


# Collection classes written as JSON arrays
ARRAY_TYPES: tuple[type, ...] = (list, tuple, set, frozenset, deque)
