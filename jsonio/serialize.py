"""
Graph writer for the jsonio library.

GraphWriter turns an object graph into JSON text. It walks the graph twice:

1. Trace: every object that is not a logical primitive is counted in a
   ReferenceTracker. Objects reached more than once (shared objects and
   cycles) are the ones that need an "@id".
2. Emit: the graph is walked again to build JSON-compatible builtins. The
   first emission of a shared object carries "@id"; every later occurrence
   is written as {"@ref": id}.

A single depth-first pass cannot do this: the first time an object is
written, the walk does not yet know whether a later branch will point back
at it.

Dispatch for each value, in order:

- enum members, rendered according to the enum mode;
- native JSON scalars (None, bool, int, float, str);
- logical primitives (registry or options), written as scalars and never
  tracked;
- custom writers (most-specific match);
- JsonObject nodes (so raw maps read back can be written again);
- mappings, as JSON objects or in the @keys/@items form;
- lists, tuples, sets, frozensets and deques, as JSON arrays;
- any other object, field by field through its TypeDescriptor.
"""

from __future__ import annotations

import io
import json
import logging
import types
from collections.abc import Mapping
from enum import Enum
from typing import Any

from jsonio.converters import JsonClassWriter
from jsonio.errors import ErrorKind, JsonIoError
from jsonio.introspect import ARRAY_TYPES, concrete_type, describe, element_types, map_types
from jsonio.nodes import (
    ALL_META_KEYS,
    ID,
    ITEMS,
    KEYS,
    NAME,
    REF,
    SHORT_META_KEYS,
    TYPE,
    VALUE,
    JsonObject,
)
from jsonio.options import EnumMode, ShowType, WriteOptions
from jsonio.tracker import ReferenceTracker

logger = logging.getLogger(__name__)

# Largest integer a JavaScript number holds exactly
MAX_SAFE_INTEGER = 2**53 - 1

# Values with no JSON representation
_UNSUPPORTED = (
    types.FunctionType,
    types.BuiltinFunctionType,
    types.MethodType,
    types.ModuleType,
    types.GeneratorType,
    types.AsyncGeneratorType,
    types.CoroutineType,
    types.FrameType,
    types.CodeType,
    io.IOBase,
)


def _too_deep() -> JsonIoError:
    return JsonIoError(
        ErrorKind.UNSUPPORTED_TYPE,
        "Object graph nests too deeply to write (Python recursion limit reached)",
    )


class GraphWriter:
    """
    Writes one object graph as JSON.

    All per-write state (visit counts, reference ids) lives in a fresh
    ReferenceTracker created by each call to write(), so one GraphWriter
    can be reused for several sequential writes but must not be shared
    between threads. Share the WriteOptions instead.

    Custom writers receive the GraphWriter as their context and may call
    write_value() for nested values.

    Example:
        >>> writer = GraphWriter(WriteOptions(show_type=ShowType.NEVER))
        >>> a = {"name": "a"}
        >>> writer.write([a, a])
        '[{"@id":1,"name":"a"},{"@ref":1}]'
    """

    def __init__(self, options: WriteOptions | None = None):
        self.options = options or WriteOptions()
        self.registry = self.options.registry
        self._tracker = ReferenceTracker()
        self._tracing = False

        names = SHORT_META_KEYS if self.options.short_meta_keys else {}
        self._id_key = names.get(ID, ID)
        self._ref_key = names.get(REF, REF)
        self._type_key = names.get(TYPE, TYPE)
        self._keys_key = names.get(KEYS, KEYS)
        self._items_key = names.get(ITEMS, ITEMS)

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    def write(self, obj: Any) -> str:
        """Serialize obj to JSON text."""
        tree = self.to_builtins(obj)
        try:
            if self.options.pretty_print:
                return json.dumps(tree, indent=2, ensure_ascii=False)
            return json.dumps(tree, separators=(",", ":"), ensure_ascii=False)
        except RecursionError as exc:
            raise _too_deep() from exc

    def to_builtins(self, obj: Any) -> Any:
        """Convert obj to JSON-compatible builtins (dict, list, str, ...)."""
        self._tracker = ReferenceTracker()

        self._tracing = True
        try:
            self._walk(obj, None)
        except RecursionError as exc:
            raise _too_deep() from exc
        finally:
            self._tracing = False

        logger.debug(
            "Traced %d objects, %d shared",
            self._tracker.object_count,
            self._tracker.shared_count,
        )
        try:
            return self._walk(obj, None)
        except RecursionError as exc:
            raise _too_deep() from exc

    def write_value(self, value: Any, declared: Any = None) -> Any:
        """
        Write a nested value. For use by custom writers.

        Args:
            value: The value to write.
            declared: The statically expected type, if any. Used by the
                MINIMAL type policy to decide whether "@type" is needed.
        """
        return self._walk(value, declared)

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    def _walk(self, value: Any, declared: Any) -> Any:
        if isinstance(value, Enum):
            return self._write_enum(value, declared)

        if value is None or isinstance(value, (str, bool)):
            return value

        if isinstance(value, (int, float)):
            return self._write_number(value)

        cls = type(value)
        if self.registry.is_logical_primitive(cls):
            if self._tracing:
                return None
            return self._write_primitive(value, declared)

        if self._tracing:
            if self._tracker.visit(value):
                self._write_body(value, declared)
            return None

        if not self._tracker.first_emission(value):
            ref_id = self._tracker.reference_id(value)
            if ref_id is None:
                raise JsonIoError(
                    ErrorKind.UNSUPPORTED_TYPE,
                    f"{cls.__qualname__} object was written twice but traced once; "
                    f"custom writers must write the same values on every call",
                )
            return {self._ref_key: ref_id}

        ref_id = self._tracker.assign(value) if self._tracker.is_shared(value) else None
        body = self._write_body(value, declared)
        if ref_id is None:
            return body
        return self._attach_id(ref_id, body)

    def _write_body(self, value: Any, declared: Any) -> Any:
        writer = self.registry.writer_for(type(value))
        if writer is not None:
            return self._write_custom(value, writer, declared)

        if isinstance(value, JsonObject):
            return self._write_node(value)

        if isinstance(value, Mapping):
            return self._write_map(value, declared)

        if isinstance(value, ARRAY_TYPES):
            return self._write_array(value, declared)

        if isinstance(value, _UNSUPPORTED):
            raise JsonIoError(
                ErrorKind.UNSUPPORTED_TYPE,
                f"Cannot write {type(value).__qualname__} object to JSON",
            )

        return self._write_object(value, declared)

    def _attach_id(self, ref_id: int, body: Any) -> dict:
        if isinstance(body, dict):
            return {self._id_key: ref_id, **body}
        if isinstance(body, list):
            return {self._id_key: ref_id, self._items_key: body}
        return {self._id_key: ref_id, VALUE: body}

    def _needs_type(self, cls: type, declared: Any, default: type | None) -> bool:
        """
        Whether a value of class cls written where `declared` is expected
        needs "@type".

        Under MINIMAL the type is left out when a reader would pick the same
        class anyway: the concrete form of the declared type, or, with no
        usable declaration, the default class for the JSON shape.
        """
        show_type = self.options.show_type
        if show_type is ShowType.ALWAYS:
            return True
        if show_type is ShowType.NEVER:
            return False
        inferred = concrete_type(declared) or default
        return cls is not inferred

    # -------------------------------------------------------------------------
    # Scalars
    # -------------------------------------------------------------------------

    def _write_number(self, value: int | float) -> Any:
        if (
            self.options.write_longs_as_strings
            and isinstance(value, int)
            and abs(value) > MAX_SAFE_INTEGER
        ):
            return str(value)
        return value

    def _write_primitive(self, value: Any, declared: Any) -> Any:
        cls = type(value)
        writer = self.registry.writer_for(cls)
        scalar = writer.write(value, self) if writer is not None else str(value)
        if self._needs_type(cls, declared, None):
            return {self._type_key: self.options.type_name(cls), VALUE: scalar}
        return scalar

    def _write_enum(self, member: Enum, declared: Any) -> Any:
        cls = type(member)
        needs_type = self._needs_type(cls, declared, None)
        mode = self.options.enum_mode

        if mode is EnumMode.PRIMITIVE:
            if needs_type:
                return {self._type_key: self.options.type_name(cls), NAME: member.name}
            return member.name

        out: dict[str, Any] = {}
        if needs_type:
            out[self._type_key] = self.options.type_name(cls)
        out[NAME] = member.name

        if mode is EnumMode.PUBLIC_FIELDS:
            out[VALUE] = self._walk(member.value, None)
            attrs = {k: v for k, v in vars(member).items() if not k.startswith("_")}
        else:
            attrs = {k: v for k, v in vars(member).items() if k != "__objclass__"}

        for key, attr in attrs.items():
            if key not in out:
                out[key] = self._walk(attr, None)
        return out

    # -------------------------------------------------------------------------
    # Containers and objects
    # -------------------------------------------------------------------------

    def _write_custom(self, value: Any, writer: JsonClassWriter, declared: Any) -> Any:
        cls = type(value)
        out = writer.write(value, self)
        if not self._needs_type(cls, declared, None):
            return out
        name = self.options.type_name(cls)
        if isinstance(out, dict) and not out.keys() & {self._type_key, self._id_key, self._ref_key}:
            return {self._type_key: name, **out}
        return {self._type_key: name, VALUE: out}

    def _write_node(self, node: JsonObject) -> Any:
        out: dict[str, Any] = {}
        if node.type is not None and self.options.show_type is not ShowType.NEVER:
            out[self._type_key] = node.type

        if node.is_array():
            items = [self._walk(item, None) for item in node[ITEMS]]
            if not out:
                return items
            out[self._items_key] = items
            return out

        if node.is_map():
            out[self._keys_key] = [self._walk(key, None) for key in node[KEYS]]
            out[self._items_key] = [self._walk(item, None) for item in node.get(ITEMS, [])]
            return out

        for key, item in node.items():
            out[key] = self._walk(item, None)
        return out

    def _write_map(self, value: Mapping, declared: Any) -> dict:
        cls = type(value)
        key_type, value_type = map_types(declared)

        out: dict[str, Any] = {}
        if self._needs_type(cls, declared, dict):
            out[self._type_key] = self.options.type_name(cls)

        natural = not self.options.force_map_keys_items and all(
            type(key) is str and key not in ALL_META_KEYS for key in value
        )
        if natural:
            for key, item in value.items():
                out[key] = self._walk(item, value_type)
            return out

        keys = []
        items = []
        for key, item in value.items():
            keys.append(self._walk(key, key_type))
            items.append(self._walk(item, value_type))
        out[self._keys_key] = keys
        out[self._items_key] = items
        return out

    def _write_array(self, value: Any, declared: Any) -> Any:
        cls = type(value)
        declared_elements = element_types(declared, len(value))
        items = [self._walk(item, el) for item, el in zip(value, declared_elements)]
        if self._needs_type(cls, declared, list):
            return {self._type_key: self.options.type_name(cls), self._items_key: items}
        return items

    def _write_object(self, value: Any, declared: Any) -> dict:
        cls = type(value)
        descriptor = describe(cls)

        out: dict[str, Any] = {}
        if self._needs_type(cls, declared, None):
            out[self._type_key] = self.options.type_name(cls)

        for name, field_value in descriptor.state(value).items():
            if not self.options.is_field_selected(cls, name):
                continue
            if field_value is None and self.options.skip_null_fields:
                continue
            out[name] = self._walk(field_value, descriptor.field_type(name))
        return out
