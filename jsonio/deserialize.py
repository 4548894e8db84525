"""
Node tree to typed objects.

TypeBinder takes the resolved node tree (JsonObjects, lists and scalars,
with references already replaced by their targets) and instantiates the
classes the document and the requested type call for.

Class selection for a node, in order:

1. "@type", looked up through the options' type name map, the known types,
   the primitive type names, then by importing the qualified name;
2. the concrete form of the declared type (field annotation, container
   element type, or the target passed by the caller);
3. list for the {"@items": [...]} form, dict otherwise.

Every JsonObject is memoized by identity as soon as its instance exists.
Mutable containers and objects are created empty, memoized, then filled,
so cycles close over the same instance. Tuples, frozensets and named tuples
cannot be filled after creation, so their elements are bound first and the
memo is checked again before creating them.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Mapping
from enum import Enum
from typing import Any

from pydantic import ValidationError
from pydantic.errors import PydanticSchemaGenerationError

from jsonio.converters import JsonClassReader, ScalarReader, type_adapter
from jsonio.errors import ErrorKind, JsonIoError
from jsonio.introspect import (
    ARRAY_TYPES,
    concrete_type,
    describe,
    element_types,
    is_named_tuple,
    locate_type,
    map_types,
    type_name,
)
from jsonio.nodes import ITEMS, KEYS, NAME, PRIMITIVE_TYPES, VALUE, JsonObject
from jsonio.options import ReadOptions

logger = logging.getLogger(__name__)

_MISSING = object()


def _describe_type(tp: Any) -> str:
    return type_name(tp) if isinstance(tp, type) else repr(tp)


def _coercion_error(message: str) -> JsonIoError:
    return JsonIoError(ErrorKind.FIELD_COERCION, message)


class TypeBinder:
    """
    Binds one resolved node tree to typed instances.

    Holds the per-read instance memo, so use one TypeBinder per document.
    Custom readers receive the binder as their context and may call
    bind() for nested values and resolve_type() for type names.

    Example:
        >>> binder = TypeBinder()
        >>> tree = ReferenceResolver().resolve(NodeParser().parse(text))
        >>> person = binder.read(tree, Person)
    """

    def __init__(self, options: ReadOptions | None = None):
        self.options = options or ReadOptions()
        self.registry = self.options.registry
        self._memo: dict[int, Any] = {}

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    def read(self, root: Any, target: Any = None) -> Any:
        """
        Bind a resolved tree.

        Args:
            root: The resolver's output.
            target: Requested class or type annotation for the root. "@type"
                in the document takes precedence.

        Returns:
            The typed object graph, or root itself in raw-maps mode.
        """
        if self.options.return_as_maps:
            return root
        try:
            result = self.bind(root, target)
        except RecursionError as exc:
            raise JsonIoError(
                ErrorKind.MALFORMED_INPUT,
                "Document nests too deeply to bind (Python recursion limit reached)",
            ) from exc
        logger.debug("Bound %d nodes", len(self._memo))
        return result

    def bind(self, value: Any, declared: Any = None) -> Any:
        """Bind a node, list or scalar to the declared type."""
        if isinstance(value, JsonObject):
            return self._bind_node(value, declared)
        if isinstance(value, list):
            return self._bind_list(value, declared)
        return self._bind_scalar(value, declared)

    def resolve_type(self, name: str) -> type:
        """
        The class for a "@type" name.

        Raises:
            JsonIoError: TYPE_RESOLUTION if no class can be found.
        """
        if not isinstance(name, str):
            raise JsonIoError(
                ErrorKind.TYPE_RESOLUTION,
                f'"@type" must be a string, got {type(name).__name__} {name!r}',
            )
        alias = self.options.type_name_map.get(name)
        if isinstance(alias, type):
            return alias
        if alias is not None:
            name = alias

        known = self.options.known_types.get(name)
        if known is not None:
            return known

        primitive = PRIMITIVE_TYPES.get(name)
        if primitive is not None:
            return primitive

        return locate_type(name)

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    def _bind_node(self, node: JsonObject, declared: Any) -> Any:
        memo = self._memo.get(id(node), _MISSING)
        if memo is not _MISSING:
            return memo

        cls = self._node_class(node, declared)
        if cls is None:
            cls = list if node.is_array() else dict
            declared = None

        reader = self.registry.reader_for(cls)
        if reader is not None:
            return self._remember(node, self._read_with(reader, node, cls))

        if issubclass(cls, Enum):
            return self._remember(node, self._bind_enum(node, cls))

        if self.registry.is_logical_primitive(cls):
            if node.type in PRIMITIVE_TYPES and PRIMITIVE_TYPES[node.type] is cls:
                return self._remember(node, node.get_primitive_value())
            return self._remember(node, self._coerce(node.get(VALUE), cls, None))

        if issubclass(cls, Mapping):
            return self._bind_map(node, cls, declared)

        if issubclass(cls, ARRAY_TYPES):
            if not node.is_array():
                raise _coercion_error(f"Cannot bind a JSON object to {type_name(cls)}")
            return self._bind_array(node, node[ITEMS], cls, declared)

        if node.is_array() or node.is_map():
            raise _coercion_error(f"Cannot bind a JSON array to {type_name(cls)}")

        return self._bind_object(node, cls)

    def _node_class(self, node: JsonObject, declared: Any) -> type | None:
        if node.type is not None:
            try:
                return self.resolve_type(node.type)
            except JsonIoError:
                if self.options.fail_on_unknown_type:
                    raise
                logger.warning("Unknown type %r, reading it as a plain map", node.type)
                return None

        cls = concrete_type(declared)
        if cls is not None and cls is not object:
            return cls
        if node.is_array():
            return list
        return dict

    def _remember(self, node: Any, instance: Any) -> Any:
        self._memo[id(node)] = instance
        return instance

    # -------------------------------------------------------------------------
    # Scalars
    # -------------------------------------------------------------------------

    def _read_with(self, reader: JsonClassReader, raw: Any, cls: type) -> Any:
        payload = raw
        if isinstance(raw, JsonObject):
            # wrappers from _write_primitive, _write_custom and _attach_id
            if set(raw) == {VALUE}:
                payload = raw[VALUE]
            elif set(raw) == {ITEMS}:
                payload = raw[ITEMS]

        if not isinstance(reader, ScalarReader):
            return reader.read(payload, cls, self)

        try:
            return reader.read(payload, cls, self)
        except JsonIoError:
            raise
        except Exception as exc:
            raise _coercion_error(
                f"Cannot convert {type(payload).__name__} {payload!r} to {type_name(cls)}: {exc}"
            ) from exc

    def _bind_scalar(self, value: Any, declared: Any) -> Any:
        if value is None:
            return None
        cls = concrete_type(declared)
        if cls is None or cls is object:
            return value
        return self._coerce(value, cls, declared)

    def _coerce(self, value: Any, cls: type, declared: Any) -> Any:
        if issubclass(cls, Enum):
            return self._bind_enum(value, cls)

        reader = self.registry.reader_for(cls)
        if reader is not None:
            return self._read_with(reader, value, cls)

        if isinstance(value, cls) and not (isinstance(value, bool) and cls is not bool):
            return value

        if cls is str and isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)

        target = declared if declared is not None else cls
        try:
            return type_adapter(target).validate_python(value)
        except (ValidationError, PydanticSchemaGenerationError, TypeError, ValueError) as exc:
            raise _coercion_error(
                f"Cannot convert {type(value).__name__} {value!r} to {_describe_type(target)}"
            ) from exc

    def _bind_enum(self, raw: Any, cls: type[Enum]) -> Enum:
        if isinstance(raw, JsonObject):
            name = raw.get(NAME)
            value = raw.get(VALUE, raw.get("_value_"))
        else:
            name = value = raw

        if isinstance(name, str):
            try:
                return cls[name]
            except KeyError:
                pass
        try:
            return cls(value)
        except ValueError as exc:
            raise _coercion_error(f"{raw!r} is not a member of {type_name(cls)}") from exc

    # -------------------------------------------------------------------------
    # Containers
    # -------------------------------------------------------------------------

    def _bind_list(self, items: list, declared: Any) -> Any:
        cls = concrete_type(declared)
        if cls is None or cls is object:
            cls = list
        elif not issubclass(cls, ARRAY_TYPES):
            reader = self.registry.reader_for(cls)
            if reader is not None:
                return self._read_with(reader, items, cls)
            raise _coercion_error(f"Cannot bind a JSON array to {type_name(cls)}")
        return self._bind_array(items, items, cls, declared)

    def _bind_array(self, source: Any, items: list, cls: type, declared: Any) -> Any:
        if is_named_tuple(cls):
            descriptor = describe(cls)
            declared_elements = [descriptor.field_type(name) for name in cls._fields]
            if len(declared_elements) != len(items):
                raise _coercion_error(
                    f"{type_name(cls)} takes {len(declared_elements)} items, got {len(items)}"
                )
        else:
            declared_elements = element_types(declared, len(items))

        if issubclass(cls, (list, deque)):
            instance = self._remember(source, cls())
            for item, element in zip(items, declared_elements):
                instance.append(self.bind(item, element))
            return instance

        if issubclass(cls, set):
            instance = self._remember(source, cls())
            for item, element in zip(items, declared_elements):
                self._add_hashable(instance, self.bind(item, element), cls)
            return instance

        # tuple, frozenset, named tuple: elements first
        values = [self.bind(item, element) for item, element in zip(items, declared_elements)]
        existing = self._memo.get(id(source), _MISSING)
        if existing is not _MISSING:
            return existing
        try:
            instance = cls._make(values) if is_named_tuple(cls) else cls(values)
        except TypeError as exc:
            raise _coercion_error(f"Cannot build {type_name(cls)} from {len(values)} items: {exc}") from exc
        return self._remember(source, instance)

    def _add_hashable(self, instance: set, value: Any, cls: type) -> None:
        try:
            instance.add(value)
        except TypeError as exc:
            raise _coercion_error(
                f"{type(value).__name__} element of {type_name(cls)} is unhashable"
            ) from exc

    def _new_mapping(self, cls: type) -> Any:
        try:
            return cls()
        except TypeError as exc:
            raise _coercion_error(f"Cannot create an empty {type_name(cls)}: {exc}") from exc

    def _bind_map(self, node: JsonObject, cls: type, declared: Any) -> Any:
        key_type, value_type = map_types(declared)
        instance = self._remember(node, self._new_mapping(cls))

        if not node.is_map():
            for key, item in node.items():
                instance[self._bind_scalar(key, key_type)] = self.bind(item, value_type)
            return instance

        keys = node[KEYS]
        items = node.get(ITEMS, [])
        if not isinstance(keys, list) or not isinstance(items, list):
            raise JsonIoError(
                ErrorKind.MALFORMED_INPUT,
                f'"{KEYS}" and "{ITEMS}" must both be arrays',
            )
        if len(keys) != len(items):
            raise JsonIoError(
                ErrorKind.MALFORMED_INPUT,
                f'"{KEYS}" has {len(keys)} entries but "{ITEMS}" has {len(items)}',
            )

        for raw_key, raw_item in zip(keys, items):
            key = self.bind(raw_key, key_type)
            try:
                instance[key] = self.bind(raw_item, value_type)
            except TypeError as exc:
                raise _coercion_error(
                    f"{type(key).__name__} key of {type_name(cls)} is unhashable"
                ) from exc
        return instance

    # -------------------------------------------------------------------------
    # Objects
    # -------------------------------------------------------------------------

    def _bind_object(self, node: JsonObject, cls: type) -> Any:
        descriptor = describe(cls)
        try:
            instance = descriptor.new_instance()
        except TypeError as exc:
            raise JsonIoError(
                ErrorKind.TYPE_RESOLUTION,
                f"Cannot instantiate {type_name(cls)}: {exc}",
            ) from exc
        self._remember(node, instance)

        state: dict[str, Any] = {}
        for name, raw in node.items():
            if not self.options.is_field_selected(cls, name):
                continue
            if not descriptor.accepts(name):
                logger.debug("Skipping undeclared field %r of %s", name, type_name(cls))
                continue
            state[name] = self._bind_field(raw, descriptor.field_type(name), name, cls)

        descriptor.assign(instance, state)
        missing = set(descriptor.fields) - set(state)
        if missing:
            descriptor.apply_defaults(instance, missing)
        return instance

    def _bind_field(self, raw: Any, declared: Any, name: str, owner: type) -> Any:
        try:
            return self.bind(raw, declared)
        except JsonIoError as exc:
            if exc.kind is not ErrorKind.FIELD_COERCION or exc.field is not None:
                raise
            raise JsonIoError(
                ErrorKind.FIELD_COERCION,
                f"Field '{name}' of {type_name(owner)}: {exc}",
                field=name,
            ) from exc
