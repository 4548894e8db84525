"""
jsonio - JSON serialization for arbitrary Python object graphs.

This library writes live object graphs to JSON and reads them back, keeping
object identity, shared references and cycles, and the concrete classes of
the objects involved:

- Primitives (int, float, bool, str, None)
- Collections (list, tuple, set, frozenset, deque, dict and subclasses)
- Dataclasses, pydantic models and plain objects (__dict__, __slots__,
  __getstate__/__setstate__)
- Enums, named tuples and maps with non-string keys
- Logical primitives written as scalars: datetime family, Decimal, UUID,
  paths, IP addresses, URLs, bytes, complex, zoneinfo, classes

The output is plain JSON with a small set of meta keys:

- "@id" / "@ref": an object reached more than once is written in full the
  first time with an "@id" and as {"@ref": id} everywhere else
- "@type": the class to rebuild, left out when the reader can infer it
- "@keys" / "@items": maps with non-string keys, and arrays that need an
  id or a type

Basic Usage:
    >>> from jsonio import to_json, to_objects
    >>>
    >>> a = {"name": "a"}
    >>> text = to_json([a, a])
    >>> result = to_objects(text)
    >>> assert result[0] is result[1]

Typed reading:
    >>> @dataclass
    ... class Person:
    ...     name: str
    ...     friends: list[Person]
    >>>
    >>> person = to_objects(text, Person)

Configuration:
    >>> from jsonio import WriteOptionsBuilder, ReadOptionsBuilder
    >>>
    >>> options = (
    ...     WriteOptionsBuilder()
    ...     .always_show_type_info()
    ...     .with_excluded_fields(Person, ["password"])
    ...     .with_pretty_print()
    ...     .build()
    ... )
    >>> text = to_json(person, options)

Raw maps (no classes needed):
    >>> tree = to_maps(text)
    >>> tree["name"]

To add writers and readers for new types:
    >>> from jsonio import JsonClassWriter, JsonClassReader
    >>>
    >>> class PointWriter(JsonClassWriter):
    ...     def write(self, obj, context):
    ...         return {"xy": [obj.x, obj.y]}
    >>>
    >>> options = WriteOptionsBuilder().with_custom_writer(Point, PointWriter()).build()
"""

import json
import logging
from typing import Any

from jsonio.converters import JsonClassReader, JsonClassWriter
from jsonio.deserialize import TypeBinder
from jsonio.errors import ErrorKind, JsonIoError
from jsonio.nodes import JsonObject
from jsonio.options import (
    EnumMode,
    ReadOptions,
    ReadOptionsBuilder,
    ShowType,
    WriteOptions,
    WriteOptionsBuilder,
)
from jsonio.parser import NodeParser, Source
from jsonio.registry import TypeRegistry, default_registry
from jsonio.resolver import ReferenceResolver
from jsonio.serialize import GraphWriter

logging.getLogger(__name__).addHandler(logging.NullHandler())


def to_json(obj: Any, options: WriteOptions | None = None) -> str:
    """
    Serialize an object graph to JSON text.

    Args:
        obj: Any Python object.
        options: Write options. Defaults to WriteOptions() (minimal type
            information, compact output).

    Returns:
        The JSON text.

    Raises:
        JsonIoError: UNSUPPORTED_TYPE for values with no JSON form,
            FIELD_ACCESS for attributes that cannot be read.

    Example:
        >>> to_json({"a": [1, 2]})
        '{"a":[1,2]}'
    """
    return GraphWriter(options).write(obj)


def parse(source: Source) -> Any:
    """
    Parse JSON and resolve its references, without binding to classes.

    Returns:
        JsonObjects, lists and scalars. Each "@ref" is replaced by the node
        it points at, so shared objects are shared nodes.

    Raises:
        JsonIoError: MALFORMED_INPUT or UNRESOLVED_REFERENCE.
    """
    root = NodeParser().parse(source)
    return ReferenceResolver().resolve(root)


def to_objects(source: Source, target: Any = None, options: ReadOptions | None = None) -> Any:
    """
    Deserialize JSON text to an object graph.

    Args:
        source: JSON text, UTF-8 bytes or a readable stream.
        target: Class or type annotation for the root. "@type" in the
            document takes precedence.
        options: Read options.

    Returns:
        The rebuilt object graph, or the resolved node tree when
        options.return_as_maps is set.

    Raises:
        JsonIoError: MALFORMED_INPUT, UNRESOLVED_REFERENCE, TYPE_RESOLUTION
            or FIELD_COERCION.

    Example:
        >>> point = to_objects('{"x": 1, "y": 2}', Point)
    """
    root = parse(source)
    return TypeBinder(options).read(root, target)


def to_maps(source: Source, options: ReadOptions | None = None) -> Any:
    """
    Deserialize JSON text to JsonObjects, lists and scalars.

    Shorthand for to_objects() with return_as_maps set.
    """
    if options is None:
        options = ReadOptions(return_as_maps=True)
    elif not options.return_as_maps:
        options = options.model_copy(update={"return_as_maps": True})
    return to_objects(source, options=options)


def format_json(text: str) -> str:
    """
    Re-indent JSON text with a two-space indent.

    Raises:
        JsonIoError: MALFORMED_INPUT if the text is not valid JSON.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise JsonIoError(ErrorKind.MALFORMED_INPUT, f"Malformed JSON: {exc}") from exc
    return json.dumps(data, indent=2, ensure_ascii=False)


def deep_copy(obj: Any) -> Any:
    """
    Copy an object graph by writing it with full type information and
    reading it back. Shared references and cycles are preserved.
    """
    text = to_json(obj, WriteOptions(show_type=ShowType.ALWAYS))
    return to_objects(text)


__all__ = [
    # Core API
    "to_json",
    "to_objects",
    "to_maps",
    "parse",
    "format_json",
    "deep_copy",
    # Configuration
    "WriteOptions",
    "ReadOptions",
    "WriteOptionsBuilder",
    "ReadOptionsBuilder",
    "ShowType",
    "EnumMode",
    # Extension
    "JsonClassWriter",
    "JsonClassReader",
    "TypeRegistry",
    "default_registry",
    # Engine
    "GraphWriter",
    "NodeParser",
    "ReferenceResolver",
    "TypeBinder",
    "JsonObject",
    # Errors
    "JsonIoError",
    "ErrorKind",
]
