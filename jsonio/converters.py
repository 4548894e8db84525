"""
Writers and readers for individual types.

A writer turns one Python value into a JSON-compatible value; a reader
turns a JSON value back into an instance of a requested class. The
TypeRegistry maps classes to them.

- JsonClassWriter / JsonClassReader: base classes for custom converters.
  A custom writer may call context.write_value() for nested values so the
  engine keeps tracking references inside them; a custom reader may call
  context.bind() for the same reason.
- ScalarWriter / ScalarReader: converters for logical primitives, types
  written as a single JSON scalar (dates, UUIDs, decimals, paths...).

Writers are called once per pass of the two-pass writer, so they should
not have side effects.

Example:
    >>> class PointWriter(JsonClassWriter):
    ...     def write(self, obj, context):
    ...         return {"xy": [obj.x, obj.y]}
    >>>
    >>> class PointReader(JsonClassReader):
    ...     def read(self, value, cls, context):
    ...         return cls(*value["xy"])
    >>>
    >>> options = WriteOptionsBuilder().with_custom_writer(Point, PointWriter()).build()
"""

from __future__ import annotations

import base64
import functools
import io
from datetime import date, datetime, time
from typing import Any, Callable, TYPE_CHECKING
from urllib.parse import urlparse, urlsplit

from pydantic import TypeAdapter

from jsonio.introspect import type_name

if TYPE_CHECKING:
    from jsonio.serialize import GraphWriter
    from jsonio.deserialize import TypeBinder
else:
    GraphWriter = Any
    TypeBinder = Any


@functools.lru_cache(maxsize=256)
def type_adapter(tp: Any) -> TypeAdapter:
    """Cached pydantic TypeAdapter for a type."""
    return TypeAdapter(tp)


# =============================================================================
# Base Classes
# =============================================================================


class JsonClassWriter:
    """Base class for custom writers."""

    def write(self, obj: Any, context: GraphWriter) -> Any:
        """Return the JSON-compatible form of obj."""
        raise NotImplementedError


class JsonClassReader:
    """Base class for custom readers."""

    def read(self, value: Any, cls: type, context: TypeBinder) -> Any:
        """Build an instance of cls from its JSON form."""
        raise NotImplementedError


class FunctionWriter(JsonClassWriter):
    """Adapts a plain function `fn(obj) -> json value` to a writer."""

    def __init__(self, fn: Callable[[Any], Any]):
        self.fn = fn

    def write(self, obj, context):
        return self.fn(obj)


class FunctionReader(JsonClassReader):
    """Adapts a plain function `fn(value) -> obj` to a reader."""

    def __init__(self, fn: Callable[[Any], Any]):
        self.fn = fn

    def read(self, value, cls, context):
        return self.fn(value)


def as_writer(writer: JsonClassWriter | Callable[[Any], Any]) -> JsonClassWriter:
    if isinstance(writer, JsonClassWriter):
        return writer
    if callable(writer):
        return FunctionWriter(writer)
    raise TypeError(f"Expected a JsonClassWriter or a callable, got {type(writer).__name__}")


def as_reader(reader: JsonClassReader | Callable[[Any], Any]) -> JsonClassReader:
    if isinstance(reader, JsonClassReader):
        return reader
    if callable(reader):
        return FunctionReader(reader)
    raise TypeError(f"Expected a JsonClassReader or a callable, got {type(reader).__name__}")


# =============================================================================
# Scalar Writers
# =============================================================================


class ScalarWriter(JsonClassWriter):
    """Writes a logical primitive as its string form."""

    def write(self, obj, context):
        return str(obj)


class TemporalWriter(ScalarWriter):
    """
    Writer for datetime, date, time and timedelta.

    Uses the configured date format when there is one, pydantic's JSON form
    (ISO 8601) otherwise.
    """

    def write(self, obj, context):
        date_format = getattr(context.options, "date_format", None)
        if date_format and isinstance(obj, (datetime, date, time)):
            return obj.strftime(date_format)
        return type_adapter(type(obj)).dump_python(obj, mode="json")


class Base64Writer(ScalarWriter):
    def write(self, obj, context):
        return base64.b64encode(bytes(obj)).decode("ascii")


class StringIOWriter(ScalarWriter):
    def write(self, obj, context):
        return obj.getvalue()


class UrlWriter(ScalarWriter):
    def write(self, obj, context):
        return obj.geturl()


class ZoneInfoWriter(ScalarWriter):
    def write(self, obj, context):
        return obj.key


class ClassWriter(ScalarWriter):
    """Writes a class object as its type name."""

    def write(self, obj, context):
        return type_name(obj)


# =============================================================================
# Scalar Readers
# =============================================================================


class ScalarReader(JsonClassReader):
    """
    Reads a logical primitive by calling its constructor on the JSON value.

    Errors raised by scalar readers are reported by the binder as field
    coercion failures.
    """

    def read(self, value, cls, context):
        if isinstance(value, cls):
            return value
        return cls(value)


class TemporalReader(ScalarReader):
    """
    Reader for datetime, date, time and timedelta.

    Parses with the configured date format when there is one, with pydantic
    (ISO 8601 strings, Unix timestamps) otherwise.
    """

    def read(self, value, cls, context):
        if isinstance(value, cls):
            return value
        date_format = getattr(context.options, "date_format", None)
        if date_format and isinstance(value, str) and issubclass(cls, (datetime, date, time)):
            parsed = datetime.strptime(value, date_format)
            if issubclass(cls, datetime):
                return parsed
            if issubclass(cls, date):
                return parsed.date()
            return parsed.timetz()
        return type_adapter(cls).validate_python(value)


class Base64Reader(ScalarReader):
    def read(self, value, cls, context):
        if not isinstance(value, str):
            raise TypeError(f"expected a base64 string, got {type(value).__name__}")
        return cls(base64.b64decode(value.encode("ascii"), validate=True))


class StringIOReader(ScalarReader):
    def read(self, value, cls, context):
        return io.StringIO(value)


class UrlReader(ScalarReader):
    def read(self, value, cls, context):
        parse = urlsplit if cls.__name__.startswith("Split") else urlparse
        return parse(value)


class ClassReader(ScalarReader):
    """Reads a class object back from its type name."""

    def read(self, value, cls, context):
        return context.resolve_type(value)
