"""
Type registry for the jsonio library.

The registry maps classes to custom writers and readers, and knows which
classes are logical primitives (written as a single JSON scalar even though
they are objects in Python).

Lookup is most-specific match:

1. the exact class;
2. the nearest ancestor along the class's MRO;
3. "interface" matches: registered classes the type is a virtual subclass
   of (collections.abc registrations and other ABC.register() calls), in
   the order they were registered.

Ancestor classes always win over interfaces, so a lookup never has to pick
between two equally specific matches.

The built-in table is created once, lazily, and never changes afterwards.
Options snapshots layer their own entries over it with overlay(), which
returns a new registry and leaves the defaults untouched.
"""

from __future__ import annotations

import functools
import io
import ipaddress
import logging
import pathlib
import uuid
from collections.abc import Iterable, Mapping
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from types import MappingProxyType
from typing import Any
from urllib.parse import ParseResult, SplitResult
from zoneinfo import ZoneInfo

from jsonio.converters import (
    Base64Reader,
    Base64Writer,
    ClassReader,
    ClassWriter,
    JsonClassReader,
    JsonClassWriter,
    ScalarReader,
    ScalarWriter,
    StringIOReader,
    StringIOWriter,
    TemporalReader,
    TemporalWriter,
    UrlReader,
    UrlWriter,
    ZoneInfoWriter,
)

logger = logging.getLogger(__name__)

# Types JSON represents natively
NATIVE_TYPES: frozenset[type] = frozenset({str, int, float, bool, type(None)})

_MISSING = object()


class TypeRegistry:
    """
    Read-only view of writers, readers and logical primitives.

    Attributes:
        writers: Mapping from class to JsonClassWriter.
        readers: Mapping from class to JsonClassReader.
        logical_primitives: Classes written as scalars.
        no_customization: Classes whose writers/readers are ignored, so they
            are handled field by field even when an ancestor has a converter.
    """

    def __init__(
        self,
        writers: Mapping[type, JsonClassWriter] | None = None,
        readers: Mapping[type, JsonClassReader] | None = None,
        logical_primitives: Iterable[type] = (),
        no_customization: Iterable[type] = (),
    ):
        self.writers = MappingProxyType(dict(writers or {}))
        self.readers = MappingProxyType(dict(readers or {}))
        self.logical_primitives = frozenset(logical_primitives) | NATIVE_TYPES
        self.no_customization = frozenset(no_customization)
        # Per-view lookup caches. Concurrent fills store identical results.
        self._writer_cache: dict[type, JsonClassWriter | None] = {}
        self._reader_cache: dict[type, JsonClassReader | None] = {}
        self._primitive_cache: dict[type, bool] = {}

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def writer_for(self, cls: type) -> JsonClassWriter | None:
        """Most specific writer for cls, or None."""
        if cls in self.no_customization:
            return None
        cached = self._writer_cache.get(cls, _MISSING)
        if cached is _MISSING:
            cached = _most_specific(cls, self.writers)
            self._writer_cache[cls] = cached
        return cached

    def reader_for(self, cls: type) -> JsonClassReader | None:
        """Most specific reader for cls, or None."""
        if cls in self.no_customization:
            return None
        cached = self._reader_cache.get(cls, _MISSING)
        if cached is _MISSING:
            cached = _most_specific(cls, self.readers)
            self._reader_cache[cls] = cached
        return cached

    def is_logical_primitive(self, cls: type) -> bool:
        cached = self._primitive_cache.get(cls)
        if cached is None:
            primitives = dict.fromkeys(self.logical_primitives, True)
            cached = _most_specific(cls, primitives) is not None
            self._primitive_cache[cls] = cached
        return cached

    # -------------------------------------------------------------------------
    # Overlays
    # -------------------------------------------------------------------------

    def overlay(
        self,
        writers: Mapping[type, JsonClassWriter] | None = None,
        readers: Mapping[type, JsonClassReader] | None = None,
        logical_primitives: Iterable[type] = (),
        no_customization: Iterable[type] = (),
    ) -> TypeRegistry:
        """A new registry with these entries layered over this one."""
        return TypeRegistry(
            writers={**self.writers, **(writers or {})},
            readers={**self.readers, **(readers or {})},
            logical_primitives=self.logical_primitives | frozenset(logical_primitives),
            no_customization=self.no_customization | frozenset(no_customization),
        )

    def __repr__(self) -> str:
        return (
            f"TypeRegistry(writers={len(self.writers)}, readers={len(self.readers)}, "
            f"logical_primitives={len(self.logical_primitives)}, "
            f"no_customization={len(self.no_customization)})"
        )


def _most_specific(cls: type, table: Mapping[type, Any]) -> Any:
    # 1 + 2: exact class, then ancestors nearest first
    for klass in cls.__mro__:
        if klass is object:
            continue
        entry = table.get(klass)
        if entry is not None:
            return entry

    # 3: virtual subclass ("interface") matches, in registration order
    for registered, entry in table.items():
        if registered is object:
            continue
        try:
            if issubclass(cls, registered):
                return entry
        except TypeError:
            continue
    return None


# =============================================================================
# Built-in Defaults
# =============================================================================


def _builtin_converters() -> tuple[dict[type, JsonClassWriter], dict[type, JsonClassReader]]:
    temporal_writer = TemporalWriter()
    temporal_reader = TemporalReader()
    scalar_writer = ScalarWriter()
    scalar_reader = ScalarReader()

    writers: dict[type, JsonClassWriter] = {}
    readers: dict[type, JsonClassReader] = {}

    for cls in (datetime, date, time, timedelta):
        writers[cls] = temporal_writer
        readers[cls] = temporal_reader

    for cls in (
        Decimal,
        uuid.UUID,
        complex,
        pathlib.PurePath,
        ipaddress.IPv4Address,
        ipaddress.IPv6Address,
        ipaddress.IPv4Network,
        ipaddress.IPv6Network,
        ipaddress.IPv4Interface,
        ipaddress.IPv6Interface,
    ):
        writers[cls] = scalar_writer
        readers[cls] = scalar_reader

    writers[ZoneInfo] = ZoneInfoWriter()
    readers[ZoneInfo] = scalar_reader

    for cls in (bytes, bytearray):
        writers[cls] = Base64Writer()
        readers[cls] = Base64Reader()

    writers[io.StringIO] = StringIOWriter()
    readers[io.StringIO] = StringIOReader()

    for cls in (ParseResult, SplitResult):
        writers[cls] = UrlWriter()
        readers[cls] = UrlReader()

    writers[type] = ClassWriter()
    readers[type] = ClassReader()

    return writers, readers


@functools.cache
def default_registry() -> TypeRegistry:
    """The process-wide built-in registry, created on first use."""
    writers, readers = _builtin_converters()
    registry = TypeRegistry(
        writers=writers,
        readers=readers,
        logical_primitives=writers.keys(),
    )
    logger.debug("Built default type registry: %r", registry)
    return registry
