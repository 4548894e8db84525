"""
Intermediate node representation used while reading JSON.

A JSON object becomes a JsonObject: a dict holding the object's ordinary
entries, with the identity meta keys lifted into attributes:

- id: the value of "@id" (None when absent)
- ref: the value of "@ref" (None when absent)
- type: the value of "@type" (None when absent)
- target: the node a reference points at, once the resolver has run

"@keys" and "@items" stay in the dict because they carry content. A node
holding only "@items" is the array form (used for arrays that need an id
or a type); a node holding "@keys" and "@items" is a map whose keys are
not plain strings.

JSON arrays are plain lists and JSON scalars are plain Python values.
"""

from __future__ import annotations

import weakref
from decimal import Decimal
from typing import Any

from jsonio.errors import ErrorKind, JsonIoError

# =============================================================================
# Meta Keys
# =============================================================================

ID = "@id"
REF = "@ref"
TYPE = "@type"
KEYS = "@keys"
ITEMS = "@items"

# Entry holding the payload of a wrapped scalar: {"@type": "uuid.UUID", "value": "..."}
VALUE = "value"

# Entry holding an enum member's name in the object forms
NAME = "name"

SHORT_META_KEYS: dict[str, str] = {
    ID: "@i",
    REF: "@r",
    TYPE: "@t",
    KEYS: "@k",
    ITEMS: "@e",
}

LONG_META_KEYS: dict[str, str] = {short: long for long, short in SHORT_META_KEYS.items()}

# Every spelling a reader must treat as a meta key
ALL_META_KEYS: frozenset[str] = frozenset(SHORT_META_KEYS) | frozenset(LONG_META_KEYS)


def canonical_key(key: str) -> str:
    """Map a short meta key to its long form; other keys are returned as-is."""
    return LONG_META_KEYS.get(key, key)


# Primitive type names understood by JsonObject.get_primitive_value()
PRIMITIVE_TYPES: dict[str, type] = {
    "bool": bool,
    "boolean": bool,
    "int": int,
    "long": int,
    "short": int,
    "byte": int,
    "float": float,
    "double": float,
    "str": str,
    "string": str,
    "char": str,
    "decimal.Decimal": Decimal,
}


class JsonObject(dict):
    """
    One JSON object from the parsed document.

    Equality is plain dict equality, so two nodes built from the same
    entries compare equal regardless of their identity attributes.
    """

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.id: Any = None
        self.ref: Any = None
        self.type: Any = None
        self._target: weakref.ref | None = None

    @property
    def target(self) -> JsonObject | None:
        """The node this reference resolves to, or None if unresolved."""
        if self._target is None:
            return None
        return self._target()

    @target.setter
    def target(self, node: JsonObject | None) -> None:
        self._target = None if node is None else weakref.ref(node)

    def is_reference(self) -> bool:
        return self.ref is not None

    def is_array(self) -> bool:
        """True for the {"@items": [...]} form."""
        return ITEMS in self and KEYS not in self and isinstance(self[ITEMS], (list, tuple))

    def is_map(self) -> bool:
        """True for the {"@keys": [...], "@items": [...]} form."""
        return KEYS in self

    @property
    def value(self) -> Any:
        return self.get(VALUE)

    def get_length(self) -> int:
        if self.is_array():
            return len(self[ITEMS])
        if self.is_map():
            return len(self[KEYS])
        raise JsonIoError(
            ErrorKind.TYPE_RESOLUTION,
            f"get_length() called on a non-collection node (type={self.type!r})",
        )

    def get_primitive_value(self) -> Any:
        """
        Convert the "value" entry according to this node's primitive type name.

        Raises:
            JsonIoError: If the type name is not a known primitive type, or
                the value cannot be converted.
        """
        target = PRIMITIVE_TYPES.get(self.type)
        if target is None:
            raise JsonIoError(
                ErrorKind.TYPE_RESOLUTION,
                f"Invalid primitive type {self.type!r}, "
                f"expected one of {sorted(PRIMITIVE_TYPES)}",
            )
        raw = self.get(VALUE)
        if isinstance(raw, target) and not (target is int and isinstance(raw, bool)):
            return raw
        try:
            if target is bool and isinstance(raw, str):
                return raw.strip().lower() == "true"
            return target(raw)
        except (TypeError, ValueError, ArithmeticError) as exc:
            raise JsonIoError(
                ErrorKind.FIELD_COERCION,
                f"Cannot convert {raw!r} to primitive type {self.type!r}: {exc}",
            ) from exc

    def __repr__(self) -> str:
        meta = []
        if self.id is not None:
            meta.append(f"id={self.id!r}")
        if self.ref is not None:
            meta.append(f"ref={self.ref!r}")
        if self.type is not None:
            meta.append(f"type={self.type!r}")
        prefix = f"<{' '.join(meta)}> " if meta else ""
        return f"JsonObject({prefix}{dict.__repr__(self)})"
