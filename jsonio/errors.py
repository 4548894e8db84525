"""
Error type for the jsonio library.

Every failure raised by the engine itself is a JsonIoError. The `kind`
attribute tells callers what went wrong so they can branch on it:

- MALFORMED_INPUT: the JSON text is not valid, nests too deeply, or its meta
  keys are unusable
- UNRESOLVED_REFERENCE: an @ref names an id that the document never defines
- TYPE_RESOLUTION: a @type name or requested type cannot be located
- FIELD_COERCION: a value cannot be converted to the declared field type
- INVALID_CONFIGURATION: options were given an invalid or contradictory value
- UNSUPPORTED_TYPE: a value has no JSON representation (functions, modules...),
  or the graph nests deeper than the writer can recurse
- FIELD_ACCESS: an attribute could not be read while writing

Exceptions raised by user supplied writers and readers are not wrapped.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    MALFORMED_INPUT = "malformed_input"
    UNRESOLVED_REFERENCE = "unresolved_reference"
    TYPE_RESOLUTION = "type_resolution"
    FIELD_COERCION = "field_coercion"
    INVALID_CONFIGURATION = "invalid_configuration"
    UNSUPPORTED_TYPE = "unsupported_type"
    FIELD_ACCESS = "field_access"


class JsonIoError(ValueError):
    """
    Raised when a write, read or options build fails.

    Subclasses ValueError so code written against the old ValueError
    contract keeps working.

    Attributes:
        kind: The ErrorKind describing the failure.
        field: For FIELD_COERCION, the innermost field being bound, if any.
    """

    def __init__(self, kind: ErrorKind, message: str, field: str | None = None):
        self.kind = kind
        self.field = field
        super().__init__(message)

    def __repr__(self) -> str:
        return f"JsonIoError({self.kind.value}, {str(self)!r})"
