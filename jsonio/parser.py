"""
JSON text to node tree.

The parser is json.loads with an object hook: every JSON object becomes a
JsonObject, with "@id", "@ref" and "@type" (long or short spelling) lifted
into attributes and "@keys"/"@items" kept as entries under their long
names. References are not followed here; see ReferenceResolver.
"""

from __future__ import annotations

import json
import logging
from typing import IO, Any

from jsonio.errors import ErrorKind, JsonIoError
from jsonio.nodes import ID, REF, TYPE, JsonObject, canonical_key

logger = logging.getLogger(__name__)

Source = str | bytes | bytearray | IO


def _build_node(pairs: list[tuple[str, Any]]) -> JsonObject:
    node = JsonObject()
    for key, value in pairs:
        key = canonical_key(key)
        if key == ID:
            node.id = value
        elif key == REF:
            node.ref = value
        elif key == TYPE:
            node.type = value
        else:
            node[key] = value
    return node


class NodeParser:
    """
    Parses JSON text into JsonObject nodes, lists and scalars.

    Example:
        >>> node = NodeParser().parse('{"@id": 1, "@type": "dict", "a": 1}')
        >>> node.id, node.type, dict(node)
        (1, 'dict', {'a': 1})
    """

    def parse(self, source: Source) -> Any:
        """
        Parse a JSON document.

        Args:
            source: JSON text, UTF-8 bytes, or a readable file-like object.

        Raises:
            JsonIoError: MALFORMED_INPUT if the text is not valid JSON.
        """
        if hasattr(source, "read"):
            source = source.read()
        if isinstance(source, (bytes, bytearray)):
            try:
                source = source.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise JsonIoError(ErrorKind.MALFORMED_INPUT, f"Input is not UTF-8: {exc}") from exc
        if not isinstance(source, str):
            raise JsonIoError(
                ErrorKind.MALFORMED_INPUT,
                f"Expected JSON text, bytes or a readable stream, got {type(source).__name__}",
            )

        try:
            tree = json.loads(source, object_pairs_hook=_build_node)
        except json.JSONDecodeError as exc:
            raise JsonIoError(
                ErrorKind.MALFORMED_INPUT,
                f"Malformed JSON at line {exc.lineno} column {exc.colno}: {exc.msg}",
            ) from exc
        except RecursionError as exc:
            raise JsonIoError(ErrorKind.MALFORMED_INPUT, "JSON nests too deeply to parse") from exc

        logger.debug("Parsed %d characters of JSON", len(source))
        return tree
