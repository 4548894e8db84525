"""
Reference resolution over a parsed node tree.

After parsing, a shared object appears once with "@id" and everywhere else
as a {"@ref": n} node. The resolver replaces each reference node, in the
list or node that holds it, with the node carrying the matching id, so the
tree becomes the original graph (cycles included) of JsonObjects and lists.

Resolution runs in two phases so forward references work:

1. index every node that carries an id;
2. replace every reference node with its target.

Both phases use an explicit stack; deeply nested documents do not hit the
recursion limit.
"""

from __future__ import annotations

import logging
from typing import Any

from jsonio.errors import ErrorKind, JsonIoError
from jsonio.nodes import ID, REF, JsonObject

logger = logging.getLogger(__name__)


def _normalize_id(value: Any, key: str) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value)
    raise JsonIoError(
        ErrorKind.MALFORMED_INPUT,
        f'"{key}" must be an integer, got {value!r}',
    )


def _children(container: Any) -> list[tuple[Any, Any]]:
    """(key, child) pairs of a node or list."""
    if isinstance(container, dict):
        return list(container.items())
    return list(enumerate(container))


class ReferenceResolver:
    """
    Resolves "@ref" nodes in place.

    Attributes:
        table: id -> JsonObject for every node that carries an id, filled by
            resolve().
    """

    def __init__(self):
        self.table: dict[int, JsonObject] = {}

    def resolve(self, root: Any) -> Any:
        """
        Resolve every reference reachable from root.

        Returns:
            The root, with reference nodes replaced by their targets.

        Raises:
            JsonIoError: MALFORMED_INPUT for duplicate or non-integer ids,
                UNRESOLVED_REFERENCE for references to missing ids.
        """
        self.table = {}
        self._index(root)

        if isinstance(root, JsonObject) and root.is_reference():
            raise JsonIoError(
                ErrorKind.UNRESOLVED_REFERENCE,
                f"The document root is a reference ({REF}={root.ref!r}) with nothing to point to",
            )

        resolved = self._link(root)
        logger.debug("Resolved %d references to %d identified nodes", resolved, len(self.table))
        return root

    def _index(self, root: Any) -> None:
        stack = [root]
        while stack:
            current = stack.pop()
            if isinstance(current, JsonObject) and current.id is not None:
                ref_id = _normalize_id(current.id, ID)
                if ref_id in self.table:
                    raise JsonIoError(ErrorKind.MALFORMED_INPUT, f'Duplicate "{ID}": {ref_id}')
                current.id = ref_id
                self.table[ref_id] = current
            for _, child in _children(current):
                if isinstance(child, (dict, list)):
                    stack.append(child)

    def _target(self, node: JsonObject) -> JsonObject:
        ref_id = _normalize_id(node.ref, REF)
        target = self.table.get(ref_id)
        if target is None:
            raise JsonIoError(
                ErrorKind.UNRESOLVED_REFERENCE,
                f'"{REF}": {ref_id} does not match any "{ID}" in the document',
            )
        node.ref = ref_id
        node.target = target
        return target

    def _link(self, root: Any) -> int:
        count = 0
        stack = [root]
        while stack:
            current = stack.pop()
            for key, child in _children(current):
                if isinstance(child, JsonObject) and child.is_reference():
                    current[key] = self._target(child)
                    count += 1
                elif isinstance(child, (dict, list)):
                    stack.append(child)
        return count
