"""
Identity tracking for the writer.

The writer walks the graph twice. During the trace pass the tracker counts
how many times each object identity is reached; during the emit pass it
tells the writer whether an object is shared (reached more than once, which
includes cycles), hands out reference ids in emission order and remembers
which objects have already been written.

Identities are id() values. The tracker keeps every traced and every emitted
object alive until the write finishes, because Python can reuse the id() of
a collected object for a new one. Custom writers often pass temporary
containers to write_value(), and those are collected as soon as the call
returns.
"""

from __future__ import annotations

from typing import Any


class ReferenceTracker:
    """Per-write identity table. Never shared between writes."""

    def __init__(self):
        self._visits: dict[int, int] = {}
        self._ids: dict[int, int] = {}
        self._emitted: set[int] = set()
        self._next_id = 1
        # Keep references to all traced and emitted objects to prevent id() reuse
        self._refs: list = []

    # -------------------------------------------------------------------------
    # Trace pass
    # -------------------------------------------------------------------------

    def visit(self, obj: Any) -> bool:
        """
        Count one encounter of obj.

        Returns:
            True on the first encounter (the caller should descend into obj),
            False on later ones.
        """
        key = id(obj)
        count = self._visits.get(key, 0)
        self._visits[key] = count + 1
        if count == 0:
            self._refs.append(obj)
            return True
        return False

    def is_shared(self, obj: Any) -> bool:
        return self._visits.get(id(obj), 0) > 1

    @property
    def object_count(self) -> int:
        return len(self._visits)

    @property
    def shared_count(self) -> int:
        return sum(1 for count in self._visits.values() if count > 1)

    # -------------------------------------------------------------------------
    # Emit pass
    # -------------------------------------------------------------------------

    def first_emission(self, obj: Any) -> bool:
        """True the first time obj is emitted, False afterwards."""
        key = id(obj)
        if key in self._emitted:
            return False
        self._emitted.add(key)
        self._refs.append(obj)
        return True

    def assign(self, obj: Any) -> int:
        """Give obj the next reference id (or return the one it already has)."""
        key = id(obj)
        ref_id = self._ids.get(key)
        if ref_id is None:
            ref_id = self._next_id
            self._next_id += 1
            self._ids[key] = ref_id
        return ref_id

    def reference_id(self, obj: Any) -> int | None:
        return self._ids.get(id(obj))
