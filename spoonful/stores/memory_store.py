"""
In-memory document store.

Values live in a nested dict tree guarded by a re-entrant lock. This is the
default store for local development and tests; data is lost when the process
exits. Set DATABASE_URL to use the SQLAlchemy-backed store instead.

Writing None (or removing) a value prunes parents left empty, so a
collection with no children reads back as None.
"""

import copy
import threading
from typing import Any, Callable, Dict, Optional, Tuple

from .base import ABORT, DocumentStore


class MemoryDocumentStore(DocumentStore):
    """Process-local document store backed by nested dicts."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        super().__init__()
        self._root: Dict[str, Any] = copy.deepcopy(initial) if initial else {}
        self._lock = threading.RLock()

    def _read(self, segments: Tuple[str, ...]) -> Any:
        with self._lock:
            node: Any = self._root
            for segment in segments:
                if not isinstance(node, dict) or segment not in node:
                    return None
                node = node[segment]
            return copy.deepcopy(node)

    def _write(self, segments: Tuple[str, ...], value: Any) -> None:
        with self._lock:
            if value is None:
                self._delete(segments)
                return

            node = self._root
            for segment in segments[:-1]:
                child = node.get(segment)
                if not isinstance(child, dict):
                    # Writing below a leaf replaces the leaf
                    child = {}
                    node[segment] = child
                node = child
            node[segments[-1]] = copy.deepcopy(value)

    def _delete(self, segments: Tuple[str, ...]) -> None:
        trail = [self._root]
        node: Any = self._root
        for segment in segments[:-1]:
            node = node.get(segment) if isinstance(node, dict) else None
            if not isinstance(node, dict):
                return
            trail.append(node)

        trail[-1].pop(segments[-1], None)

        # Prune parents that are now empty
        for depth in range(len(segments) - 1, 0, -1):
            parent = trail[depth - 1]
            child = trail[depth]
            if child:
                break
            parent.pop(segments[depth - 1], None)

    def _transact(self, segments: Tuple[str, ...], fn: Callable[[Any], Any]) -> Any:
        with self._lock:
            current = self._read(segments)
            updated = fn(current)
            if updated is ABORT:
                return current
            self._write(segments, updated)
            return copy.deepcopy(updated)

    def snapshot(self) -> Dict[str, Any]:
        """Deep copy of the whole tree (useful for testing)."""
        with self._lock:
            return copy.deepcopy(self._root)
