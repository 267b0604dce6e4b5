"""
Base document store abstract class.

This module defines the interface every document store must implement. A
document store holds JSON-like values addressed by slash-separated paths
such as "recipes/{id}" or "users/{uid}/favorites/{recipe_id}", and pushes
snapshots to subscribers whenever a value at or below their path changes.

All stores must:
- Generate unique, time-ordered child keys (push_key)
- Read, write and remove values by path (get, set, remove)
- Run atomic read-modify-write transactions on a single value (transaction)
- Deliver snapshots to path subscribers and support cancellation (subscribe)

Listener bookkeeping lives here so concrete stores only implement storage.
"""

import itertools
import logging
import os
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

# Returned from a transaction function to leave the value unchanged
ABORT = object()

SnapshotCallback = Callable[[Any], None]
ErrorCallback = Callable[[Exception], None]


class StoreError(Exception):
    """Raised when a store read or write fails."""


def split_path(path: str) -> Tuple[str, ...]:
    """
    Split a store path into its segments.

    Raises:
        StoreError: If the path is empty or has empty segments
    """
    segments = tuple(segment for segment in path.strip("/").split("/"))
    if not segments or any(not segment for segment in segments):
        raise StoreError(f"Invalid store path: {path!r}")
    return segments


def join_path(*segments: str) -> str:
    return "/".join(segment.strip("/") for segment in segments)


class Subscription:
    """
    Handle for an active snapshot subscription.

    Cancel it when the consumer goes away; the store drops the listener and
    no further snapshots are delivered. Usable as a context manager.
    """

    def __init__(self, cancel_fn: Callable[[], None]) -> None:
        self._cancel_fn = cancel_fn
        self._cancelled = False
        self._lock = threading.Lock()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
        self._cancel_fn()

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.cancel()


class _Listener:
    def __init__(self, path: Tuple[str, ...], callback: SnapshotCallback, on_error: Optional[ErrorCallback]) -> None:
        self.path = path
        self.callback = callback
        self.on_error = on_error
        self.active = True


# Push key alphabet, ordered so that keys sort by creation time
_PUSH_CHARS = "-0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ_abcdefghijklmnopqrstuvwxyz"


class DocumentStore(ABC):
    """
    Abstract base class for all document stores.

    Subclasses implement _read, _write and _transact; this class handles path
    validation, key generation and listener fan-out.
    """

    def __init__(self) -> None:
        self._listeners: Dict[int, _Listener] = {}
        self._listener_ids = itertools.count()
        self._listeners_lock = threading.Lock()
        self._key_lock = threading.Lock()
        self._last_push_ms = 0
        self._push_counter = 0

    # ------------------------------------------------------------------
    # Storage primitives implemented by concrete stores
    # ------------------------------------------------------------------

    @abstractmethod
    def _read(self, segments: Tuple[str, ...]) -> Any:
        """Return a deep copy of the value at `segments`, or None."""

    @abstractmethod
    def _write(self, segments: Tuple[str, ...], value: Any) -> None:
        """Replace the value at `segments`; None removes it."""

    @abstractmethod
    def _transact(self, segments: Tuple[str, ...], fn: Callable[[Any], Any]) -> Any:
        """
        Atomically apply `fn` to the value at `segments`.

        Returns:
            The committed value (the current value if `fn` returned ABORT)
        """

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def push_key(self, path: str = "") -> str:
        """
        Generate a unique child key that sorts after all earlier keys.

        The key encodes the current time in milliseconds followed by a
        per-millisecond counter and random suffix.
        """
        with self._key_lock:
            now = int(time.time() * 1000)
            if now <= self._last_push_ms:
                now = self._last_push_ms
                self._push_counter += 1
            else:
                self._push_counter = 0
            self._last_push_ms = now

            time_chars = []
            for _ in range(8):
                time_chars.append(_PUSH_CHARS[now % 64])
                now //= 64
            counter = self._push_counter
            counter_chars = []
            for _ in range(4):
                counter_chars.append(_PUSH_CHARS[counter % 64])
                counter //= 64
            suffix = os.urandom(8)

        return (
            "".join(reversed(time_chars))
            + "".join(reversed(counter_chars))
            + "".join(_PUSH_CHARS[b % 64] for b in suffix)
        )

    def get(self, path: str) -> Any:
        return self._read(split_path(path))

    def set(self, path: str, value: Any) -> None:
        """
        Write a value by path, replacing whatever was there.

        Raises:
            StoreError: If the write fails
        """
        segments = split_path(path)
        self._write(segments, value)
        self._notify(segments)

    def remove(self, path: str) -> None:
        self.set(path, None)

    def transaction(self, path: str, fn: Callable[[Any], Any]) -> Any:
        """
        Atomic read-modify-write of the value at `path`.

        Args:
            path: Store path
            fn: Receives the current value (None if missing) and returns the
                new value, or ABORT to leave it unchanged

        Returns:
            The committed value
        """
        segments = split_path(path)
        result = self._transact(segments, fn)
        self._notify(segments)
        return result

    def increment(self, path: str, delta: int = 1, floor: Optional[int] = 0) -> int:
        """
        Atomically add `delta` to a numeric value.

        A missing or non-numeric value counts as 0. When `floor` is set, a
        decrement that would go below it leaves the value unchanged.

        Returns:
            The committed value
        """
        def apply(current: Any) -> Any:
            count = current if isinstance(current, int) and not isinstance(current, bool) else 0
            updated = count + delta
            if floor is not None and updated < floor:
                return ABORT
            return updated

        result = self.transaction(path, apply)
        return result if isinstance(result, int) else 0

    def subscribe(
        self,
        path: str,
        callback: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        """
        Subscribe to snapshots of the value at `path`.

        The callback is called once immediately with the current value and
        again after every change at, above or below `path`.

        Returns:
            Subscription handle; cancel it to stop delivery
        """
        segments = split_path(path)
        listener = _Listener(segments, callback, on_error)
        with self._listeners_lock:
            listener_id = next(self._listener_ids)
            self._listeners[listener_id] = listener

        def cancel() -> None:
            listener.active = False
            with self._listeners_lock:
                self._listeners.pop(listener_id, None)

        subscription = Subscription(cancel)
        self._deliver(listener)
        return subscription

    def listener_count(self) -> int:
        with self._listeners_lock:
            return len(self._listeners)

    def close(self) -> None:
        """Drop all listeners."""
        with self._listeners_lock:
            for listener in self._listeners.values():
                listener.active = False
            self._listeners.clear()

    # ------------------------------------------------------------------
    # Listener fan-out
    # ------------------------------------------------------------------

    def _notify(self, changed: Tuple[str, ...]) -> None:
        with self._listeners_lock:
            affected: List[_Listener] = [
                listener for listener in self._listeners.values()
                if _overlaps(listener.path, changed)
            ]
        for listener in affected:
            self._deliver(listener)

    def _deliver(self, listener: _Listener) -> None:
        if not listener.active:
            return
        try:
            snapshot = self._read(listener.path)
        except Exception as e:
            logger.warning("Snapshot read failed for %s: %s", "/".join(listener.path), e)
            if listener.on_error is not None:
                listener.on_error(e)
            return

        try:
            listener.callback(snapshot)
        except Exception:
            logger.exception("Subscriber callback failed for %s", "/".join(listener.path))


def _overlaps(listened: Tuple[str, ...], changed: Tuple[str, ...]) -> bool:
    """True if a change at `changed` affects a listener on `listened`."""
    shorter = min(len(listened), len(changed))
    return listened[:shorter] == changed[:shorter]
