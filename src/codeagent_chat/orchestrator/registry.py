"""Process-wide registry of in-flight streaming requests."""

from __future__ import annotations

import threading
from concurrent.futures import Future
from dataclasses import dataclass, field


@dataclass(slots=True)
class CancelHandle:
    """Revocable handle for one background request."""

    correlation_id: str
    token: threading.Event = field(default_factory=threading.Event)
    future: Future[object] | None = None

    @property
    def cancelled(self) -> bool:
        """Whether cancellation was requested."""

        return self.token.is_set()


class CancellationRegistry:
    """Mutex-guarded map from correlation id to its cancel handle.

    Only the owning request inserts and removes its own entry; anyone may cancel.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handles: dict[str, CancelHandle] = {}

    def register(self, correlation_id: str) -> CancelHandle:
        """Insert a fresh handle; duplicate ids are rejected."""

        with self._lock:
            if correlation_id in self._handles:
                raise ValueError(f"Request already in flight: {correlation_id}")
            handle = CancelHandle(correlation_id=correlation_id)
            self._handles[correlation_id] = handle
            return handle

    def attach_future(self, correlation_id: str, future: Future[object]) -> None:
        """Remember the background future if the entry still exists."""

        with self._lock:
            handle = self._handles.get(correlation_id)
            if handle is not None:
                handle.future = future

    def remove(self, handle: CancelHandle) -> None:
        """Drop the entry, but only if it still belongs to ``handle``."""

        with self._lock:
            if self._handles.get(handle.correlation_id) is handle:
                del self._handles[handle.correlation_id]

    def cancel(self, correlation_id: str) -> bool:
        """Signal the request's token; False when the id is unknown or finished."""

        with self._lock:
            handle = self._handles.get(correlation_id)
        if handle is None:
            return False
        handle.token.set()
        return True

    def get(self, correlation_id: str) -> CancelHandle | None:
        """Return the live handle for ``correlation_id`` if any."""

        with self._lock:
            return self._handles.get(correlation_id)

    def active_ids(self) -> list[str]:
        """Snapshot of in-flight correlation ids."""

        with self._lock:
            return list(self._handles)

    def __contains__(self, correlation_id: object) -> bool:
        with self._lock:
            return correlation_id in self._handles

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)
