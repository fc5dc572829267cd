"""Realtime backend boundary and an in-process implementation.

A backend stores the latest snapshot per document and notifies every
listener of that document after each committed write.  Notifications
carry the full stored dict, or ``None`` when the document was removed.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections import deque
from collections.abc import Callable
from typing import Protocol

from tripsync.sync.errors import BackendError

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[dict | None], None]
Detach = Callable[[], None]


class RealtimeBackend(Protocol):
    """What the gateway needs from a realtime document backend."""

    async def write(self, document_id: str, data: dict) -> None:
        """Store *data* as the latest snapshot.  Raises on rejection."""
        ...

    def listen(self, document_id: str, on_snapshot: SnapshotCallback) -> Detach:
        """Register *on_snapshot* for the document; return a detach callable."""
        ...


class MemoryBackend:
    """Single-process backend with queued, ordered notification delivery.

    Notifications are queued in commit order at write time, addressed to the
    listeners registered at that moment, and delivered by
    :meth:`deliver_pending`.  A notification already queued still reaches
    its callback after that listener detaches, the same as a message that
    is already on the wire.

    Args:
        auto_deliver: Schedule :meth:`deliver_pending` on the running event
            loop whenever something is queued.
        latency: Seconds a write waits before it is committed.
    """

    def __init__(self, *, auto_deliver: bool = False, latency: float = 0.0) -> None:
        self.auto_deliver = auto_deliver
        self.latency = latency
        self._documents: dict[str, dict] = {}
        self._listeners: dict[str, list[SnapshotCallback]] = {}
        self._queue: deque[tuple[SnapshotCallback, dict | None]] = deque()
        self._failures: deque[BaseException] = deque()
        self.writes: list[tuple[str, dict]] = []

    # ------------------------------------------------------------------
    # RealtimeBackend
    # ------------------------------------------------------------------

    async def write(self, document_id: str, data: dict) -> None:
        if self.latency:
            await asyncio.sleep(self.latency)
        if self._failures:
            raise self._failures.popleft()

        stored = copy.deepcopy(data)
        self._documents[document_id] = stored
        self.writes.append((document_id, stored))
        self._broadcast(document_id, stored)

    def listen(self, document_id: str, on_snapshot: SnapshotCallback) -> Detach:
        listeners = self._listeners.setdefault(document_id, [])
        listeners.append(on_snapshot)

        current = self._documents.get(document_id)
        if current is not None:
            self._enqueue(on_snapshot, copy.deepcopy(current))

        def detach() -> None:
            try:
                listeners.remove(on_snapshot)
            except ValueError:
                pass

        return detach

    # ------------------------------------------------------------------
    # Test / harness controls
    # ------------------------------------------------------------------

    def fail_next_write(self, exc: BaseException | None = None) -> None:
        """Make the next write raise *exc* (default :class:`BackendError`)."""
        self._failures.append(exc or BackendError("write rejected"))

    def seed(self, document_id: str, data: dict) -> None:
        """Store a document without notifying anyone."""
        self._documents[document_id] = copy.deepcopy(data)

    def remove(self, document_id: str) -> None:
        """Delete a document and send the removal signal to its listeners."""
        self._documents.pop(document_id, None)
        self._broadcast(document_id, None)

    def get(self, document_id: str) -> dict | None:
        doc = self._documents.get(document_id)
        return copy.deepcopy(doc) if doc is not None else None

    def listener_count(self, document_id: str) -> int:
        return len(self._listeners.get(document_id, []))

    @property
    def queued(self) -> int:
        return len(self._queue)

    def deliver_pending(self) -> int:
        """Deliver queued notifications in order.  Returns how many ran."""
        delivered = 0
        while self._queue:
            callback, snapshot = self._queue.popleft()
            callback(snapshot)
            delivered += 1
        return delivered

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _broadcast(self, document_id: str, snapshot: dict | None) -> None:
        for callback in list(self._listeners.get(document_id, [])):
            self._enqueue(callback, copy.deepcopy(snapshot))

    def _enqueue(self, callback: SnapshotCallback, snapshot: dict | None) -> None:
        self._queue.append((callback, snapshot))
        if not self.auto_deliver:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        loop.call_soon(self.deliver_pending)
