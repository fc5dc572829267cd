"""Operation identities for local writes and self-echo detection.

Every local mutation that is about to be written to the backend gets an
``Operation`` with a fresh ``op_<ULID>`` id.  The id is stored alongside
the document, so when the backend notifies every subscriber of the new
snapshot, the writer can recognize its own change and skip it.

Two indexes are kept:

* ``pending`` -- operations whose write has not been acknowledged or
  rejected yet.  Terminal operations leave this index.
* ``recent`` -- every operation issued within the retention bound,
  regardless of status.  Echo classification reads this index.

Nothing in here raises.  Unknown or malformed ids are "not an echo": a
missed echo costs one redundant re-render, a wrongly suppressed remote
change costs data.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from tripsync.core.config import DEFAULT_ECHO_WINDOW_SECONDS, DEFAULT_RETENTION_SECONDS
from tripsync.core.ids import generate_operation_id

logger = logging.getLogger(__name__)

ANONYMOUS_ACTOR = "anonymous"

OPERATION_KINDS: frozenset[str] = frozenset(
    {
        "field_update",
        "item_add",
        "item_update",
        "item_delete",
        "document_update",
    }
)

PENDING = "pending"
COMPLETED = "completed"
FAILED = "failed"


@dataclass
class Operation:
    """One locally-initiated mutation awaiting backend confirmation."""

    id: str
    kind: str
    actor_id: str
    document_id: str
    issued_at: float  # registry clock (monotonic)
    payload: Any = None
    status: str = PENDING
    settled_at: float | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status != PENDING

    def to_dict(self) -> dict:
        """Serialize for logging / JSON output.  ``payload`` is omitted."""
        return {
            "id": self.id,
            "kind": self.kind,
            "actor_id": self.actor_id,
            "document_id": self.document_id,
            "status": self.status,
        }


class OperationRegistry:
    """Mint operation ids and classify incoming notifications.

    Args:
        actor_id: The actor whose writes this registry issues.  May be
            changed later with :meth:`set_current_actor` (e.g. after sign-in).
        echo_window: Seconds during which an issued id is treated as an echo.
        retention: Seconds an id is kept in the recent index at all.
        forget_failed: Evict failed operations from the recent index
            immediately instead of letting them age out.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        actor_id: str | None = None,
        *,
        echo_window: float = DEFAULT_ECHO_WINDOW_SECONDS,
        retention: float = DEFAULT_RETENTION_SECONDS,
        forget_failed: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._actor_id = actor_id or None
        self.echo_window = echo_window
        self.retention = max(retention, echo_window)
        self.forget_failed = forget_failed
        self._clock = clock
        self._pending: dict[str, Operation] = {}
        self._recent: dict[str, Operation] = {}

    # ------------------------------------------------------------------
    # Actor
    # ------------------------------------------------------------------

    @property
    def current_actor(self) -> str:
        return self._actor_id or ANONYMOUS_ACTOR

    def set_current_actor(self, actor_id: str | None) -> None:
        self._actor_id = actor_id or None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def begin(
        self,
        kind: str,
        document_id: str,
        actor_id: str | None = None,
        payload: Any = None,
    ) -> Operation:
        """Record a new pending operation and return it."""
        now = self._clock()
        operation = Operation(
            id=generate_operation_id(),
            kind=kind,
            actor_id=actor_id or self.current_actor,
            document_id=document_id,
            issued_at=now,
            payload=payload,
        )
        self._pending[operation.id] = operation
        self._recent[operation.id] = operation
        self.sweep(now)
        return operation

    def complete(self, operation_id: str) -> None:
        """Mark a pending operation completed.  No-op if not pending."""
        self._settle(operation_id, COMPLETED)

    def fail(self, operation_id: str) -> None:
        """Mark a pending operation failed.  No-op if not pending."""
        operation = self._settle(operation_id, FAILED)
        if operation is not None and self.forget_failed:
            self._recent.pop(operation.id, None)

    def _settle(self, operation_id: str, status: str) -> Operation | None:
        try:
            operation = self._pending.pop(operation_id)
        except (KeyError, TypeError):
            return None
        operation.status = status
        operation.settled_at = self._clock()
        return operation

    # ------------------------------------------------------------------
    # Echo classification
    # ------------------------------------------------------------------

    def is_self_echo(
        self,
        operation_id: str | None = None,
        actor_id: str | None = None,
    ) -> bool:
        """Return ``True`` if a notification carrying these ids is our own write.

        An id qualifies when it is in the recent index AND *actor_id* is the
        current actor, OR when the id alone is still inside the echo window
        (the backend may echo before actor attribution is available).  Both
        paths read the recent index through the echo window, so an id stops
        being an echo once it is older than the window.
        """
        if not operation_id or not isinstance(operation_id, str):
            return False
        operation = self._recent.get(operation_id)
        if operation is None:
            return False

        if self._clock() - operation.issued_at > self.echo_window:
            return False

        if actor_id is not None and actor_id == self.current_actor:
            logger.debug("echo %s matched by actor %s", operation_id, actor_id)
        else:
            logger.debug("echo %s matched by recency (actor=%r)", operation_id, actor_id)
        return True

    # ------------------------------------------------------------------
    # Inspection and housekeeping
    # ------------------------------------------------------------------

    def get(self, operation_id: str) -> Operation | None:
        """Return a pending or recent operation by id."""
        return self._pending.get(operation_id) or self._recent.get(operation_id)

    def pending(self) -> list[Operation]:
        """Return pending operations in issue order."""
        return sorted(self._pending.values(), key=lambda op: op.issued_at)

    def is_pending(self, operation_id: str) -> bool:
        return operation_id in self._pending

    def is_recent(self, operation_id: str) -> bool:
        return operation_id in self._recent

    def sweep(self, now: float | None = None) -> int:
        """Evict recent entries older than the retention bound.

        Returns the number of evicted entries.
        """
        if now is None:
            now = self._clock()
        cutoff = now - self.retention
        stale = [op_id for op_id, op in self._recent.items() if op.issued_at < cutoff]
        for op_id in stale:
            del self._recent[op_id]
        return len(stale)

    def clear(self) -> None:
        """Drop every pending and recent operation (document unload)."""
        self._pending.clear()
        self._recent.clear()

    def __len__(self) -> int:
        return len(self._recent)
