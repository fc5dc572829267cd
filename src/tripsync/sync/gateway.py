"""Push local plan writes and filter self-echoes out of realtime notifications.

Two flows:
1. Local write -> begin an operation -> write the document tagged with the
   operation metadata -> complete/fail the operation.
2. Backend notification -> liveness check -> self-echo check -> decode ->
   update tracked fields -> hand the plan to the subscriber.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

from tripsync.core.config import DEFAULT_ECHO_WINDOW_SECONDS, DEFAULT_RETENTION_SECONDS
from tripsync.core.models import Plan
from tripsync.sync.backend import Detach, RealtimeBackend
from tripsync.sync.documents import (
    document_to_plan,
    extract_metadata,
    plan_to_document,
    tracked_field_values,
)
from tripsync.sync.errors import DocumentFormatError, PushError
from tripsync.sync.fields import FieldStore, FieldSyncState
from tripsync.sync.operations import OPERATION_KINDS, Operation, OperationRegistry

logger = logging.getLogger(__name__)

RemoteChangeCallback = Callable[[Plan], None]
RemovedCallback = Callable[[str], None]


class SubscriptionHandle:
    """A live subscription to one document.

    Cancelling is idempotent.  After :meth:`cancel` the gateway drops every
    notification addressed to this handle, including ones the backend had
    already sent.
    """

    def __init__(
        self,
        document_id: str,
        on_remote_change: RemoteChangeCallback,
        on_removed: RemovedCallback | None = None,
    ) -> None:
        self.document_id = document_id
        self.on_remote_change = on_remote_change
        self.on_removed = on_removed
        self._detach: Detach | None = None
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        if not self._active:
            return
        self._active = False
        detach, self._detach = self._detach, None
        if detach is not None:
            detach()


class SyncGateway:
    """Client-side sync endpoint for plan documents.

    Owns the operation registry and field store for its lifetime; both are
    constructor-injectable for tests and cleared by :meth:`close`.
    """

    def __init__(
        self,
        backend: RealtimeBackend,
        *,
        actor_id: str | None = None,
        registry: OperationRegistry | None = None,
        fields: FieldStore | None = None,
        config: Mapping[str, Any] | None = None,
    ) -> None:
        config = config or {}
        self.backend = backend
        if registry is None:
            registry = OperationRegistry(
                actor_id or config.get("actor_id") or None,
                echo_window=float(config.get("echo_window_seconds", DEFAULT_ECHO_WINDOW_SECONDS)),
                retention=float(config.get("retention_seconds", DEFAULT_RETENTION_SECONDS)),
            )
        elif actor_id:
            registry.set_current_actor(actor_id)
        self.registry = registry
        self.fields = fields if fields is not None else FieldStore()
        self._subscriptions: dict[str, SubscriptionHandle] = {}

    @property
    def actor_id(self) -> str:
        return self.registry.current_actor

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def push(
        self,
        plan: Plan,
        kind: str,
        *,
        fields: Mapping[str, Any] | None = None,
    ) -> Operation:
        """Write *plan* to the backend tagged with a new operation.

        Args:
            plan: The current local state of the document.
            kind: One of :data:`OPERATION_KINDS`.
            fields: ``{field_id: value}`` carried by this write.  They are
                marked syncing for the duration and confirmed on ack.

        Returns:
            The completed operation.

        Raises:
            ValueError: If *kind* is not a known operation kind.
            PushError: If the backend rejects the write.  The operation is
                marked failed first.
        """
        if kind not in OPERATION_KINDS:
            raise ValueError(f"Unknown operation kind: {kind!r}")

        carried = dict(fields or {})
        operation = self.registry.begin(kind, plan.id)
        data = plan_to_document(plan, operation)
        operation.payload = data

        for field_id in carried:
            self.fields.mark_syncing(field_id, True)

        try:
            await self.backend.write(plan.id, data)
        except Exception as exc:
            self.registry.fail(operation.id)
            for field_id in carried:
                self.fields.mark_syncing(field_id, False)
            logger.warning("push %s (%s) for %s failed: %s", operation.id, kind, plan.id, exc)
            raise PushError(
                f"Write of {plan.id} failed: {exc}",
                operation_id=operation.id,
                document_id=plan.id,
                kind=kind,
            ) from exc

        self.registry.complete(operation.id)
        for field_id, value in carried.items():
            self.fields.record_sync_confirmed(field_id, value)
        logger.debug("push %s (%s) for %s acknowledged", operation.id, kind, plan.id)
        return operation

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(
        self,
        document_id: str,
        on_remote_change: RemoteChangeCallback,
        on_removed: RemovedCallback | None = None,
    ) -> SubscriptionHandle:
        """Listen for remote changes to *document_id*.

        Replaces (and cancels) any existing subscription for the document.
        Returns immediately; notifications arrive through the backend.
        """
        self.unsubscribe(document_id)

        handle = SubscriptionHandle(document_id, on_remote_change, on_removed)
        self._subscriptions[document_id] = handle
        handle._detach = self.backend.listen(
            document_id,
            lambda snapshot: self._dispatch(handle, snapshot),
        )
        return handle

    def unsubscribe(self, document_id: str) -> None:
        handle = self._subscriptions.pop(document_id, None)
        if handle is not None:
            handle.cancel()

    def unsubscribe_all(self) -> None:
        for document_id in list(self._subscriptions):
            self.unsubscribe(document_id)

    def is_subscribed(self, document_id: str) -> bool:
        return document_id in self._subscriptions

    def close(self) -> None:
        """Tear down: drop every subscription, operation, and field state."""
        self.unsubscribe_all()
        self.registry.clear()
        self.fields.reset()

    # ------------------------------------------------------------------
    # Field state (UI entry points)
    # ------------------------------------------------------------------

    def record_local_edit(self, field_id: str, value: Any) -> None:
        self.fields.record_local_edit(field_id, value)

    def read(self, field_id: str) -> FieldSyncState | None:
        return self.fields.read(field_id)

    # ------------------------------------------------------------------
    # Notification dispatch
    # ------------------------------------------------------------------

    def _dispatch(self, handle: SubscriptionHandle, snapshot: Any) -> None:
        document_id = handle.document_id
        if not handle.active or self._subscriptions.get(document_id) is not handle:
            logger.debug("dropping notification for inactive subscription %s", document_id)
            return

        if snapshot is None:
            logger.warning("document %s no longer exists", document_id)
            if handle.on_removed is not None:
                self._invoke(handle.on_removed, document_id)
            return

        if not isinstance(snapshot, dict):
            logger.warning("dropping malformed notification for %s: not an object", document_id)
            return

        operation_id, actor_id, _kind = extract_metadata(snapshot)
        if self.registry.is_self_echo(operation_id, actor_id):
            logger.debug("self-echo %s for %s skipped", operation_id, document_id)
            return

        try:
            plan = document_to_plan(snapshot, document_id)
        except DocumentFormatError as exc:
            logger.warning("dropping malformed notification for %s: %s", document_id, exc)
            return

        for field_id, value in tracked_field_values(plan).items():
            self.fields.record_remote_update(field_id, value)

        self._invoke(handle.on_remote_change, plan)

    @staticmethod
    def _invoke(callback: Callable[[Any], None], arg: Any) -> None:
        """Run a subscriber callback.  Failures are logged, never raised."""
        try:
            callback(arg)
        except Exception:
            logger.exception("subscriber callback failed")
