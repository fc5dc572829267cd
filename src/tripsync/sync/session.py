"""One open plan wired between the plan store and the sync gateway.

The session is what an editing screen talks to: it applies edits to the
store immediately, pushes the plan, and merges remote changes back without
clobbering text the user is still typing.
"""

from __future__ import annotations

from collections.abc import Callable

from tripsync.core.config import DEFAULT_SETTLE_GRACE_SECONDS
from tripsync.core.models import Place, Plan
from tripsync.state.plans import PlanStore
from tripsync.sync.documents import TRACKED_PLACE_FIELDS, TRACKED_PLAN_FIELDS
from tripsync.sync.fields import field_key, split_field_key
from tripsync.sync.gateway import SyncGateway
from tripsync.sync.operations import Operation


class PlanSyncSession:
    """Edit and sync a single plan.

    Args:
        store: Application state holding the plan.
        gateway: Gateway used for pushes and the subscription.
        plan_id: The plan (document) this session edits.
        settle_grace: Seconds a dirty field is left alone before
            :meth:`blur` adopts the synced value.
        on_removed: Called with the plan id if the backend deletes the plan.
    """

    def __init__(
        self,
        store: PlanStore,
        gateway: SyncGateway,
        plan_id: str,
        *,
        settle_grace: float = DEFAULT_SETTLE_GRACE_SECONDS,
        on_removed: Callable[[str], None] | None = None,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.plan_id = plan_id
        self.settle_grace = settle_grace
        self._on_removed_cb = on_removed

    @property
    def plan(self) -> Plan | None:
        return self.store.get_plan(self.plan_id)

    def open(self) -> None:
        self.gateway.subscribe(self.plan_id, self._on_remote_change, self._on_removed)

    def close(self) -> None:
        """Unsubscribe and forget this plan's field states."""
        self.gateway.unsubscribe(self.plan_id)
        self.gateway.fields.reset(self.plan_id)

    # ------------------------------------------------------------------
    # Typing
    # ------------------------------------------------------------------

    def edit_memo(self, place_id: str, text: str) -> None:
        """Record a keystroke in a place memo.  No I/O."""
        self.gateway.record_local_edit(field_key(self.plan_id, place_id, "memo"), text)
        self.store.update_place(self.plan_id, place_id, memo=text)

    def edit_plan_field(self, name: str, value: str) -> None:
        """Record a keystroke in the plan title or description."""
        if name not in TRACKED_PLAN_FIELDS:
            raise ValueError(f"Not a tracked plan field: {name!r}")
        self.gateway.record_local_edit(field_key(self.plan_id, self.plan_id, name), value)
        self.store.update_plan(self.plan_id, **{name: value})

    def memo(self, place_id: str) -> str:
        """Return the memo text the UI should show."""
        fid = field_key(self.plan_id, place_id, "memo")
        place = self.plan.find_place(place_id) if self.plan is not None else None
        return self.gateway.fields.display_value(fid, place.memo if place else "")

    def blur(self, place_id: str) -> str:
        """Reconcile a memo when its input loses focus.  Returns the shown text."""
        fid = field_key(self.plan_id, place_id, "memo")
        before = self.gateway.fields.display_value(fid)
        value = self.gateway.fields.settle(fid, self.settle_grace)
        if value is not None and value != before:
            self.store.update_place(self.plan_id, place_id, memo=value)
        return value if value is not None else self.memo(place_id)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def flush(self, kind: str = "field_update") -> Operation:
        """Push the plan with every dirty field of this plan attached."""
        plan = self._require_plan()
        dirty = self.gateway.fields.dirty_fields(self.plan_id)
        carried = {fid: self.gateway.fields.display_value(fid) for fid in dirty}
        return await self.gateway.push(plan, kind, fields=carried)

    async def add_place(self, place: Place) -> Operation:
        self._require_plan()
        self.store.add_place(self.plan_id, place)
        return await self.flush("item_add")

    async def update_place(self, place_id: str, **updates: object) -> Operation:
        self._require_plan()
        if not self.store.update_place(self.plan_id, place_id, **updates):
            raise KeyError(place_id)
        return await self.flush("item_update")

    async def remove_place(self, place_id: str) -> Operation:
        self._require_plan()
        if not self.store.delete_place(self.plan_id, place_id):
            raise KeyError(place_id)
        self.gateway.fields.reset_entity(self.plan_id, place_id)
        return await self.flush("item_delete")

    async def update_plan(self, **updates: object) -> Operation:
        self._require_plan()
        self.store.update_plan(self.plan_id, **updates)
        return await self.flush("document_update")

    def _require_plan(self) -> Plan:
        plan = self.plan
        if plan is None:
            raise KeyError(self.plan_id)
        return plan

    # ------------------------------------------------------------------
    # Remote changes
    # ------------------------------------------------------------------

    def _on_remote_change(self, plan: Plan) -> None:
        # Unconfirmed local input stays on screen over whatever arrived.
        for fid in self.gateway.fields.dirty_fields(self.plan_id):
            _doc, entity_id, name = split_field_key(fid)
            value = self.gateway.fields.display_value(fid)
            if entity_id == plan.id and name in TRACKED_PLAN_FIELDS:
                setattr(plan, name, value)
                continue
            place = plan.find_place(entity_id)
            if place is not None and name in TRACKED_PLACE_FIELDS:
                setattr(place, name, value)
        self.store.apply_remote_document(plan)

    def _on_removed(self, plan_id: str) -> None:
        self.store.delete_plan(plan_id)
        self.gateway.fields.reset(plan_id)
        if self._on_removed_cb is not None:
            self._on_removed_cb(plan_id)
