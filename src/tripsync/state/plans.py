"""In-memory plan collection that the UI renders from.

Listeners are fire-and-forget: they run after every change, and a failing
listener is logged without interrupting the mutation or other listeners.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable

from tripsync.core.models import Place, Plan
from tripsync.core.timefmt import utc_now

logger = logging.getLogger(__name__)

PlanListener = Callable[[str, Plan | None], None]

_PLAN_FIELDS = frozenset(f.name for f in dataclasses.fields(Plan)) - {"id", "places"}
_PLACE_FIELDS = frozenset(f.name for f in dataclasses.fields(Place)) - {"id"}


class PlanStore:
    """Plans keyed by id, plus the id of the plan currently open."""

    def __init__(self) -> None:
        self._plans: dict[str, Plan] = {}
        self._current_id: str | None = None
        self._listeners: list[PlanListener] = []

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def register_listener(self, fn: PlanListener) -> None:
        """Register a callback invoked as ``fn(plan_id, plan_or_None)``."""
        self._listeners.append(fn)

    def unregister_listener(self, fn: PlanListener) -> None:
        try:
            self._listeners.remove(fn)
        except ValueError:
            pass

    def _notify(self, plan_id: str) -> None:
        plan = self._plans.get(plan_id)
        for fn in list(self._listeners):
            try:
                fn(plan_id, plan)
            except Exception:
                logger.exception("plan listener failed for %s", plan_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def current_plan(self) -> Plan | None:
        if self._current_id is None:
            return None
        return self._plans.get(self._current_id)

    @property
    def plans(self) -> list[Plan]:
        return list(self._plans.values())

    def get_plan(self, plan_id: str) -> Plan | None:
        return self._plans.get(plan_id)

    # ------------------------------------------------------------------
    # Plans
    # ------------------------------------------------------------------

    def set_current_plan(self, plan: Plan | None) -> None:
        if plan is None:
            self._current_id = None
            return
        self._plans[plan.id] = plan
        self._current_id = plan.id
        self._notify(plan.id)

    def set_plans(self, plans: list[Plan]) -> None:
        self._plans = {p.id: p for p in plans}
        if self._current_id not in self._plans:
            self._current_id = None
        for plan_id in self._plans:
            self._notify(plan_id)

    def add_plan(self, plan: Plan) -> None:
        self._plans[plan.id] = plan
        self._notify(plan.id)

    def update_plan(self, plan_id: str, **updates: object) -> bool:
        """Apply field updates to a plan.  Returns ``False`` if it is unknown.

        Raises:
            ValueError: If an update names a field plans do not have.
        """
        _check_fields(updates, _PLAN_FIELDS, "plan")
        plan = self._plans.get(plan_id)
        if plan is None:
            return False
        for name, value in updates.items():
            setattr(plan, name, value)
        if "updated_at" not in updates:
            plan.updated_at = utc_now()
        self._notify(plan_id)
        return True

    def delete_plan(self, plan_id: str) -> None:
        if self._plans.pop(plan_id, None) is None:
            return
        if self._current_id == plan_id:
            self._current_id = None
        self._notify(plan_id)

    def apply_remote_document(self, plan: Plan) -> None:
        """Replace the stored copy of a plan with one received from the backend."""
        self._plans[plan.id] = plan
        self._notify(plan.id)

    # ------------------------------------------------------------------
    # Places
    # ------------------------------------------------------------------

    def add_place(self, plan_id: str, place: Place) -> bool:
        plan = self._plans.get(plan_id)
        if plan is None:
            return False
        plan.places.append(place)
        plan.updated_at = utc_now()
        self._notify(plan_id)
        return True

    def update_place(self, plan_id: str, place_id: str, **updates: object) -> bool:
        """Apply field updates to one place.  Returns ``False`` if not found.

        Raises:
            ValueError: If an update names a field places do not have.
        """
        _check_fields(updates, _PLACE_FIELDS, "place")
        plan = self._plans.get(plan_id)
        place = plan.find_place(place_id) if plan is not None else None
        if place is None:
            return False
        for name, value in updates.items():
            setattr(place, name, value)
        now = utc_now()
        if "updated_at" not in updates:
            place.updated_at = now
        plan.updated_at = now
        self._notify(plan_id)
        return True

    def delete_place(self, plan_id: str, place_id: str) -> bool:
        plan = self._plans.get(plan_id)
        if plan is None:
            return False
        remaining = [p for p in plan.places if p.id != place_id]
        if len(remaining) == len(plan.places):
            return False
        plan.places = remaining
        plan.updated_at = utc_now()
        self._notify(plan_id)
        return True


def _check_fields(updates: dict, allowed: frozenset[str], what: str) -> None:
    unknown = sorted(set(updates) - allowed)
    if unknown:
        raise ValueError(f"Unknown {what} field(s): {', '.join(unknown)}")
