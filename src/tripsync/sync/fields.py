"""Per-field dual state for values that are typed locally and synced remotely.

A field (e.g. one place's memo) keeps two values: what the user sees
(``local_value``) and what the backend last had (``synced_value``).  While
the user has an unconfirmed local edit the field is *dirty*, and nothing
arriving from the backend may replace ``local_value``; it only moves
``synced_value``.  A later :meth:`FieldStore.settle` pass (e.g. on blur)
adopts the synced value if the local edit never round-tripped.

Field ids are ``"<document_id>/<entity_id>/<field>"`` so a document's
fields can be dropped together on unload.
"""

from __future__ import annotations

import dataclasses
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

FIELD_ID_SEP = "/"


def field_key(document_id: str, entity_id: str, name: str) -> str:
    """Build the field id for *name* on *entity_id* inside *document_id*."""
    return FIELD_ID_SEP.join((document_id, entity_id, name))


def split_field_key(field_id: str) -> tuple[str, str, str]:
    """Inverse of :func:`field_key`.

    Raises:
        ValueError: If *field_id* does not have three parts.
    """
    parts = field_id.split(FIELD_ID_SEP, 2)
    if len(parts) != 3:
        raise ValueError(f"Malformed field id: {field_id!r}")
    return parts[0], parts[1], parts[2]


def document_of(field_id: str) -> str:
    """Return the document id a field id belongs to."""
    return field_id.split(FIELD_ID_SEP, 1)[0]


@dataclass
class FieldSyncState:
    local_value: Any = None
    synced_value: Any = None
    is_dirty: bool = False
    in_flight: int = 0
    last_local_edit_at: float | None = None
    last_sync_confirm_at: float | None = None

    @property
    def is_syncing(self) -> bool:
        return self.in_flight > 0


class FieldStore:
    """Reconciliation state for every tracked field of the open documents.

    All methods are cheap in-memory updates and never raise.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._states: dict[str, FieldSyncState] = {}

    def record_local_edit(self, field_id: str, value: Any) -> None:
        """Called on every keystroke / change."""
        state = self._states.get(field_id)
        if state is None:
            state = self._states[field_id] = FieldSyncState()
        state.local_value = value
        state.is_dirty = True
        state.last_local_edit_at = self._clock()

    def record_sync_confirmed(self, field_id: str, value: Any) -> None:
        """The backend acknowledged a write carrying *value* for this field."""
        state = self._merge_synced(field_id, value)
        state.in_flight = max(state.in_flight - 1, 0)

    def record_remote_update(self, field_id: str, value: Any) -> None:
        """A genuine remote change carried *value* for this field."""
        self._merge_synced(field_id, value)

    def _merge_synced(self, field_id: str, value: Any) -> FieldSyncState:
        now = self._clock()
        state = self._states.get(field_id)
        if state is None:
            state = self._states[field_id] = FieldSyncState(
                local_value=value,
                synced_value=value,
            )
            state.last_sync_confirm_at = now
            return state

        state.synced_value = value
        state.last_sync_confirm_at = now
        if not state.is_dirty:
            state.local_value = value
        elif state.local_value == value:
            state.is_dirty = False
        # Dirty and different: newer local input wins until settle().
        return state

    def mark_syncing(self, field_id: str, syncing: bool) -> None:
        """Count one write carrying this field as started (True) or abandoned (False).

        Overlapping writes of the same field each hold their own count, so
        the field stays syncing until the last of them is acknowledged.
        """
        state = self._states.get(field_id)
        if state is None:
            return
        if syncing:
            state.in_flight += 1
        else:
            state.in_flight = max(state.in_flight - 1, 0)

    def read(self, field_id: str) -> FieldSyncState | None:
        """Return a copy of the field's state, or ``None`` if untracked."""
        state = self._states.get(field_id)
        return dataclasses.replace(state) if state is not None else None

    def display_value(self, field_id: str, default: Any = None) -> Any:
        """Return the value the UI should show for *field_id*."""
        state = self._states.get(field_id)
        return state.local_value if state is not None else default

    def settle(self, field_id: str, grace_seconds: float = 0.0) -> Any:
        """Reconcile a dirty field whose local edit never round-tripped.

        If the field is dirty, has no write in flight, and its last local
        edit is older than *grace_seconds*, the synced value replaces the
        local one.
        Returns the value to display afterwards (``None`` if untracked).
        """
        state = self._states.get(field_id)
        if state is None:
            return None
        if state.is_dirty and not state.is_syncing and state.synced_value is not None:
            edited_at = state.last_local_edit_at or 0.0
            if self._clock() - edited_at >= grace_seconds:
                state.local_value = state.synced_value
                state.is_dirty = False
        return state.local_value

    def dirty_fields(self, document_id: str | None = None) -> list[str]:
        """Field ids with unconfirmed local edits, sorted."""
        return sorted(
            fid
            for fid, state in self._states.items()
            if state.is_dirty and (document_id is None or document_of(fid) == document_id)
        )

    def reset(self, document_id: str | None = None) -> None:
        """Forget one document's fields, or every field when *document_id* is None."""
        if document_id is None:
            self._states.clear()
            return
        for fid in [f for f in self._states if document_of(f) == document_id]:
            del self._states[fid]

    def reset_entity(self, document_id: str, entity_id: str) -> None:
        """Forget the fields of one entity (e.g. a deleted place)."""
        prefix = FIELD_ID_SEP.join((document_id, entity_id)) + FIELD_ID_SEP
        for fid in [f for f in self._states if f.startswith(prefix)]:
            del self._states[fid]

    def __contains__(self, field_id: object) -> bool:
        return field_id in self._states

    def __len__(self) -> int:
        return len(self._states)
