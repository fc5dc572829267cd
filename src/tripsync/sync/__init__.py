"""Operation tracking, echo suppression, and field reconciliation."""

from __future__ import annotations

from tripsync.sync.backend import MemoryBackend, RealtimeBackend
from tripsync.sync.errors import BackendError, DocumentFormatError, PushError, SyncError
from tripsync.sync.fields import FieldStore, FieldSyncState, field_key
from tripsync.sync.gateway import SubscriptionHandle, SyncGateway
from tripsync.sync.operations import Operation, OperationRegistry
from tripsync.sync.session import PlanSyncSession

__all__ = [
    "BackendError",
    "DocumentFormatError",
    "FieldStore",
    "FieldSyncState",
    "MemoryBackend",
    "Operation",
    "OperationRegistry",
    "PlanSyncSession",
    "PushError",
    "RealtimeBackend",
    "SubscriptionHandle",
    "SyncError",
    "SyncGateway",
    "field_key",
]
