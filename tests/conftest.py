"""Shared test fixtures."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from tripsync.core.models import Place, Plan
from tripsync.state.plans import PlanStore
from tripsync.sync.backend import MemoryBackend
from tripsync.sync.fields import FieldStore
from tripsync.sync.gateway import SyncGateway
from tripsync.sync.operations import OperationRegistry

_TS = datetime(2026, 1, 1, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_place(place_id: str = "place_1", memo: str = "", **overrides) -> Place:
    fields = {
        "id": place_id,
        "name": "Fushimi Inari",
        "address": "Kyoto",
        "lat": 34.9671,
        "lng": 135.7727,
        "category": "attraction",
        "memo": memo,
        "created_by": "alice",
        "created_at": _TS,
        "updated_at": _TS,
    }
    fields.update(overrides)
    return Place(**fields)


def make_plan(plan_id: str = "plan_1", places: list[Place] | None = None, **overrides) -> Plan:
    fields = {
        "id": plan_id,
        "title": "Kyoto weekend",
        "description": "Temples and food",
        "places": places if places is not None else [make_place()],
        "created_by": "alice",
        "created_at": _TS,
        "updated_at": _TS,
    }
    fields.update(overrides)
    return Plan(**fields)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def registry(clock: FakeClock) -> OperationRegistry:
    return OperationRegistry("alice", clock=clock)


@pytest.fixture()
def fields(clock: FakeClock) -> FieldStore:
    return FieldStore(clock=clock)


@pytest.fixture()
def backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture()
def gateway(backend: MemoryBackend, registry: OperationRegistry, fields: FieldStore) -> SyncGateway:
    return SyncGateway(backend, registry=registry, fields=fields)


@pytest.fixture()
def other_gateway(backend: MemoryBackend, clock: FakeClock) -> SyncGateway:
    """A second client (different actor) sharing the same backend."""
    return SyncGateway(
        backend,
        registry=OperationRegistry("bob", clock=clock),
        fields=FieldStore(clock=clock),
    )


@pytest.fixture()
def store() -> PlanStore:
    return PlanStore()
