"""Plan and place domain model.

A plan is the unit of synchronization: one plan is one backend document,
and its places travel inside it as a nested list.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from tripsync.core.timefmt import utc_now

PLACE_CATEGORIES: tuple[str, ...] = (
    "restaurant",
    "hotel",
    "attraction",
    "shopping",
    "transport",
    "other",
)

MEMBER_ROLES: tuple[str, ...] = ("owner", "editor", "viewer")


@dataclass
class Place:
    """A stop within a plan."""

    id: str
    name: str
    address: str
    lat: float
    lng: float
    category: str = "other"
    memo: str = ""
    created_by: str = ""
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    google_place_id: str | None = None
    cost: float | None = None
    rating: float | None = None
    photos: list[str] = field(default_factory=list)


@dataclass
class PlanMember:
    user_id: str
    role: str = "viewer"
    joined_at: datetime = field(default_factory=utc_now)


@dataclass
class Plan:
    """A travel plan and its places.

    ``last_operation_id`` / ``last_actor_id`` mirror the operation metadata
    of the write that produced the stored snapshot; they are informational
    on the client side.
    """

    id: str
    title: str = ""
    description: str = ""
    places: list[Place] = field(default_factory=list)
    is_public: bool = False
    members: list[PlanMember] = field(default_factory=list)
    created_by: str = ""
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    start_date: datetime | None = None
    end_date: datetime | None = None

    last_operation_id: str | None = None
    last_actor_id: str | None = None

    def find_place(self, place_id: str) -> Place | None:
        """Return the place with *place_id*, or ``None``."""
        for place in self.places:
            if place.id == place_id:
                return place
        return None
