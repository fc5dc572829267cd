"""Map plans to/from the backend's stored document shape.

Stored documents are camelCase JSON objects.  Datetimes travel as RFC 3339
UTC strings.  The operation metadata of the write that produced a snapshot
sits at the top level under ``operationId`` / ``actorId`` /
``operationKind`` and comes back out of every notification under the same
names.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from tripsync.core.models import MEMBER_ROLES, PLACE_CATEGORIES, Place, Plan, PlanMember
from tripsync.core.timefmt import parse_rfc3339, to_rfc3339, utc_now
from tripsync.sync.errors import DocumentFormatError
from tripsync.sync.fields import field_key
from tripsync.sync.operations import Operation

OPERATION_ID_FIELD = "operationId"
ACTOR_ID_FIELD = "actorId"
OPERATION_KIND_FIELD = "operationKind"

META_FIELDS: frozenset[str] = frozenset({OPERATION_ID_FIELD, ACTOR_ID_FIELD, OPERATION_KIND_FIELD})

# Fields subject to rapid local typing; these get dual-state tracking.
TRACKED_PLAN_FIELDS: tuple[str, ...] = ("title", "description")
TRACKED_PLACE_FIELDS: tuple[str, ...] = ("memo",)


# ---------------------------------------------------------------------------
# Plan -> document
# ---------------------------------------------------------------------------


def plan_to_document(plan: Plan, operation: Operation | None = None) -> dict:
    """Serialize *plan* into the stored document shape.

    When *operation* is given its metadata is attached at the top level.
    """
    doc: dict = {
        "id": plan.id,
        "title": plan.title,
        "description": plan.description,
        "isPublic": plan.is_public,
        "createdBy": plan.created_by,
        "createdAt": to_rfc3339(plan.created_at),
        "updatedAt": to_rfc3339(plan.updated_at),
        "startDate": to_rfc3339(plan.start_date) if plan.start_date else None,
        "endDate": to_rfc3339(plan.end_date) if plan.end_date else None,
        "members": [_member_to_dict(m) for m in plan.members],
        "places": [_place_to_dict(p) for p in plan.places],
    }
    if operation is not None:
        doc[OPERATION_ID_FIELD] = operation.id
        doc[ACTOR_ID_FIELD] = operation.actor_id
        doc[OPERATION_KIND_FIELD] = operation.kind
    return doc


def _place_to_dict(place: Place) -> dict:
    d: dict = {
        "id": place.id,
        "name": place.name,
        "address": place.address,
        "lat": place.lat,
        "lng": place.lng,
        "category": place.category,
        "memo": place.memo,
        "createdBy": place.created_by,
        "createdAt": to_rfc3339(place.created_at),
        "updatedAt": to_rfc3339(place.updated_at),
        "photos": list(place.photos),
    }
    if place.google_place_id is not None:
        d["placeId"] = place.google_place_id
    if place.cost is not None:
        d["cost"] = place.cost
    if place.rating is not None:
        d["rating"] = place.rating
    return d


def _member_to_dict(member: PlanMember) -> dict:
    return {
        "userId": member.user_id,
        "role": member.role,
        "joinedAt": to_rfc3339(member.joined_at),
    }


# ---------------------------------------------------------------------------
# Document -> plan
# ---------------------------------------------------------------------------


def extract_metadata(data: dict) -> tuple[str | None, str | None, str | None]:
    """Return ``(operation_id, actor_id, operation_kind)`` from a stored document.

    Values that are missing or not strings come back as ``None``.
    """
    return (
        _opt_str(data.get(OPERATION_ID_FIELD)),
        _opt_str(data.get(ACTOR_ID_FIELD)),
        _opt_str(data.get(OPERATION_KIND_FIELD)),
    )


def document_to_plan(data: Any, document_id: str | None = None) -> Plan:
    """Convert a stored document into a :class:`Plan`.

    Missing optional fields fall back to empty values.  Structural problems
    (wrong container types, places without ids, unparseable timestamps)
    raise :class:`DocumentFormatError`.
    """
    if not isinstance(data, dict):
        raise DocumentFormatError(f"document must be an object, got {type(data).__name__}")

    plan_id = data.get("id") or document_id
    if not isinstance(plan_id, str) or not plan_id:
        raise DocumentFormatError("document has no id")

    places_raw = data.get("places") or []
    if not isinstance(places_raw, list):
        raise DocumentFormatError("places must be a list")
    members_raw = data.get("members") or []
    if not isinstance(members_raw, list):
        raise DocumentFormatError("members must be a list")

    operation_id, actor_id, _kind = extract_metadata(data)

    return Plan(
        id=plan_id,
        title=_str(data, "title"),
        description=_str(data, "description"),
        places=[_place_from_dict(p) for p in places_raw],
        is_public=bool(data.get("isPublic", False)),
        members=[_member_from_dict(m) for m in members_raw],
        created_by=_str(data, "createdBy"),
        created_at=_timestamp(data, "createdAt") or utc_now(),
        updated_at=_timestamp(data, "updatedAt") or utc_now(),
        start_date=_timestamp(data, "startDate"),
        end_date=_timestamp(data, "endDate"),
        last_operation_id=operation_id,
        last_actor_id=actor_id,
    )


def _place_from_dict(raw: Any) -> Place:
    if not isinstance(raw, dict):
        raise DocumentFormatError("place entries must be objects")
    place_id = raw.get("id")
    if not isinstance(place_id, str) or not place_id:
        raise DocumentFormatError("place has no id")

    category = raw.get("category") or "other"
    if category not in PLACE_CATEGORIES:
        category = "other"

    photos = raw.get("photos") or []
    if not isinstance(photos, list):
        raise DocumentFormatError(f"place {place_id}: photos must be a list")

    return Place(
        id=place_id,
        name=_str(raw, "name"),
        address=_str(raw, "address"),
        lat=_number(raw, "lat", place_id),
        lng=_number(raw, "lng", place_id),
        category=category,
        memo=_str(raw, "memo"),
        created_by=_str(raw, "createdBy"),
        created_at=_timestamp(raw, "createdAt") or utc_now(),
        updated_at=_timestamp(raw, "updatedAt") or utc_now(),
        google_place_id=_opt_str(raw.get("placeId")),
        cost=_opt_number(raw, "cost", place_id),
        rating=_opt_number(raw, "rating", place_id),
        photos=[str(p) for p in photos],
    )


def _member_from_dict(raw: Any) -> PlanMember:
    if not isinstance(raw, dict) or not isinstance(raw.get("userId"), str):
        raise DocumentFormatError("member entries must be objects with a userId")
    role = raw.get("role") if raw.get("role") in MEMBER_ROLES else "viewer"
    return PlanMember(
        user_id=raw["userId"],
        role=role,
        joined_at=_timestamp(raw, "joinedAt") or utc_now(),
    )


# ---------------------------------------------------------------------------
# Tracked fields
# ---------------------------------------------------------------------------


def tracked_field_values(plan: Plan) -> dict[str, Any]:
    """Return ``{field_id: value}`` for every dual-state field in *plan*."""
    values: dict[str, Any] = {}
    for name in TRACKED_PLAN_FIELDS:
        values[field_key(plan.id, plan.id, name)] = getattr(plan, name)
    for place in plan.places:
        for name in TRACKED_PLACE_FIELDS:
            values[field_key(plan.id, place.id, name)] = getattr(place, name)
    return values


# ---------------------------------------------------------------------------
# Coercion helpers
# ---------------------------------------------------------------------------


def _opt_str(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def _str(data: dict, key: str) -> str:
    value = data.get(key)
    return value if isinstance(value, str) else ""


def _number(data: dict, key: str, owner: str) -> float:
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise DocumentFormatError(f"{owner}: {key} must be a number")
    return float(value)


def _opt_number(data: dict, key: str, owner: str) -> float | None:
    if data.get(key) is None:
        return None
    return _number(data, key, owner)


def _timestamp(data: dict, key: str) -> datetime | None:
    value = data.get(key)
    if value is None or value == "":
        return None
    try:
        return parse_rfc3339(value)
    except (TypeError, ValueError) as exc:
        raise DocumentFormatError(f"{key}: unparseable timestamp {value!r}") from exc
