"""Prefixed ULID identifiers (``op_``, ``plan_``, ``place_``, ``client_``)."""

from __future__ import annotations

import re

from ulid import ULID

# 26 chars of Crockford Base32 (no I, L, O, U), either case.
_ULID_RE = re.compile(r"[0-9A-HJKMNP-TV-Z]{26}", re.IGNORECASE)

# Actor ids come from the auth provider (e.g. a Firebase uid).  We only
# require a printable token without whitespace.
_ACTOR_ID_RE = re.compile(r"\S{1,128}")


def _prefixed(prefix: str) -> str:
    return f"{prefix}_{ULID()}"


def generate_operation_id() -> str:
    return _prefixed("op")


def generate_plan_id() -> str:
    return _prefixed("plan")


def generate_place_id() -> str:
    return _prefixed("place")


def generate_client_id() -> str:
    """Id for one client install, stored in config."""
    return _prefixed("client")


def validate_id(id_str: str, expected_prefix: str) -> bool:
    """Return ``True`` if *id_str* is ``<expected_prefix>_<ULID>``."""
    if not isinstance(id_str, str) or not isinstance(expected_prefix, str):
        return False
    prefix, sep, ulid_part = id_str.partition("_")
    return bool(sep) and prefix == expected_prefix and _ULID_RE.fullmatch(ulid_part) is not None


def validate_actor_id(actor_id: str) -> bool:
    return isinstance(actor_id, str) and _ACTOR_ID_RE.fullmatch(actor_id) is not None
