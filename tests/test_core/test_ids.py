"""Tests for core ids module -- generation and validation."""

from __future__ import annotations

from tripsync.core.ids import (
    generate_client_id,
    generate_operation_id,
    generate_place_id,
    generate_plan_id,
    validate_actor_id,
    validate_id,
)

_VALID_ULID = "01H0ABC0DEF000000000000000"  # 26 chars


class TestGeneratedIds:
    """Every generator produces an id its own prefix validates."""

    def test_operation_id(self) -> None:
        assert validate_id(generate_operation_id(), "op") is True

    def test_plan_id(self) -> None:
        assert validate_id(generate_plan_id(), "plan") is True

    def test_place_id(self) -> None:
        assert validate_id(generate_place_id(), "place") is True

    def test_client_id(self) -> None:
        assert validate_id(generate_client_id(), "client") is True

    def test_operation_ids_unique(self) -> None:
        ids = [generate_operation_id() for _ in range(50)]
        assert len(set(ids)) == 50


class TestValidateId:
    """validate_id() rejects malformed identifiers."""

    def test_mixed_case_ulid(self) -> None:
        assert validate_id("op_" + _VALID_ULID.lower(), "op") is True

    def test_wrong_prefix(self) -> None:
        assert validate_id("plan_" + _VALID_ULID, "op") is False

    def test_no_separator(self) -> None:
        assert validate_id("op" + _VALID_ULID, "op") is False

    def test_short_ulid(self) -> None:
        assert validate_id("op_" + _VALID_ULID[:-1], "op") is False

    def test_excluded_letters(self) -> None:
        assert validate_id("op_" + "I" * 26, "op") is False

    def test_non_string(self) -> None:
        assert validate_id(None, "op") is False  # type: ignore[arg-type]


class TestValidateActorId:
    """Actor ids are opaque tokens without whitespace."""

    def test_firebase_style_uid(self) -> None:
        assert validate_actor_id("Xk3pQ9rTz1bWc7VnLm2") is True

    def test_email_like(self) -> None:
        assert validate_actor_id("alice@example.com") is True

    def test_empty(self) -> None:
        assert validate_actor_id("") is False

    def test_whitespace(self) -> None:
        assert validate_actor_id("alice smith") is False

    def test_too_long(self) -> None:
        assert validate_actor_id("a" * 129) is False

    def test_non_string(self) -> None:
        assert validate_actor_id(42) is False  # type: ignore[arg-type]
