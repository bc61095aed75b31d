"""Unit tests for movement name mapping."""

from __future__ import annotations

import pytest

from osl_etl.movement_mapper import (
    CANONICAL_MOVEMENT_NAMES,
    CanonicalMovement,
    CanonicalMovementMapper,
    LiftControlMovementMapper,
    require_movement,
)
from osl_etl.shared import TransformationError, UnknownMovement


class TestLiftControlMovementMapper:
    @pytest.mark.parametrize("raw,expected", [
        ("Traction", CanonicalMovement.PULL_UP),
        ("traction", CanonicalMovement.PULL_UP),
        ("Dips", CanonicalMovement.DIPS),
        ("Muscle-up", CanonicalMovement.MUSCLE_UP),
        ("muscle up", CanonicalMovement.MUSCLE_UP),
        ("MUSCLEUP", CanonicalMovement.MUSCLE_UP),
        ("  Squat ", CanonicalMovement.SQUAT),
    ])
    def test_known_names(self, raw, expected):
        assert LiftControlMovementMapper().map(raw) is expected

    def test_unknown_returns_none(self):
        assert LiftControlMovementMapper().map("Bench") is None

    def test_canonical_pull_up_is_not_a_liftcontrol_name(self):
        assert LiftControlMovementMapper().map("Pull-up") is None


class TestCanonicalMovementMapper:
    def test_exact(self):
        assert CanonicalMovementMapper().map("Pull-up") is CanonicalMovement.PULL_UP

    def test_case_insensitive(self):
        assert CanonicalMovementMapper().map("muscle-UP") is CanonicalMovement.MUSCLE_UP

    def test_synonym_rejected(self):
        assert CanonicalMovementMapper().map("Traction") is None


class TestRequireMovement:
    def test_returns_movement(self):
        mapper = LiftControlMovementMapper()
        assert require_movement(mapper, "Traction") is CanonicalMovement.PULL_UP

    def test_raises_unknown_movement(self):
        with pytest.raises(UnknownMovement) as exc_info:
            require_movement(LiftControlMovementMapper(), "Bench")
        assert exc_info.value.raw_name == "Bench"
        assert "Bench" in str(exc_info.value)

    def test_unknown_movement_is_transformation_error(self):
        with pytest.raises(TransformationError):
            require_movement(CanonicalMovementMapper(), "Deadlift")


class TestCanonicalMovement:
    def test_names(self):
        assert CANONICAL_MOVEMENT_NAMES == {"Muscle-up", "Pull-up", "Dips", "Squat"}

    def test_display_order(self):
        ordered = sorted(CanonicalMovement, key=lambda m: m.display_order)
        assert [m.value for m in ordered] == ["Muscle-up", "Pull-up", "Dips", "Squat"]

    def test_str_value_comparison(self):
        assert CanonicalMovement.DIPS == "Dips"
