"""osl_etl.movement_mapper

Maps platform-specific movement names onto the canonical streetlifting
vocabulary (Muscle-up, Pull-up, Dips, Squat).

Each source platform has its own MovementMapper implementation; a miss
returns None and callers turn it into UnknownMovement via require_movement().
"""

from __future__ import annotations

import enum
from typing import Protocol

from osl_etl.shared import UnknownMovement


class CanonicalMovement(str, enum.Enum):
    MUSCLE_UP = "Muscle-up"
    PULL_UP = "Pull-up"
    DIPS = "Dips"
    SQUAT = "Squat"

    @property
    def display_order(self) -> int:
        return _DISPLAY_ORDER[self]


_DISPLAY_ORDER = {
    CanonicalMovement.MUSCLE_UP: 1,
    CanonicalMovement.PULL_UP: 2,
    CanonicalMovement.DIPS: 3,
    CanonicalMovement.SQUAT: 4,
}

CANONICAL_MOVEMENT_NAMES = frozenset(m.value for m in CanonicalMovement)


class MovementMapper(Protocol):
    def map(self, raw_name: str) -> CanonicalMovement | None:
        ...


class LiftControlMovementMapper:
    """Synonym table for LiftControl's (mostly French) movement labels."""

    _SYNONYMS = {
        "traction": CanonicalMovement.PULL_UP,
        "dips": CanonicalMovement.DIPS,
        "muscle-up": CanonicalMovement.MUSCLE_UP,
        "muscle up": CanonicalMovement.MUSCLE_UP,
        "muscleup": CanonicalMovement.MUSCLE_UP,
        "squat": CanonicalMovement.SQUAT,
    }

    def map(self, raw_name: str) -> CanonicalMovement | None:
        if raw_name is None:
            return None
        return self._SYNONYMS.get(raw_name.strip().lower())


class CanonicalMovementMapper:
    """Accepts canonical names in any letter case."""

    _BY_LOWER = {m.value.lower(): m for m in CanonicalMovement}

    def map(self, raw_name: str) -> CanonicalMovement | None:
        if raw_name is None:
            return None
        return self._BY_LOWER.get(raw_name.strip().lower())


def require_movement(mapper: MovementMapper, raw_name: str) -> CanonicalMovement:
    """Map raw_name or raise UnknownMovement."""
    movement = mapper.map(raw_name)
    if movement is None:
        raise UnknownMovement(raw_name)
    return movement
