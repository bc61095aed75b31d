"""osl_etl.ranking

Global ranking over competition participants (read-only).

For each participant with at least one lift: best weight per canonical
movement (0 when absent) and the total across movements.  Rows are ranked
by the selected movement (or total) descending; ties keep the order in
which participants were first inserted.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any

import psycopg

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100


class InvalidRankingFilter(ValueError):
    """Raised when ranking filter parameters are out of range."""


class RankingMovement(str, enum.Enum):
    MUSCLEUP = "muscleup"
    PULLUP = "pullup"
    DIPS = "dips"
    SQUAT = "squat"
    TOTAL = "total"

    @property
    def column(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: str | None) -> RankingMovement:
        """Accept 'Squat', 'pull-up', 'Muscle-up', 'TOTAL', ... ; None → total."""
        if value is None or not value.strip():
            return cls.TOTAL
        key = value.strip().lower().replace("-", "").replace("_", "").replace(" ", "")
        try:
            return cls(key)
        except ValueError:
            raise InvalidRankingFilter(
                f"unknown movement {value!r}; expected one of "
                + ", ".join(m.value for m in cls)
            ) from None


@dataclass
class RankingFilter:
    gender: str | None = None
    country: str | None = None
    movement: RankingMovement = RankingMovement.TOTAL
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE

    def validate(self) -> None:
        if self.page < 1:
            raise InvalidRankingFilter("page must be >= 1")
        if not 1 <= self.page_size <= MAX_PAGE_SIZE:
            raise InvalidRankingFilter(f"page_size must be between 1 and {MAX_PAGE_SIZE}")
        if self.gender is not None and self.gender not in ("M", "F"):
            raise InvalidRankingFilter("gender must be 'M' or 'F'")

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


@dataclass
class RankingEntry:
    rank: int
    athlete_id: str
    first_name: str
    last_name: str
    slug: str
    country: str
    gender: str
    bodyweight: Decimal | None
    ris: Decimal | None
    muscleup: Decimal
    pullup: Decimal
    dips: Decimal
    squat: Decimal
    total: Decimal
    competition_id: str
    competition_name: str
    competition_date: date | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "rank": self.rank,
            "athlete": {
                "athlete_id": self.athlete_id,
                "first_name": self.first_name,
                "last_name": self.last_name,
                "slug": self.slug,
                "country": self.country,
                "gender": self.gender,
                "bodyweight": self.bodyweight,
            },
            "ris": self.ris,
            "total": self.total,
            "muscleup": self.muscleup,
            "pullup": self.pullup,
            "dips": self.dips,
            "squat": self.squat,
            "competition": {
                "competition_id": self.competition_id,
                "name": self.competition_name,
                "date": self.competition_date,
            },
        }


def _where(f: RankingFilter) -> tuple[str, list[Any]]:
    clauses: list[str] = []
    params: list[Any] = []
    if f.gender is not None:
        clauses.append("a.gender = %s")
        params.append(f.gender)
    if f.country is not None:
        clauses.append("a.country = %s")
        params.append(f.country)
    return (" AND " + " AND ".join(clauses)) if clauses else "", params


def count_ranked(conn: psycopg.Connection, f: RankingFilter) -> int:
    where, params = _where(f)
    row = conn.execute(
        f"""
        SELECT COUNT(DISTINCT cp.participant_id)
        FROM competition_participants cp
        JOIN athletes a ON a.athlete_id = cp.athlete_id
        JOIN lifts l ON l.participant_id = cp.participant_id
        WHERE TRUE{where}
        """,
        params,
    ).fetchone()
    return int(row[0])


def rank(conn: psycopg.Connection, f: RankingFilter) -> tuple[list[RankingEntry], int]:
    """Return (entries for the requested page, filtered population size)."""
    f.validate()
    where, params = _where(f)
    column = f.movement.column
    rows = conn.execute(
        f"""
        WITH movement_weights AS (
            SELECT
                cp.participant_id,
                cp.insertion_order,
                a.athlete_id,
                a.first_name,
                a.last_name,
                a.slug,
                a.country,
                a.gender,
                cp.bodyweight,
                cp.ris_score,
                c.competition_id,
                c.name AS competition_name,
                c.start_date,
                COALESCE(MAX(CASE WHEN l.movement_name = 'Muscle-up' THEN l.max_weight END), 0) AS muscleup,
                COALESCE(MAX(CASE WHEN l.movement_name = 'Pull-up' THEN l.max_weight END), 0) AS pullup,
                COALESCE(MAX(CASE WHEN l.movement_name = 'Dips' THEN l.max_weight END), 0) AS dips,
                COALESCE(MAX(CASE WHEN l.movement_name = 'Squat' THEN l.max_weight END), 0) AS squat,
                COALESCE(SUM(l.max_weight), 0) AS total
            FROM competition_participants cp
            JOIN athletes a ON a.athlete_id = cp.athlete_id
            JOIN competitions c ON c.competition_id = cp.competition_id
            JOIN lifts l ON l.participant_id = cp.participant_id
            WHERE TRUE{where}
            GROUP BY cp.participant_id, cp.insertion_order, a.athlete_id, a.first_name,
                     a.last_name, a.slug, a.country, a.gender, cp.bodyweight, cp.ris_score,
                     c.competition_id, c.name, c.start_date
        ),
        ranked AS (
            SELECT *, ROW_NUMBER() OVER (ORDER BY {column} DESC, insertion_order ASC) AS rank
            FROM movement_weights
        )
        SELECT
            rank, athlete_id, first_name, last_name, slug, country, gender,
            bodyweight, ris_score, muscleup, pullup, dips, squat, total,
            competition_id, competition_name, start_date
        FROM ranked
        ORDER BY rank
        LIMIT %s OFFSET %s
        """,
        params + [f.page_size, f.offset],
    ).fetchall()

    entries = [
        RankingEntry(
            rank=int(r[0]),
            athlete_id=str(r[1]),
            first_name=r[2],
            last_name=r[3],
            slug=r[4],
            country=r[5],
            gender=r[6],
            bodyweight=r[7],
            ris=r[8],
            muscleup=r[9],
            pullup=r[10],
            dips=r[11],
            squat=r[12],
            total=r[13],
            competition_id=str(r[14]),
            competition_name=r[15],
            competition_date=r[16],
        )
        for r in rows
    ]
    return entries, count_ranked(conn, f)
