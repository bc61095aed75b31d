"""osl_etl.ris

RIS (Relative Index for Streetlifting) computation against versioned
formula constants.

    RIS = Total × 100 / (A + (K − A) / (1 + Q · e^(−B · (BW − v))))

Constants (A, K, B, v, Q) are stored per gender in ris_formula_versions,
one row per edition year, each with an effective period.  Exactly one
version is flagged is_current.

Every computed score is recorded in ris_scores_history keyed by
(participant, formula); competition_participants.ris_score holds the score
for the formula that applied when it was last computed.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any

import psycopg
import yaml

from osl_etl.normalize import parse_date, to_decimal
from osl_etl.shared import NoFormulaAvailable

log = logging.getLogger(__name__)

_CENT = Decimal("0.01")

_FORMULA_COLUMNS = """
    formula_id, year, effective_from, effective_until, is_current,
    men_a, men_k, men_b, men_v, men_q,
    women_a, women_k, women_b, women_v, women_q,
    notes
"""


# ---------------------------------------------------------------------------
# Formula model
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GenderConstants:
    a: Decimal
    k: Decimal
    b: Decimal
    v: Decimal
    q: Decimal


@dataclass(frozen=True)
class RisFormula:
    formula_id: str | None
    year: int
    effective_from: date
    effective_until: date | None
    is_current: bool
    men: GenderConstants
    women: GenderConstants
    notes: str | None = None

    def constants_for_gender(self, gender: str) -> GenderConstants:
        """'F' selects the women's constants; anything else the men's."""
        return self.women if (gender or "").upper() == "F" else self.men

    def covers(self, d: date) -> bool:
        return self.effective_from <= d and (
            self.effective_until is None or d < self.effective_until
        )


def _formula_from_row(row: tuple) -> RisFormula:
    return RisFormula(
        formula_id=str(row[0]),
        year=row[1],
        effective_from=row[2],
        effective_until=row[3],
        is_current=row[4],
        men=GenderConstants(*row[5:10]),
        women=GenderConstants(*row[10:15]),
        notes=row[15],
    )


# ---------------------------------------------------------------------------
# Computation
# ---------------------------------------------------------------------------

def compute_ris(
    bodyweight: Decimal,
    total: Decimal,
    gender: str,
    formula: RisFormula,
) -> Decimal:
    """Return the RIS score rounded to 2 decimal places.

    The exponential is evaluated in float; everything else stays Decimal.
    """
    c = formula.constants_for_gender(gender)
    exp_arg = -c.b * (Decimal(bodyweight) - c.v)
    exp_term = Decimal(repr(math.exp(float(exp_arg))))
    denominator = c.a + (c.k - c.a) / (1 + c.q * exp_term)
    return (Decimal(total) * 100 / denominator).quantize(_CENT)


# ---------------------------------------------------------------------------
# Formula lookups
# ---------------------------------------------------------------------------

def get_formula_for_date(conn: psycopg.Connection, d: date) -> RisFormula:
    """Return the version effective on d; raise NoFormulaAvailable if none."""
    row = conn.execute(
        f"""
        SELECT {_FORMULA_COLUMNS}
        FROM ris_formula_versions
        WHERE effective_from <= %s
          AND (effective_until IS NULL OR effective_until > %s)
        ORDER BY effective_from DESC
        LIMIT 1
        """,
        (d, d),
    ).fetchone()
    if row is None:
        raise NoFormulaAvailable(f"no RIS formula effective on {d.isoformat()}")
    return _formula_from_row(row)


def get_current_formula(conn: psycopg.Connection) -> RisFormula:
    row = conn.execute(
        f"SELECT {_FORMULA_COLUMNS} FROM ris_formula_versions WHERE is_current LIMIT 1"
    ).fetchone()
    if row is None:
        raise NoFormulaAvailable("no current RIS formula")
    return _formula_from_row(row)


def get_formula_by_id(conn: psycopg.Connection, formula_id: str) -> RisFormula:
    row = conn.execute(
        f"SELECT {_FORMULA_COLUMNS} FROM ris_formula_versions WHERE formula_id = %s",
        (formula_id,),
    ).fetchone()
    if row is None:
        raise NoFormulaAvailable(f"RIS formula {formula_id} not found")
    return _formula_from_row(row)


def get_formula_by_year(conn: psycopg.Connection, year: int) -> RisFormula:
    row = conn.execute(
        f"SELECT {_FORMULA_COLUMNS} FROM ris_formula_versions WHERE year = %s",
        (year,),
    ).fetchone()
    if row is None:
        raise NoFormulaAvailable(f"no RIS formula for year {year}")
    return _formula_from_row(row)


def list_formulas(conn: psycopg.Connection) -> list[RisFormula]:
    rows = conn.execute(
        f"SELECT {_FORMULA_COLUMNS} FROM ris_formula_versions ORDER BY year DESC"
    ).fetchall()
    return [_formula_from_row(r) for r in rows]


# ---------------------------------------------------------------------------
# Score persistence
# ---------------------------------------------------------------------------

def upsert_ris_score(
    conn: psycopg.Connection,
    participant_id: str,
    formula_id: str,
    ris_score: Decimal,
    bodyweight: Decimal,
    total: Decimal,
) -> None:
    existing = conn.execute(
        """
        SELECT ris_score_id FROM ris_scores_history
        WHERE participant_id = %s AND formula_id = %s
        """,
        (participant_id, formula_id),
    ).fetchone()
    if existing is None:
        conn.execute(
            """
            INSERT INTO ris_scores_history
                (participant_id, formula_id, ris_score, bodyweight, total_weight)
            VALUES (%s, %s, %s, %s, %s)
            """,
            (participant_id, formula_id, ris_score, bodyweight, total),
        )
    else:
        conn.execute(
            """
            UPDATE ris_scores_history
            SET ris_score = %s, bodyweight = %s, total_weight = %s, computed_at = now()
            WHERE ris_score_id = %s
            """,
            (ris_score, bodyweight, total, existing[0]),
        )


def update_participant_ris(
    conn: psycopg.Connection,
    participant_id: str,
    ris_score: Decimal | None,
) -> None:
    conn.execute(
        "UPDATE competition_participants SET ris_score = %s WHERE participant_id = %s",
        (ris_score, participant_id),
    )


def get_participant_ris_history(
    conn: psycopg.Connection,
    participant_id: str,
) -> list[dict[str, Any]]:
    rows = conn.execute(
        """
        SELECT h.formula_id, f.year, h.ris_score, h.bodyweight, h.total_weight, h.computed_at
        FROM ris_scores_history h
        JOIN ris_formula_versions f ON f.formula_id = h.formula_id
        WHERE h.participant_id = %s
        ORDER BY f.year DESC
        """,
        (participant_id,),
    ).fetchall()
    return [
        {
            "formula_id": str(r[0]),
            "year": r[1],
            "ris_score": r[2],
            "bodyweight": r[3],
            "total_weight": r[4],
            "computed_at": r[5],
        }
        for r in rows
    ]


_PARTICIPANT_TOTALS_SQL = """
    SELECT
        cp.participant_id,
        cp.bodyweight,
        a.gender,
        COALESCE(SUM(l.max_weight), 0) AS total
    FROM competition_participants cp
    JOIN athletes a ON a.athlete_id = cp.athlete_id
    LEFT JOIN lifts l ON l.participant_id = cp.participant_id
"""


def compute_ris_for_competition(
    conn: psycopg.Connection,
    competition_id: str,
    competition_date: date,
) -> tuple[int, int]:
    """Score every participant of a competition with the formula effective
    on competition_date.

    Participants without a bodyweight get ris_score NULL.
    Returns (scored, skipped_no_bodyweight).
    """
    formula = get_formula_for_date(conn, competition_date)
    rows = conn.execute(
        _PARTICIPANT_TOTALS_SQL
        + """
        WHERE cp.competition_id = %s
        GROUP BY cp.participant_id, cp.bodyweight, a.gender
        """,
        (competition_id,),
    ).fetchall()

    scored = skipped = 0
    for participant_id, bodyweight, gender, total in rows:
        pid = str(participant_id)
        if bodyweight is None:
            update_participant_ris(conn, pid, None)
            skipped += 1
            continue
        score = compute_ris(bodyweight, total, gender, formula)
        upsert_ris_score(conn, pid, formula.formula_id, score, bodyweight, total)
        update_participant_ris(conn, pid, score)
        scored += 1

    if skipped:
        log.info(
            "competition %s: %d participant(s) without bodyweight left unscored",
            competition_id, skipped,
        )
    return scored, skipped


def compute_historical_ris(
    conn: psycopg.Connection,
    participant_id: str,
) -> list[dict[str, Any]]:
    """Score one participant against every formula version on record.

    The participant's current ris_score is left untouched.
    """
    row = conn.execute(
        _PARTICIPANT_TOTALS_SQL
        + """
        WHERE cp.participant_id = %s
        GROUP BY cp.participant_id, cp.bodyweight, a.gender
        """,
        (participant_id,),
    ).fetchone()
    if row is None or row[1] is None:
        return []
    _, bodyweight, gender, total = row
    for formula in list_formulas(conn):
        score = compute_ris(bodyweight, total, gender, formula)
        upsert_ris_score(conn, participant_id, formula.formula_id, score, bodyweight, total)
    return get_participant_ris_history(conn, participant_id)


def recompute_all(conn: psycopg.Connection, formula_id: str | None = None) -> int:
    """Re-score every participant with a bodyweight; return the count.

    Uses the given formula, or the current one.  The stored ris_score of
    each participant is replaced by the recomputed value.
    """
    formula = (
        get_formula_by_id(conn, formula_id) if formula_id else get_current_formula(conn)
    )
    rows = conn.execute(
        _PARTICIPANT_TOTALS_SQL
        + """
        WHERE cp.bodyweight IS NOT NULL
        GROUP BY cp.participant_id, cp.bodyweight, a.gender
        """
    ).fetchall()
    count = 0
    for participant_id, bodyweight, gender, total in rows:
        pid = str(participant_id)
        score = compute_ris(bodyweight, total, gender, formula)
        upsert_ris_score(conn, pid, formula.formula_id, score, bodyweight, total)
        update_participant_ris(conn, pid, score)
        count += 1
    log.info("recomputed RIS for %d participant(s) with formula %s", count, formula.year)
    return count


# ---------------------------------------------------------------------------
# Formula publishing (YAML)
# ---------------------------------------------------------------------------

class FormulaFileError(ValueError):
    """Raised when a formula YAML file fails validation."""


_CONSTANT_KEYS = ("a", "k", "b", "v", "q")


def _parse_constants(data: Any, where: str) -> GenderConstants:
    if not isinstance(data, dict):
        raise FormulaFileError(f"{where}: expected a mapping of {', '.join(_CONSTANT_KEYS)}")
    values = []
    for key in _CONSTANT_KEYS:
        d = to_decimal(data.get(key, data.get(key.upper())))
        if d is None:
            raise FormulaFileError(f"{where}: constant {key!r} missing or not numeric")
        values.append(d)
    return GenderConstants(*values)


def parse_formula_spec(data: Any) -> RisFormula:
    if not isinstance(data, dict):
        raise FormulaFileError("formula entry must be a mapping")
    year = data.get("year")
    if not isinstance(year, int):
        raise FormulaFileError("formula 'year' must be an integer")
    effective_from = parse_date(data.get("effective_from"))
    if effective_from is None:
        raise FormulaFileError(f"formula {year}: 'effective_from' must be a YYYY-MM-DD date")
    effective_until = parse_date(data.get("effective_until"))
    if effective_until is not None and effective_until <= effective_from:
        raise FormulaFileError(f"formula {year}: effective_until must be after effective_from")
    return RisFormula(
        formula_id=None,
        year=year,
        effective_from=effective_from,
        effective_until=effective_until,
        is_current=bool(data.get("is_current", False)),
        men=_parse_constants(data.get("men"), f"formula {year} men"),
        women=_parse_constants(data.get("women"), f"formula {year} women"),
        notes=data.get("notes"),
    )


def load_formula_file(path: Path) -> list[RisFormula]:
    """Load formula versions from YAML ({formulas: [...]}).

    At most one entry may be flagged is_current.
    """
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict) or not isinstance(data.get("formulas"), list):
        raise FormulaFileError(f"{path.name}: top-level 'formulas' list is required")
    formulas = [parse_formula_spec(item) for item in data["formulas"]]
    if sum(1 for f in formulas if f.is_current) > 1:
        raise FormulaFileError(f"{path.name}: more than one formula flagged is_current")
    return formulas


def publish_formula(
    conn: psycopg.Connection,
    formula: RisFormula,
    make_current: bool | None = None,
) -> str:
    """Insert or update a formula version by year; return its formula_id.

    When the version becomes current every other version is demoted first,
    so the single-current invariant holds throughout.  A version is never
    demoted here; publishing its successor as current does that.
    """
    current = formula.is_current if make_current is None else make_current
    if current:
        conn.execute(
            "UPDATE ris_formula_versions SET is_current = FALSE WHERE is_current AND year <> %s",
            (formula.year,),
        )
    m, w = formula.men, formula.women
    params = (
        formula.effective_from, formula.effective_until, current,
        m.a, m.k, m.b, m.v, m.q,
        w.a, w.k, w.b, w.v, w.q,
        formula.notes,
    )
    existing = conn.execute(
        "SELECT formula_id FROM ris_formula_versions WHERE year = %s", (formula.year,)
    ).fetchone()
    if existing is None:
        row = conn.execute(
            """
            INSERT INTO ris_formula_versions (
                effective_from, effective_until, is_current,
                men_a, men_k, men_b, men_v, men_q,
                women_a, women_k, women_b, women_v, women_q,
                notes, year
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING formula_id
            """,
            params + (formula.year,),
        ).fetchone()
        return str(row[0])
    conn.execute(
        """
        UPDATE ris_formula_versions SET
            effective_from = %s, effective_until = %s, is_current = is_current OR %s,
            men_a = %s, men_k = %s, men_b = %s, men_v = %s, men_q = %s,
            women_a = %s, women_k = %s, women_b = %s, women_v = %s, women_q = %s,
            notes = %s
        WHERE formula_id = %s
        """,
        params + (existing[0],),
    )
    return str(existing[0])
