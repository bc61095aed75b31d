"""Integration tests for RIS formula storage, selection and recomputation."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import psycopg
import pytest

from osl_etl.athletes import resolve_or_insert_athlete
from osl_etl.ris import (
    GenderConstants,
    RisFormula,
    compute_historical_ris,
    compute_ris,
    compute_ris_for_competition,
    get_current_formula,
    get_formula_by_year,
    get_formula_for_date,
    get_participant_ris_history,
    list_formulas,
    publish_formula,
    recompute_all,
)
from osl_etl.shared import NoFormulaAvailable


def _formula_2026(is_current: bool = True) -> RisFormula:
    return RisFormula(
        formula_id=None,
        year=2026,
        effective_from=date(2026, 1, 1),
        effective_until=None,
        is_current=is_current,
        men=GenderConstants(*(Decimal(x) for x in ("340", "550", "0.11", "75", "0.53"))),
        women=GenderConstants(*(Decimal(x) for x in ("165", "271", "0.13", "58", "0.37"))),
        notes="test edition",
    )


def _seed_participant(conn, bodyweight: str | None, lifts: dict[str, str], last_name: str = "Dupont") -> tuple[str, str]:
    """Insert one competition with one participant; return (competition_id, participant_id)."""
    fed_id = conn.execute(
        """
        INSERT INTO federations (name) VALUES ('Test Fed')
        ON CONFLICT (name) DO UPDATE SET name = EXCLUDED.name
        RETURNING federation_id
        """
    ).fetchone()[0]
    comp_id = conn.execute(
        """
        INSERT INTO competitions (name, slug, federation_id, country, start_date, end_date)
        VALUES (%s, %s, %s, 'France', '2025-06-01', '2025-06-01')
        RETURNING competition_id
        """,
        (f"Open {last_name}", f"open-{last_name.lower()}", fed_id),
    ).fetchone()[0]
    cat_id = conn.execute(
        """
        INSERT INTO categories (name, gender) VALUES ('-80', 'M')
        ON CONFLICT (name, gender) DO UPDATE SET name = EXCLUDED.name
        RETURNING category_id
        """
    ).fetchone()[0]
    athlete_id, _ = resolve_or_insert_athlete(conn, "Jean", last_name, "M", "France")
    pid = conn.execute(
        """
        INSERT INTO competition_participants (competition_id, category_id, athlete_id, bodyweight)
        VALUES (%s, %s, %s, %s)
        RETURNING participant_id
        """,
        (comp_id, cat_id, athlete_id, bodyweight),
    ).fetchone()[0]
    for movement, weight in lifts.items():
        conn.execute(
            "INSERT INTO lifts (participant_id, movement_name, max_weight) VALUES (%s, %s, %s)",
            (pid, movement, weight),
        )
    return str(comp_id), str(pid)


def _ris(conn, participant_id: str):
    return conn.execute(
        "SELECT ris_score FROM competition_participants WHERE participant_id = %s",
        (participant_id,),
    ).fetchone()[0]


# ---------------------------------------------------------------------------
# Formula lookups
# ---------------------------------------------------------------------------

class TestFormulaLookup:
    def test_seeded_2025_is_current(self, db_conn):
        conn, _ = db_conn
        f = get_current_formula(conn)
        assert f.year == 2025
        assert f.men.v == Decimal("74.777")
        assert f.women.q == Decimal("0.37089")

    def test_formula_for_date(self, db_conn):
        conn, _ = db_conn
        assert get_formula_for_date(conn, date(2025, 6, 1)).year == 2025

    def test_date_before_any_formula(self, db_conn):
        conn, _ = db_conn
        with pytest.raises(NoFormulaAvailable, match="2024-12-31"):
            get_formula_for_date(conn, date(2024, 12, 31))

    def test_unknown_year(self, db_conn):
        conn, _ = db_conn
        with pytest.raises(NoFormulaAvailable):
            get_formula_by_year(conn, 1999)

    def test_newer_edition_wins_for_later_dates(self, db_conn):
        conn, _ = db_conn
        publish_formula(conn, _formula_2026())
        assert get_formula_for_date(conn, date(2025, 12, 31)).year == 2025
        assert get_formula_for_date(conn, date(2026, 3, 1)).year == 2026


# ---------------------------------------------------------------------------
# Publishing
# ---------------------------------------------------------------------------

class TestPublishFormula:
    def test_publish_current_demotes_previous(self, db_conn):
        conn, _ = db_conn
        fid = publish_formula(conn, _formula_2026())
        current = get_current_formula(conn)
        assert current.formula_id == fid
        assert current.year == 2026
        assert get_formula_by_year(conn, 2025).is_current is False

    def test_publish_not_current_keeps_existing(self, db_conn):
        conn, _ = db_conn
        publish_formula(conn, _formula_2026(is_current=False))
        assert get_current_formula(conn).year == 2025
        assert [f.year for f in list_formulas(conn)] == [2026, 2025]

    def test_republish_updates_in_place(self, db_conn):
        conn, _ = db_conn
        first = publish_formula(conn, _formula_2026())
        second = publish_formula(conn, _formula_2026(is_current=False))
        assert first == second
        # publishing a non-current copy does not demote the current edition
        assert get_current_formula(conn).year == 2026
        assert len(list_formulas(conn)) == 2

    def test_single_current_enforced_by_schema(self, db_conn):
        conn, _ = db_conn
        publish_formula(conn, _formula_2026(is_current=False))
        with pytest.raises(psycopg.errors.UniqueViolation):
            with conn.transaction():
                conn.execute("UPDATE ris_formula_versions SET is_current = TRUE")


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------

class TestCompetitionScoring:
    def test_scores_and_history(self, db_conn):
        conn, _ = db_conn
        comp_id, pid = _seed_participant(conn, "74.777", {"Pull-up": "100", "Squat": "200"})
        scored, skipped = compute_ris_for_competition(conn, comp_id, date(2025, 6, 1))
        assert (scored, skipped) == (1, 0)
        assert _ris(conn, pid) == Decimal("63.05")
        history = get_participant_ris_history(conn, pid)
        assert len(history) == 1
        assert history[0]["year"] == 2025
        assert history[0]["total_weight"] == Decimal("300")

    def test_no_bodyweight_is_null(self, db_conn):
        conn, _ = db_conn
        comp_id, pid = _seed_participant(conn, None, {"Squat": "200"})
        assert compute_ris_for_competition(conn, comp_id, date(2025, 6, 1)) == (0, 1)
        assert _ris(conn, pid) is None
        assert get_participant_ris_history(conn, pid) == []

    def test_failed_lifts_count_as_zero(self, db_conn):
        conn, _ = db_conn
        comp_id, pid = _seed_participant(conn, "74.777", {"Pull-up": None, "Squat": "300"})
        compute_ris_for_competition(conn, comp_id, date(2025, 6, 1))
        assert _ris(conn, pid) == Decimal("63.05")

    def test_rescoring_does_not_duplicate_history(self, db_conn):
        conn, _ = db_conn
        comp_id, pid = _seed_participant(conn, "74.777", {"Squat": "300"})
        compute_ris_for_competition(conn, comp_id, date(2025, 6, 1))
        compute_ris_for_competition(conn, comp_id, date(2025, 6, 1))
        assert len(get_participant_ris_history(conn, pid)) == 1


class TestRecompute:
    def test_recompute_with_current_formula(self, db_conn):
        conn, _ = db_conn
        comp_id, pid = _seed_participant(conn, "74.777", {"Squat": "300"})
        compute_ris_for_competition(conn, comp_id, date(2025, 6, 1))
        publish_formula(conn, _formula_2026())

        assert recompute_all(conn) == 1
        expected = compute_ris(Decimal("74.777"), Decimal("300"), "M", get_current_formula(conn))
        assert _ris(conn, pid) == expected
        assert _ris(conn, pid) != Decimal("63.05")
        assert [h["year"] for h in get_participant_ris_history(conn, pid)] == [2026, 2025]

    def test_recompute_with_explicit_formula(self, db_conn):
        conn, _ = db_conn
        _, pid = _seed_participant(conn, "74.777", {"Squat": "300"})
        publish_formula(conn, _formula_2026())
        old = get_formula_by_year(conn, 2025)
        recompute_all(conn, old.formula_id)
        assert _ris(conn, pid) == Decimal("63.05")

    def test_recompute_skips_missing_bodyweight(self, db_conn):
        conn, _ = db_conn
        _seed_participant(conn, "74.777", {"Squat": "300"}, last_name="Dupont")
        _seed_participant(conn, None, {"Squat": "250"}, last_name="Leroy")
        assert recompute_all(conn) == 1

    def test_historical_ris_leaves_current_score(self, db_conn):
        conn, _ = db_conn
        comp_id, pid = _seed_participant(conn, "74.777", {"Squat": "300"})
        compute_ris_for_competition(conn, comp_id, date(2025, 6, 1))
        publish_formula(conn, _formula_2026())

        history = compute_historical_ris(conn, pid)
        assert {h["year"] for h in history} == {2025, 2026}
        assert _ris(conn, pid) == Decimal("63.05")
