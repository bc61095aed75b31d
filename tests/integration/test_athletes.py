"""Integration tests for athlete identity, slugs and renames."""

from __future__ import annotations

import uuid

import pytest

from osl_etl.athletes import (
    find_athlete_by_slug,
    generate_unique_slug,
    get_slug_history,
    rename_athlete,
    resolve_or_insert_athlete,
)
from osl_etl.shared import ConstraintViolation


def _slug(conn, athlete_id: str) -> str:
    return conn.execute(
        "SELECT slug FROM athletes WHERE athlete_id = %s", (athlete_id,)
    ).fetchone()[0]


class TestResolveOrInsert:
    def test_insert_then_match(self, db_conn):
        conn, _ = db_conn
        a1, inserted1 = resolve_or_insert_athlete(conn, "Jean", "Dupont", "M", "France")
        a2, inserted2 = resolve_or_insert_athlete(conn, "Jean", "Dupont", "M", "France")
        assert inserted1 is True
        assert inserted2 is False
        assert a1 == a2

    def test_name_variants_match(self, db_conn):
        conn, _ = db_conn
        a1, _ = resolve_or_insert_athlete(conn, "jean", "DUPONT", "M", "France")
        a2, inserted = resolve_or_insert_athlete(conn, "  Jean  ", "dupont ", "M", "France")
        assert a1 == a2
        assert inserted is False

    def test_country_is_part_of_identity(self, db_conn):
        conn, _ = db_conn
        a1, _ = resolve_or_insert_athlete(conn, "Jean", "Dupont", "M", "France")
        a2, inserted = resolve_or_insert_athlete(conn, "Jean", "Dupont", "M", "Belgium")
        assert inserted is True
        assert a1 != a2

    def test_swapped_names_are_a_different_athlete(self, db_conn):
        conn, _ = db_conn
        a1, _ = resolve_or_insert_athlete(conn, "Jean", "Dupont", "M", "France")
        a2, _ = resolve_or_insert_athlete(conn, "Dupont", "Jean", "M", "France")
        assert a1 != a2

    def test_nationality_filled_only_when_missing(self, db_conn):
        conn, _ = db_conn
        aid, _ = resolve_or_insert_athlete(conn, "Jean", "Dupont", "M", "France")
        resolve_or_insert_athlete(conn, "Jean", "Dupont", "M", "France", "French")
        resolve_or_insert_athlete(conn, "Jean", "Dupont", "M", "France", "Belgian")
        row = conn.execute(
            "SELECT nationality FROM athletes WHERE athlete_id = %s", (aid,)
        ).fetchone()
        assert row[0] == "French"


class TestSlugs:
    def test_collisions_get_numeric_suffix(self, db_conn):
        conn, _ = db_conn
        a1, _ = resolve_or_insert_athlete(conn, "Jean", "Dupont", "M", "France")
        a2, _ = resolve_or_insert_athlete(conn, "Jean", "Dupont", "F", "France")
        a3, _ = resolve_or_insert_athlete(conn, "Jean", "Dupont", "M", "Canada")
        assert [_slug(conn, a) for a in (a1, a2, a3)] == [
            "jean-dupont", "jean-dupont-2", "jean-dupont-3",
        ]

    def test_accented_name_slug(self, db_conn):
        conn, _ = db_conn
        aid, _ = resolve_or_insert_athlete(conn, "Élodie", "Dupré", "F", "France")
        assert _slug(conn, aid) == "elodie-dupre"

    def test_unsluggable_name_falls_back(self, db_conn):
        conn, _ = db_conn
        aid, _ = resolve_or_insert_athlete(conn, "李", "王", "M", "China")
        assert _slug(conn, aid) == "athlete"

    def test_generate_ignores_own_slug_when_excluded(self, db_conn):
        conn, _ = db_conn
        aid, _ = resolve_or_insert_athlete(conn, "Jean", "Dupont", "M", "France")
        assert generate_unique_slug(conn, "Jean", "Dupont") == "jean-dupont-2"
        assert generate_unique_slug(conn, "Jean", "Dupont", exclude_athlete_id=aid) == "jean-dupont"


class TestRename:
    def test_rename_moves_old_slug_to_history(self, db_conn):
        conn, _ = db_conn
        aid, _ = resolve_or_insert_athlete(conn, "Jean", "Dupont", "M", "France")
        new_slug = rename_athlete(conn, aid, "Jean", "Martin")
        assert new_slug == "jean-martin"
        assert _slug(conn, aid) == "jean-martin"
        assert get_slug_history(conn, aid) == ["jean-dupont"]

    def test_old_slug_redirects(self, db_conn):
        conn, _ = db_conn
        aid, _ = resolve_or_insert_athlete(conn, "Jean", "Dupont", "M", "France")
        rename_athlete(conn, aid, "Jean", "Martin")

        current = find_athlete_by_slug(conn, "jean-martin")
        assert current["athlete_id"] == aid
        assert current["redirected"] is False

        old = find_athlete_by_slug(conn, "jean-dupont")
        assert old["athlete_id"] == aid
        assert old["slug"] == "jean-martin"
        assert old["redirected"] is True

    def test_unknown_slug(self, db_conn):
        conn, _ = db_conn
        assert find_athlete_by_slug(conn, "nobody") is None

    def test_historical_slug_not_reused(self, db_conn):
        conn, _ = db_conn
        aid, _ = resolve_or_insert_athlete(conn, "Jean", "Dupont", "M", "France")
        rename_athlete(conn, aid, "Jean", "Martin")
        other, _ = resolve_or_insert_athlete(conn, "Jean", "Dupont", "M", "France")
        assert other != aid
        assert _slug(conn, other) == "jean-dupont-2"

    def test_rename_back_reclaims_slug(self, db_conn):
        conn, _ = db_conn
        aid, _ = resolve_or_insert_athlete(conn, "Jean", "Dupont", "M", "France")
        rename_athlete(conn, aid, "Jean", "Martin")
        assert rename_athlete(conn, aid, "Jean", "Dupont") == "jean-dupont"
        assert get_slug_history(conn, aid) == ["jean-martin"]

    def test_case_only_change_is_noop(self, db_conn):
        conn, _ = db_conn
        aid, _ = resolve_or_insert_athlete(conn, "Jean", "Dupont", "M", "France")
        assert rename_athlete(conn, aid, "JEAN", "dupont") == "jean-dupont"
        assert get_slug_history(conn, aid) == []

    def test_accent_change_keeps_slug(self, db_conn):
        conn, _ = db_conn
        aid, _ = resolve_or_insert_athlete(conn, "Elodie", "Dupre", "F", "France")
        assert rename_athlete(conn, aid, "Élodie", "Dupré") == "elodie-dupre"
        row = conn.execute(
            "SELECT first_name, last_name FROM athletes WHERE athlete_id = %s", (aid,)
        ).fetchone()
        assert row == ("Élodie", "Dupré")
        assert get_slug_history(conn, aid) == []

    def test_rename_onto_existing_identity(self, db_conn):
        conn, _ = db_conn
        resolve_or_insert_athlete(conn, "Jean", "Dupont", "M", "France")
        other, _ = resolve_or_insert_athlete(conn, "Marc", "Dupont", "M", "France")
        with pytest.raises(ConstraintViolation):
            rename_athlete(conn, other, "Jean", "Dupont")
        assert _slug(conn, other) == "marc-dupont"

    def test_missing_athlete(self, db_conn):
        conn, _ = db_conn
        with pytest.raises(LookupError):
            rename_athlete(conn, str(uuid.uuid4()), "Jean", "Dupont")
