"""osl_etl.athletes

Athlete identity: lookup by normalized natural key, slug generation and
slug history.

Identity key is (first_name, last_name, gender, country) on the normalized
title-cased names.  This is global, not scoped per federation, so two
distinct people sharing a name within one country and gender resolve to the
same row.

Slugs are globally unique and stable.  A rename assigns a fresh slug and
appends the old one to slug_history so old URLs can still be resolved.
"""

from __future__ import annotations

import psycopg

from osl_etl.normalize import normalize_athlete_name, slug_name
from osl_etl.shared import ConstraintViolation

FALLBACK_SLUG = "athlete"


# ---------------------------------------------------------------------------
# Slugs
# ---------------------------------------------------------------------------

def base_slug(first: str, last: str) -> str:
    return slug_name(f"{first} {last}") or FALLBACK_SLUG


def _slug_taken(
    conn: psycopg.Connection,
    slug: str,
    exclude_athlete_id: str | None = None,
) -> bool:
    row = conn.execute(
        """
        SELECT 1 FROM athletes
        WHERE (slug = %s OR slug_history @> to_jsonb(%s::text))
          AND (%s::uuid IS NULL OR athlete_id <> %s::uuid)
        LIMIT 1
        """,
        (slug, slug, exclude_athlete_id, exclude_athlete_id),
    ).fetchone()
    return row is not None


def generate_unique_slug(
    conn: psycopg.Connection,
    first: str,
    last: str,
    exclude_athlete_id: str | None = None,
) -> str:
    """Return 'first-last', or 'first-last-N' (N = 2, 3, ...) on collision.

    Historical slugs of other athletes count as collisions so a redirect is
    never shadowed.
    """
    base = base_slug(first, last)
    candidate = base
    n = 2
    while _slug_taken(conn, candidate, exclude_athlete_id):
        candidate = f"{base}-{n}"
        n += 1
    return candidate


# ---------------------------------------------------------------------------
# Lookup / insert
# ---------------------------------------------------------------------------

def find_athlete(
    conn: psycopg.Connection,
    first: str,
    last: str,
    gender: str,
    country: str,
) -> str | None:
    row = conn.execute(
        """
        SELECT athlete_id FROM athletes
        WHERE first_name = %s AND last_name = %s AND gender = %s AND country = %s
        """,
        (first, last, gender, country),
    ).fetchone()
    return str(row[0]) if row else None


def resolve_or_insert_athlete(
    conn: psycopg.Connection,
    first: str,
    last: str,
    gender: str,
    country: str,
    nationality: str | None = None,
) -> tuple[str, bool]:
    """Return (athlete_id, inserted).

    Names are normalized here so every caller shares one identity rule.
    An existing row only gains a nationality it did not have before.
    """
    first, last = normalize_athlete_name(first, last)
    athlete_id = find_athlete(conn, first, last, gender, country)
    if athlete_id is not None:
        if nationality:
            conn.execute(
                """
                UPDATE athletes SET nationality = %s, updated_at = now()
                WHERE athlete_id = %s AND nationality IS NULL
                """,
                (nationality, athlete_id),
            )
        return athlete_id, False

    slug = generate_unique_slug(conn, first, last)
    row = conn.execute(
        """
        INSERT INTO athletes (first_name, last_name, gender, country, nationality, slug)
        VALUES (%s, %s, %s, %s, %s, %s)
        RETURNING athlete_id
        """,
        (first, last, gender, country, nationality, slug),
    ).fetchone()
    return str(row[0]), True


def find_athlete_by_slug(conn: psycopg.Connection, slug: str) -> dict | None:
    """Resolve a slug to an athlete, falling back to slug_history.

    The returned dict carries 'redirected': True when the match came from
    history, so callers can redirect to the current slug.
    """
    cols = "athlete_id, first_name, last_name, gender, country, nationality, slug"
    row = conn.execute(
        f"SELECT {cols} FROM athletes WHERE slug = %s", (slug,)
    ).fetchone()
    redirected = False
    if row is None:
        row = conn.execute(
            f"SELECT {cols} FROM athletes WHERE slug_history @> to_jsonb(%s::text) LIMIT 1",
            (slug,),
        ).fetchone()
        redirected = row is not None
    if row is None:
        return None
    return {
        "athlete_id": str(row[0]),
        "first_name": row[1],
        "last_name": row[2],
        "gender": row[3],
        "country": row[4],
        "nationality": row[5],
        "slug": row[6],
        "redirected": redirected,
    }


def get_slug_history(conn: psycopg.Connection, athlete_id: str) -> list[str]:
    row = conn.execute(
        "SELECT slug_history FROM athletes WHERE athlete_id = %s", (athlete_id,)
    ).fetchone()
    return list(row[0]) if row else []


# ---------------------------------------------------------------------------
# Rename
# ---------------------------------------------------------------------------

def rename_athlete(
    conn: psycopg.Connection,
    athlete_id: str,
    first: str,
    last: str,
) -> str:
    """Rename an athlete and return the (possibly new) current slug.

    The previous slug is appended to slug_history.  Renaming back to a name
    whose slug is already in this athlete's own history reclaims that slug.
    Raises ConstraintViolation if the new name clashes with another athlete's
    identity key, LookupError if the athlete does not exist.
    """
    first, last = normalize_athlete_name(first, last)
    row = conn.execute(
        "SELECT first_name, last_name, slug FROM athletes WHERE athlete_id = %s",
        (athlete_id,),
    ).fetchone()
    if row is None:
        raise LookupError(f"athlete {athlete_id} not found")
    old_first, old_last, old_slug = row
    if (old_first, old_last) == (first, last):
        return old_slug

    new_slug = old_slug
    if base_slug(first, last) != base_slug(old_first, old_last):
        new_slug = generate_unique_slug(conn, first, last, exclude_athlete_id=athlete_id)

    try:
        with conn.transaction():
            if new_slug == old_slug:
                conn.execute(
                    """
                    UPDATE athletes
                    SET first_name = %s, last_name = %s, updated_at = now()
                    WHERE athlete_id = %s
                    """,
                    (first, last, athlete_id),
                )
            else:
                conn.execute(
                    """
                    UPDATE athletes
                    SET first_name = %s,
                        last_name = %s,
                        slug = %s,
                        slug_history = (slug_history - %s::text) || to_jsonb(%s::text),
                        updated_at = now()
                    WHERE athlete_id = %s
                    """,
                    (first, last, new_slug, new_slug, old_slug, athlete_id),
                )
    except psycopg.errors.UniqueViolation as exc:
        raise ConstraintViolation(
            f"cannot rename athlete {athlete_id} to {first} {last}: {exc}"
        ) from exc
    return new_slug
