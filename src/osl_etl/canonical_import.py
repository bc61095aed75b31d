"""osl_etl.canonical_import

Transactional import of a validated CanonicalDocument (--mode canonical_import
and --mode canonical_batch).

One document is one unit of work: every write below runs inside a single
conn.transaction() block, ending with RIS computation for the competition.
Any exception rolls the whole block back and propagates to the caller.

Every "upsert" is an explicit lookup by natural key followed by an INSERT
or UPDATE; the matching unique constraint in migrations/0001_core.sql is
the source of truth for "same entity".  Re-importing the same document is
idempotent.

Natural keys:
  federation   name
  competition  slug
  comp/move    (competition_id, movement_name)
  category     (name, gender)
  athlete      (first_name, last_name, gender, country)   normalized names
  participant  (competition_id, category_id, athlete_id)
  lift         (participant_id, movement_name)
  attempt      (lift_id, attempt_number)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path

import psycopg

from osl_etl.athletes import resolve_or_insert_athlete
from osl_etl.canonical_models import (
    DEFAULT_STATUS,
    AthleteData,
    CanonicalDocument,
    CategoryData,
    CompetitionData,
    FederationData,
    LiftData,
    load_canonical_file,
)
from osl_etl.canonical_validator import ensure_valid
from osl_etl.movement_mapper import (
    CanonicalMovement,
    CanonicalMovementMapper,
    require_movement,
)
from osl_etl.ris import compute_ris_for_competition
from osl_etl.shared import (
    ConstraintViolation,
    ImportCounters,
    OslEtlError,
    RejectWriter,
)

log = logging.getLogger(__name__)

DEFAULT_CREATED_BY = "Canonical Importer"

_MAPPER = CanonicalMovementMapper()


@dataclass
class ImportSummary:
    competition_id: str
    competition_slug: str
    participants: int = 0
    ris_scored: int = 0
    dry_run: bool = False
    warnings: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Upserts
# ---------------------------------------------------------------------------

def _upsert_federation(
    conn: psycopg.Connection,
    fed: FederationData,
    counters: ImportCounters,
) -> str:
    row = conn.execute(
        "SELECT federation_id FROM federations WHERE name = %s", (fed.name,)
    ).fetchone()
    if row is not None:
        conn.execute(
            """
            UPDATE federations
            SET abbreviation = COALESCE(abbreviation, %s),
                country = COALESCE(country, %s)
            WHERE federation_id = %s
            """,
            (fed.abbreviation, fed.country, row[0]),
        )
        return str(row[0])
    row = conn.execute(
        """
        INSERT INTO federations (name, abbreviation, country)
        VALUES (%s, %s, %s)
        RETURNING federation_id
        """,
        (fed.name, fed.abbreviation, fed.country),
    ).fetchone()
    counters.federations_inserted += 1
    return str(row[0])


def _upsert_competition(
    conn: psycopg.Connection,
    comp: CompetitionData,
    federation_id: str,
    counters: ImportCounters,
) -> str:
    """Dates and slug are fixed at first import; descriptive fields follow
    the latest document."""
    status = comp.status or DEFAULT_STATUS
    row = conn.execute(
        "SELECT competition_id FROM competitions WHERE slug = %s", (comp.slug,)
    ).fetchone()
    if row is not None:
        conn.execute(
            """
            UPDATE competitions
            SET name = %s,
                status = %s,
                venue = %s,
                city = %s,
                country = %s,
                number_of_judge = %s,
                updated_at = now()
            WHERE competition_id = %s
            """,
            (
                comp.name, status, comp.venue, comp.city, comp.country,
                comp.number_of_judges, row[0],
            ),
        )
        counters.competitions_updated += 1
        return str(row[0])
    row = conn.execute(
        """
        INSERT INTO competitions (
            name, slug, status, federation_id, venue, city, country,
            start_date, end_date, number_of_judge
        ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        RETURNING competition_id
        """,
        (
            comp.name, comp.slug, status, federation_id, comp.venue, comp.city,
            comp.country, comp.start_date, comp.end_date, comp.number_of_judges,
        ),
    ).fetchone()
    counters.competitions_inserted += 1
    return str(row[0])


def _upsert_competition_movement(
    conn: psycopg.Connection,
    competition_id: str,
    movement: CanonicalMovement,
    is_required: bool,
    display_order: int,
) -> None:
    row = conn.execute(
        """
        SELECT 1 FROM competition_movements
        WHERE competition_id = %s AND movement_name = %s
        """,
        (competition_id, movement.value),
    ).fetchone()
    if row is None:
        conn.execute(
            """
            INSERT INTO competition_movements
                (competition_id, movement_name, is_required, display_order)
            VALUES (%s, %s, %s, %s)
            """,
            (competition_id, movement.value, is_required, display_order),
        )
    else:
        conn.execute(
            """
            UPDATE competition_movements
            SET is_required = %s, display_order = %s
            WHERE competition_id = %s AND movement_name = %s
            """,
            (is_required, display_order, competition_id, movement.value),
        )


def _upsert_category(
    conn: psycopg.Connection,
    category: CategoryData,
    counters: ImportCounters,
) -> str:
    row = conn.execute(
        "SELECT category_id FROM categories WHERE name = %s AND gender = %s",
        (category.name, category.gender),
    ).fetchone()
    if row is not None:
        conn.execute(
            """
            UPDATE categories
            SET weight_class_min = %s, weight_class_max = %s
            WHERE category_id = %s
            """,
            (category.weight_class_min, category.weight_class_max, row[0]),
        )
        return str(row[0])
    row = conn.execute(
        """
        INSERT INTO categories (name, gender, weight_class_min, weight_class_max)
        VALUES (%s, %s, %s, %s)
        RETURNING category_id
        """,
        (category.name, category.gender, category.weight_class_min, category.weight_class_max),
    ).fetchone()
    counters.categories_inserted += 1
    return str(row[0])


def _upsert_participant(
    conn: psycopg.Connection,
    competition_id: str,
    category_id: str,
    athlete_id: str,
    athlete: AthleteData,
) -> str:
    values = (
        athlete.bodyweight,
        athlete.rank if athlete.rank and athlete.rank > 0 else None,
        bool(athlete.is_disqualified),
        athlete.disqualified_reason,
    )
    row = conn.execute(
        """
        SELECT participant_id FROM competition_participants
        WHERE competition_id = %s AND category_id = %s AND athlete_id = %s
        """,
        (competition_id, category_id, athlete_id),
    ).fetchone()
    if row is not None:
        conn.execute(
            """
            UPDATE competition_participants
            SET bodyweight = %s, rank = %s, is_disqualified = %s, disqualified_reason = %s
            WHERE participant_id = %s
            """,
            values + (row[0],),
        )
        return str(row[0])
    row = conn.execute(
        """
        INSERT INTO competition_participants (
            competition_id, category_id, athlete_id,
            bodyweight, rank, is_disqualified, disqualified_reason
        ) VALUES (%s, %s, %s, %s, %s, %s, %s)
        RETURNING participant_id
        """,
        (competition_id, category_id, athlete_id) + values,
    ).fetchone()
    return str(row[0])


def _equipment_setting(athlete: AthleteData, movement: CanonicalMovement) -> str | None:
    meta = athlete.liftcontrol_athlete_metadata
    if meta is None:
        return None
    if movement is CanonicalMovement.DIPS:
        return meta.reglage_dips
    if movement is CanonicalMovement.SQUAT:
        return meta.reglage_squat
    return None


def _upsert_lift(
    conn: psycopg.Connection,
    participant_id: str,
    movement: CanonicalMovement,
    max_weight: Decimal | None,
    equipment_setting: str | None,
) -> str:
    row = conn.execute(
        "SELECT lift_id FROM lifts WHERE participant_id = %s AND movement_name = %s",
        (participant_id, movement.value),
    ).fetchone()
    if row is not None:
        conn.execute(
            """
            UPDATE lifts
            SET max_weight = %s, equipment_setting = %s, updated_at = now()
            WHERE lift_id = %s
            """,
            (max_weight, equipment_setting, row[0]),
        )
        return str(row[0])
    row = conn.execute(
        """
        INSERT INTO lifts (participant_id, movement_name, max_weight, equipment_setting, updated_at)
        VALUES (%s, %s, %s, %s, now())
        RETURNING lift_id
        """,
        (participant_id, movement.value, max_weight, equipment_setting),
    ).fetchone()
    return str(row[0])


def _upsert_attempts(
    conn: psycopg.Connection,
    lift_id: str,
    lift: LiftData,
    created_by: str,
) -> int:
    n = 0
    for attempt in lift.attempts:
        values = (
            attempt.weight,
            attempt.is_successful,
            attempt.passing_judges,
            attempt.no_rep_reason,
        )
        row = conn.execute(
            "SELECT attempt_id FROM attempts WHERE lift_id = %s AND attempt_number = %s",
            (lift_id, attempt.attempt_number),
        ).fetchone()
        if row is None:
            conn.execute(
                """
                INSERT INTO attempts (
                    lift_id, attempt_number, weight, is_successful,
                    passing_judges, no_rep_reason, created_by
                ) VALUES (%s, %s, %s, %s, %s, %s, %s)
                """,
                (lift_id, attempt.attempt_number) + values + (created_by,),
            )
        else:
            conn.execute(
                """
                UPDATE attempts
                SET weight = %s, is_successful = %s, passing_judges = %s, no_rep_reason = %s
                WHERE attempt_id = %s
                """,
                values + (row[0],),
            )
        n += 1
    return n


# ---------------------------------------------------------------------------
# Document import
# ---------------------------------------------------------------------------

def _write_document(
    conn: psycopg.Connection,
    doc: CanonicalDocument,
    counters: ImportCounters,
    created_by: str,
) -> ImportSummary:
    comp = doc.competition
    federation_id = _upsert_federation(conn, comp.federation, counters)
    competition_id = _upsert_competition(conn, comp, federation_id, counters)
    summary = ImportSummary(competition_id=competition_id, competition_slug=comp.slug)

    for movement in doc.movements:
        canonical = require_movement(_MAPPER, movement.name)
        is_required = True if movement.is_required is None else movement.is_required
        _upsert_competition_movement(
            conn, competition_id, canonical, is_required, movement.order
        )

    for category in doc.categories:
        category_id = _upsert_category(conn, category, counters)
        for athlete in category.athletes:
            athlete_id, inserted = resolve_or_insert_athlete(
                conn,
                athlete.first_name,
                athlete.last_name,
                athlete.gender or category.gender,
                athlete.country,
                athlete.nationality,
            )
            if inserted:
                counters.athletes_inserted += 1
            else:
                counters.athletes_matched_existing += 1

            participant_id = _upsert_participant(
                conn, competition_id, category_id, athlete_id, athlete
            )
            counters.participants_upserted += 1
            summary.participants += 1

            for lift in athlete.lifts:
                movement = require_movement(_MAPPER, lift.movement)
                lift_id = _upsert_lift(
                    conn,
                    participant_id,
                    movement,
                    lift.best_successful_weight,
                    _equipment_setting(athlete, movement),
                )
                counters.lifts_upserted += 1
                counters.attempts_upserted += _upsert_attempts(conn, lift_id, lift, created_by)

    scored, skipped = compute_ris_for_competition(conn, competition_id, comp.start_date)
    counters.ris_scores_computed += scored
    counters.ris_participants_skipped_no_bodyweight += skipped
    summary.ris_scored = scored
    return summary


def import_canonical_document(
    conn: psycopg.Connection,
    doc: CanonicalDocument,
    counters: ImportCounters | None = None,
    *,
    dry_run: bool = False,
    created_by: str = DEFAULT_CREATED_BY,
) -> ImportSummary:
    """Validate and import one document in a single transaction.

    Raises ValidationFailed before touching the database when the document
    has errors.  Storage integrity errors surface as ConstraintViolation.
    With dry_run the whole import runs and is then rolled back.
    """
    counters = counters if counters is not None else ImportCounters()
    report = ensure_valid(doc)

    summary: ImportSummary | None = None
    try:
        with conn.transaction():
            summary = _write_document(conn, doc, counters, created_by)
            if dry_run:
                raise psycopg.Rollback()
    except psycopg.IntegrityError as exc:
        raise ConstraintViolation(str(exc).strip()) from exc

    summary.dry_run = dry_run
    summary.warnings = list(report.warnings)
    counters.warnings.extend(report.warnings)
    log.info(
        "imported competition %s (%d participants, %d RIS scores)%s",
        summary.competition_slug, summary.participants, summary.ris_scored,
        " [dry-run, rolled back]" if dry_run else "",
    )
    return summary


# ---------------------------------------------------------------------------
# File-level entry points
# ---------------------------------------------------------------------------

@dataclass
class FileResult:
    path: str
    ok: bool
    competition_slug: str | None = None
    participants: int = 0
    error: str | None = None


def import_canonical_file(
    conn: psycopg.Connection,
    path: Path,
    counters: ImportCounters,
    *,
    dry_run: bool = False,
) -> ImportSummary:
    counters.documents_read += 1
    doc = load_canonical_file(path)
    summary = import_canonical_document(conn, doc, counters, dry_run=dry_run)
    counters.documents_imported += 1
    return summary


def run_canonical_batch(
    conn: psycopg.Connection,
    input_dir: Path,
    counters: ImportCounters,
    rejects: RejectWriter,
    *,
    dry_run: bool = False,
) -> list[FileResult]:
    """Import every *.json under input_dir, one transaction per file.

    A failing file is recorded in rejects and the batch moves on.
    """
    results: list[FileResult] = []
    for path in sorted(input_dir.glob("*.json")):
        try:
            summary = import_canonical_file(conn, path, counters, dry_run=dry_run)
        except (OslEtlError, ValueError, OSError, psycopg.Error) as exc:
            counters.documents_rejected += 1
            details = getattr(exc, "errors", None) or [str(exc)]
            reason = f"{type(exc).__name__}: " + " | ".join(details)
            log.warning("%s rejected: %s", path.name, reason)
            rejects.write({"file": path.name}, reason)
            results.append(FileResult(path=str(path), ok=False, error=reason))
            continue
        results.append(FileResult(
            path=str(path),
            ok=True,
            competition_slug=summary.competition_slug,
            participants=summary.participants,
        ))
    return results
