"""osl_etl.liftcontrol_export

Transforms one LiftControl session (LiveTable) into a CanonicalDocument.

Used by both paths:
  export  → the document is written to JSON for manual review
  import  → the document is handed straight to the canonical importer

so movement, category, name and judge-decision normalization are identical
whichever path is taken.

Judge decisions: decisionRep is read as a three-digit code, one digit per
judge (1 = good lift), zero-padded ("11" → "011").  passing_judges is the
number of '1' digits; the attempt is successful when passing_judges is a
strict majority of the competition's judge count (3 when unknown, so at
least 2).  The literal strings "validé" / "valide" are successful with an
unknown judge count.  Anything else is a failed attempt.
"""

from __future__ import annotations

import logging
import unicodedata
from datetime import date

from osl_etl.canonical_models import (
    DEFAULT_STATUS,
    FORMAT_VERSION,
    AthleteData,
    AttemptData,
    CanonicalDocument,
    CategoryData,
    CompetitionData,
    FederationData,
    LiftControlAthleteMetadata,
    LiftControlMetadata,
    LiftData,
    MovementData,
    SourceMetadata,
    utc_now_iso,
)
from osl_etl.competition_registry import CompetitionEntry
from osl_etl.liftcontrol_client import (
    DEFAULT_BASE_URL,
    LIVE_TABLE_PATH,
    LcAthleteResult,
    LcAttempt,
    LcMovement,
    LiveTable,
)
from osl_etl.movement_mapper import (
    CanonicalMovement,
    LiftControlMovementMapper,
    require_movement,
)
from osl_etl.normalize import (
    extract_date_from_name,
    map_gender,
    normalize_athlete_name,
    parse_category_label,
    to_decimal,
    trim,
)
from osl_etl.shared import TransformationError

log = logging.getLogger(__name__)

EXTRACTOR_ID = "liftcontrol-api-v1"
DEFAULT_JUDGE_COUNT = 3
_VALIDATED_STRINGS = frozenset({"validé", "valide"})


# ---------------------------------------------------------------------------
# Judge decisions
# ---------------------------------------------------------------------------

def count_passing_judges(code: int | str | None) -> int | None:
    """Number of good-lift votes in a 0/1 digit code, or None if not a code.

    111 → 3; 110, 101, 11 → 2; 100, 10, 1 → 1; 0 → 0.
    """
    if code is None or isinstance(code, bool):
        return None
    if isinstance(code, int):
        if code < 0:
            return None
        digits = str(code).zfill(3)
    else:
        digits = code.strip()
        if not digits:
            return None
        digits = digits.zfill(3)
    if len(digits) != 3 or any(c not in "01" for c in digits):
        return None
    return digits.count("1")


def parse_judge_decision(
    value: int | str | None,
    judge_count: int | None = None,
) -> tuple[bool, int | None]:
    """Return (is_successful, passing_judges) for a decisionRep value."""
    if isinstance(value, str):
        text = unicodedata.normalize("NFC", value.strip()).lower()
        if text in _VALIDATED_STRINGS:
            return True, None
    passing = count_passing_judges(value)
    if passing is None:
        if value not in (None, ""):
            log.warning("unrecognized judge decision %r; treated as no-rep", value)
        return False, None
    judges = judge_count or DEFAULT_JUDGE_COUNT
    return passing >= judges // 2 + 1, passing


# ---------------------------------------------------------------------------
# Exporter
# ---------------------------------------------------------------------------

class LiftControlExporter:
    def __init__(self, entry: CompetitionEntry) -> None:
        self.entry = entry
        self.metadata = entry.metadata
        self.mapper = LiftControlMovementMapper()

    # -- competition -------------------------------------------------------

    def _competition_dates(self, contest_name: str) -> tuple[date, date]:
        start = self.metadata.start_date
        if start is None:
            start = extract_date_from_name(self.metadata.name) or extract_date_from_name(contest_name)
        if start is None:
            raise TransformationError(
                f"{self.entry.id}: no start_date in registry and no year in the competition name"
            )
        return start, self.metadata.end_date or start

    def _build_competition(self, table: LiveTable) -> CompetitionData:
        meta = self.metadata
        start, end = self._competition_dates(table.contest.name)
        return CompetitionData(
            name=meta.name,
            slug=self.entry.base_slug,
            federation=FederationData(
                name=meta.federation.name,
                abbreviation=meta.federation.abbreviation,
                country=meta.federation.country,
            ),
            start_date=start,
            end_date=end,
            country=meta.country,
            venue=meta.venue,
            city=meta.city,
            number_of_judges=meta.number_of_judges,
            status=DEFAULT_STATUS,
        )

    # -- movements ---------------------------------------------------------

    def _ordered_movements(self, table: LiveTable) -> list[tuple[LcMovement, CanonicalMovement]]:
        ordered = sorted(table.movements.values(), key=lambda m: (m.order, m.id))
        return [(m, require_movement(self.mapper, m.name)) for m in ordered]

    @staticmethod
    def _build_movements(
        ordered: list[tuple[LcMovement, CanonicalMovement]],
    ) -> list[MovementData]:
        out: list[MovementData] = []
        seen: set[CanonicalMovement] = set()
        for _, canonical in ordered:
            if canonical in seen:
                continue
            seen.add(canonical)
            out.append(MovementData(name=canonical.value, order=len(out) + 1, is_required=True))
        return out

    # -- attempts / lifts / athletes --------------------------------------

    def _build_attempt(self, attempt: LcAttempt, where: str) -> AttemptData:
        weight = to_decimal(attempt.charge)
        if weight is None:
            raise TransformationError(f"{where}: unparseable weight {attempt.charge!r}")
        is_successful, passing = parse_judge_decision(
            attempt.decision_rep, self.metadata.number_of_judges
        )
        return AttemptData(
            attempt_number=attempt.no_essai,
            weight=weight,
            is_successful=is_successful,
            passing_judges=passing,
            no_rep_reason=trim(attempt.justification_no_rep),
        )

    def _build_athlete(
        self,
        result: LcAthleteResult,
        ordered: list[tuple[LcMovement, CanonicalMovement]],
        gender: str,
    ) -> AthleteData:
        info = result.info
        first, last = normalize_athlete_name(info.first_name, info.last_name)
        bodyweight = to_decimal(info.pesee)
        if bodyweight is not None and bodyweight <= 0:
            bodyweight = None

        lifts: list[LiftData] = []
        for movement, canonical in ordered:
            mres = result.movements.get(str(movement.id))
            if mres is None:
                continue
            attempts = []
            for num in sorted(mres.attempts, key=lambda k: (len(k), k)):
                attempt = mres.attempts[num]
                if attempt is None:
                    continue
                where = f"athlete {info.id} {movement.name} attempt {num}"
                attempts.append(self._build_attempt(attempt, where))
            if attempts:
                lifts.append(LiftData(movement=canonical.value, attempts=attempts))

        rank = result.rank if isinstance(result.rank, int) and result.rank > 0 else None
        return AthleteData(
            first_name=first,
            last_name=last,
            gender=gender,
            country=self.metadata.default_athlete_country,
            nationality=self.metadata.default_athlete_nationality,
            bodyweight=bodyweight,
            is_disqualified=info.is_out,
            disqualified_reason=trim(info.reason_out),
            rank=rank,
            lifts=lifts,
            liftcontrol_athlete_metadata=LiftControlAthleteMetadata(
                athlete_id=info.id,
                reglage_dips=trim(info.reglage_dips),
                reglage_squat=trim(info.reglage_squat),
            ),
        )

    # -- categories --------------------------------------------------------

    def _build_categories(
        self,
        table: LiveTable,
        ordered: list[tuple[LcMovement, CanonicalMovement]],
    ) -> list[CategoryData]:
        """Groups of the same weight class and gender merge into one category."""
        merged: dict[tuple[str, str], CategoryData] = {}
        for cid in sorted(table.categories, key=lambda k: table.categories[k].id):
            cat = table.categories[cid]
            gender = map_gender(cat.genre)
            if gender is None:
                raise TransformationError(
                    f"category {cat.name!r}: unknown gender {cat.genre!r}"
                )
            parsed = parse_category_label(cat.name)
            key = (parsed.weight_class, gender)
            category = merged.get(key)
            if category is None:
                category = CategoryData(
                    name=parsed.weight_class,
                    gender=gender,
                    weight_class_min=parsed.weight_class_min,
                    weight_class_max=parsed.weight_class_max,
                )
                merged[key] = category
            for result in table.results.get(cid, {}).values():
                category.athletes.append(self._build_athlete(result, ordered, gender))
        return list(merged.values())

    # -- document ----------------------------------------------------------

    def to_canonical(self, table: LiveTable) -> CanonicalDocument:
        ordered = self._ordered_movements(table)
        return CanonicalDocument(
            format_version=FORMAT_VERSION,
            source=SourceMetadata(
                type="liftcontrol",
                url=f"{DEFAULT_BASE_URL}{LIVE_TABLE_PATH}{table.contest.slug}",
                extracted_at=utc_now_iso(),
                extractor=EXTRACTOR_ID,
            ),
            competition=self._build_competition(table),
            movements=self._build_movements(ordered),
            categories=self._build_categories(table, ordered),
            liftcontrol_metadata=LiftControlMetadata(contest_id=table.contest.id),
        )
