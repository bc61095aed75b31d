"""osl_etl.canonical_models

The federation-agnostic canonical results document (format_version 1.0.0).

Every source (LiftControl today; PDF/HTML extraction tooling produces the
same JSON) is normalized into a CanonicalDocument before import.

Loading is deliberately lenient: missing or mistyped fields become None /
empty values instead of raising, so the validator can report every problem
in a document in one pass.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any

from osl_etl.normalize import parse_date, to_decimal, trim

FORMAT_VERSION = "1.0.0"
SOURCE_TYPES = frozenset({"liftcontrol", "pdf", "html", "csv", "manual"})
COMPETITION_STATUSES = frozenset({"draft", "upcoming", "live", "completed", "cancelled"})
DEFAULT_STATUS = "completed"


# ---------------------------------------------------------------------------
# Loose coercion helpers
# ---------------------------------------------------------------------------

def _str(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _opt_str(value: Any) -> str | None:
    if value is None:
        return None
    return trim(str(value))


def _opt_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _opt_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    return None


def _list(value: Any) -> list:
    return value if isinstance(value, list) else []


def _dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _dec_out(value: Decimal | None) -> str | None:
    return None if value is None else format(value, "f")


def _compact(d: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in d.items() if v is not None}


# ---------------------------------------------------------------------------
# Document parts
# ---------------------------------------------------------------------------

@dataclass
class SourceMetadata:
    type: str
    extractor: str
    extracted_at: str
    url: str | None = None
    original_filename: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> SourceMetadata:
        d = _dict(data)
        return cls(
            type=_str(d.get("type")).lower(),
            extractor=_str(d.get("extractor")),
            extracted_at=_str(d.get("extracted_at")),
            url=_opt_str(d.get("url")),
            original_filename=_opt_str(d.get("original_filename")),
        )

    def to_dict(self) -> dict[str, Any]:
        return _compact({
            "type": self.type,
            "url": self.url,
            "extracted_at": self.extracted_at,
            "extractor": self.extractor,
            "original_filename": self.original_filename,
        })


@dataclass
class FederationData:
    name: str
    slug: str | None = None
    abbreviation: str | None = None
    country: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> FederationData:
        d = _dict(data)
        return cls(
            name=_str(d.get("name")),
            slug=_opt_str(d.get("slug")),
            abbreviation=_opt_str(d.get("abbreviation")),
            country=_opt_str(d.get("country")),
        )

    def to_dict(self) -> dict[str, Any]:
        return _compact({
            "name": self.name,
            "slug": self.slug,
            "abbreviation": self.abbreviation,
            "country": self.country,
        })


@dataclass
class CompetitionData:
    name: str
    slug: str
    federation: FederationData
    start_date: date | None
    end_date: date | None
    country: str
    venue: str | None = None
    city: str | None = None
    number_of_judges: int | None = None
    status: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> CompetitionData:
        d = _dict(data)
        return cls(
            name=_str(d.get("name")),
            slug=_str(d.get("slug")),
            federation=FederationData.from_dict(d.get("federation")),
            start_date=parse_date(d.get("start_date")),
            end_date=parse_date(d.get("end_date")),
            country=_str(d.get("country")),
            venue=_opt_str(d.get("venue")),
            city=_opt_str(d.get("city")),
            number_of_judges=_opt_int(d.get("number_of_judges")),
            status=_opt_str(d.get("status")),
        )

    def to_dict(self) -> dict[str, Any]:
        return _compact({
            "name": self.name,
            "slug": self.slug,
            "federation": self.federation.to_dict(),
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "venue": self.venue,
            "city": self.city,
            "country": self.country,
            "number_of_judges": self.number_of_judges,
            "status": self.status,
        })


@dataclass
class MovementData:
    name: str
    order: int | None
    is_required: bool | None = None

    @classmethod
    def from_dict(cls, data: Any) -> MovementData:
        d = _dict(data)
        return cls(
            name=_str(d.get("name")),
            order=_opt_int(d.get("order")),
            is_required=_opt_bool(d.get("is_required")),
        )

    def to_dict(self) -> dict[str, Any]:
        return _compact({
            "name": self.name,
            "order": self.order,
            "is_required": self.is_required,
        })


@dataclass
class AttemptData:
    attempt_number: int | None
    weight: Decimal | None
    is_successful: bool
    no_rep_reason: str | None = None
    passing_judges: int | None = None

    @classmethod
    def from_dict(cls, data: Any) -> AttemptData:
        d = _dict(data)
        return cls(
            attempt_number=_opt_int(d.get("attempt_number")),
            weight=to_decimal(d.get("weight")),
            is_successful=bool(_opt_bool(d.get("is_successful"))),
            no_rep_reason=_opt_str(d.get("no_rep_reason")),
            passing_judges=_opt_int(d.get("passing_judges")),
        )

    def to_dict(self) -> dict[str, Any]:
        return _compact({
            "attempt_number": self.attempt_number,
            "weight": _dec_out(self.weight),
            "is_successful": self.is_successful,
            "passing_judges": self.passing_judges,
            "no_rep_reason": self.no_rep_reason,
        })


@dataclass
class LiftData:
    movement: str
    attempts: list[AttemptData] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> LiftData:
        d = _dict(data)
        return cls(
            movement=_str(d.get("movement")),
            attempts=[AttemptData.from_dict(a) for a in _list(d.get("attempts"))],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "movement": self.movement,
            "attempts": [a.to_dict() for a in self.attempts],
        }

    @property
    def best_successful_weight(self) -> Decimal | None:
        weights = [
            a.weight for a in self.attempts
            if a.is_successful and a.weight is not None
        ]
        return max(weights) if weights else None


@dataclass
class LiftControlAthleteMetadata:
    athlete_id: int | None
    reglage_dips: str | None = None
    reglage_squat: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> LiftControlAthleteMetadata | None:
        if not isinstance(data, dict):
            return None
        return cls(
            athlete_id=_opt_int(data.get("athlete_id")),
            reglage_dips=_opt_str(data.get("reglage_dips")),
            reglage_squat=_opt_str(data.get("reglage_squat")),
        )

    def to_dict(self) -> dict[str, Any]:
        return _compact({
            "athlete_id": self.athlete_id,
            "reglage_dips": self.reglage_dips,
            "reglage_squat": self.reglage_squat,
        })


@dataclass
class AthleteData:
    first_name: str
    last_name: str
    country: str
    gender: str | None = None
    nationality: str | None = None
    bodyweight: Decimal | None = None
    is_disqualified: bool | None = None
    disqualified_reason: str | None = None
    rank: int | None = None
    lifts: list[LiftData] = field(default_factory=list)
    liftcontrol_athlete_metadata: LiftControlAthleteMetadata | None = None

    @classmethod
    def from_dict(cls, data: Any) -> AthleteData:
        d = _dict(data)
        gender = _opt_str(d.get("gender"))
        return cls(
            first_name=_str(d.get("first_name")),
            last_name=_str(d.get("last_name")),
            country=_str(d.get("country")),
            gender=gender.upper() if gender else None,
            nationality=_opt_str(d.get("nationality")),
            bodyweight=to_decimal(d.get("bodyweight")),
            is_disqualified=_opt_bool(d.get("is_disqualified")),
            disqualified_reason=_opt_str(d.get("disqualified_reason")),
            rank=_opt_int(d.get("rank")),
            lifts=[LiftData.from_dict(x) for x in _list(d.get("lifts"))],
            liftcontrol_athlete_metadata=LiftControlAthleteMetadata.from_dict(
                d.get("liftcontrol_athlete_metadata")
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return _compact({
            "first_name": self.first_name,
            "last_name": self.last_name,
            "gender": self.gender,
            "country": self.country,
            "nationality": self.nationality,
            "bodyweight": _dec_out(self.bodyweight),
            "is_disqualified": self.is_disqualified,
            "disqualified_reason": self.disqualified_reason,
            "rank": self.rank,
            "lifts": [x.to_dict() for x in self.lifts],
            "liftcontrol_athlete_metadata": (
                self.liftcontrol_athlete_metadata.to_dict()
                if self.liftcontrol_athlete_metadata else None
            ),
        })


@dataclass
class CategoryData:
    name: str
    gender: str
    weight_class_min: Decimal | None = None
    weight_class_max: Decimal | None = None
    athletes: list[AthleteData] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> CategoryData:
        d = _dict(data)
        return cls(
            name=_str(d.get("name")),
            gender=_str(d.get("gender")).upper(),
            weight_class_min=to_decimal(d.get("weight_class_min")),
            weight_class_max=to_decimal(d.get("weight_class_max")),
            athletes=[AthleteData.from_dict(a) for a in _list(d.get("athletes"))],
        )

    def to_dict(self) -> dict[str, Any]:
        return _compact({
            "name": self.name,
            "gender": self.gender,
            "weight_class_min": _dec_out(self.weight_class_min),
            "weight_class_max": _dec_out(self.weight_class_max),
            "athletes": [a.to_dict() for a in self.athletes],
        })


@dataclass
class LiftControlMetadata:
    contest_id: int | None

    def to_dict(self) -> dict[str, Any]:
        return {"contest_id": self.contest_id}


@dataclass
class PdfMetadata:
    extraction_confidence: float | None = None
    pages_processed: list[int] | None = None
    warnings: list[str] | None = None

    def to_dict(self) -> dict[str, Any]:
        return _compact({
            "extraction_confidence": self.extraction_confidence,
            "pages_processed": self.pages_processed,
            "warnings": self.warnings,
        })


# ---------------------------------------------------------------------------
# CanonicalDocument
# ---------------------------------------------------------------------------

@dataclass
class CanonicalDocument:
    format_version: str
    source: SourceMetadata
    competition: CompetitionData
    movements: list[MovementData] = field(default_factory=list)
    categories: list[CategoryData] = field(default_factory=list)
    liftcontrol_metadata: LiftControlMetadata | None = None
    pdf_metadata: PdfMetadata | None = None

    @classmethod
    def from_dict(cls, data: Any) -> CanonicalDocument:
        d = _dict(data)
        lc = d.get("liftcontrol_metadata")
        pdf = d.get("pdf_metadata")
        return cls(
            format_version=_str(d.get("format_version")),
            source=SourceMetadata.from_dict(d.get("source")),
            competition=CompetitionData.from_dict(d.get("competition")),
            movements=[MovementData.from_dict(m) for m in _list(d.get("movements"))],
            categories=[CategoryData.from_dict(c) for c in _list(d.get("categories"))],
            liftcontrol_metadata=(
                LiftControlMetadata(contest_id=_opt_int(lc.get("contest_id")))
                if isinstance(lc, dict) else None
            ),
            pdf_metadata=(
                PdfMetadata(
                    extraction_confidence=pdf.get("extraction_confidence"),
                    pages_processed=pdf.get("pages_processed"),
                    warnings=pdf.get("warnings"),
                )
                if isinstance(pdf, dict) else None
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return _compact({
            "format_version": self.format_version,
            "source": self.source.to_dict(),
            "competition": self.competition.to_dict(),
            "movements": [m.to_dict() for m in self.movements],
            "categories": [c.to_dict() for c in self.categories],
            "liftcontrol_metadata": (
                self.liftcontrol_metadata.to_dict() if self.liftcontrol_metadata else None
            ),
            "pdf_metadata": self.pdf_metadata.to_dict() if self.pdf_metadata else None,
        })

    @property
    def athlete_count(self) -> int:
        return sum(len(c.athletes) for c in self.categories)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def load_canonical_file(path: Path) -> CanonicalDocument:
    """Read a canonical JSON file.  Raises ValueError on invalid JSON."""
    raw = path.read_text(encoding="utf-8")
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"{path.name}: invalid JSON ({exc})") from exc
    return CanonicalDocument.from_dict(data)


def write_canonical_file(doc: CanonicalDocument, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(doc.to_dict(), indent=2, ensure_ascii=False) + "\n",
        encoding="utf-8",
    )
    return path
