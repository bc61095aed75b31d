"""osl_etl.shared

Shared utilities used by every ingestion mode: the error taxonomy,
ImportCounters, RejectWriter and run-report writing.
"""

from __future__ import annotations

import csv
import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class OslEtlError(Exception):
    """Base class for all pipeline errors."""


class SourceUnavailable(OslEtlError):
    """Raised when the remote scoring platform cannot be reached or returns non-2xx."""


class MalformedResponse(OslEtlError):
    """Raised when a remote payload is not JSON or lacks the expected shape."""


class TransformationError(OslEtlError):
    """Raised when source data cannot be mapped onto the canonical model."""


class UnknownMovement(TransformationError):
    """Raised when a source movement name has no canonical counterpart."""

    def __init__(self, raw_name: str) -> None:
        super().__init__(f"Unknown movement: {raw_name!r}")
        self.raw_name = raw_name


class ValidationFailed(OslEtlError):
    """Raised when a canonical document has one or more validation errors."""

    def __init__(self, errors: list[str], warnings: list[str] | None = None) -> None:
        summary = "; ".join(errors[:5])
        if len(errors) > 5:
            summary += f"; ... ({len(errors) - 5} more)"
        super().__init__(f"{len(errors)} validation error(s): {summary}")
        self.errors = list(errors)
        self.warnings = list(warnings or [])


class NoFormulaAvailable(OslEtlError):
    """Raised when no RIS formula version covers the requested date."""


class ConstraintViolation(OslEtlError):
    """Raised when the store rejects a write on a uniqueness or check constraint."""


class UnknownCompetition(OslEtlError):
    """Raised when a competition name is not present in the registry."""


# ---------------------------------------------------------------------------
# RejectWriter
# ---------------------------------------------------------------------------

class RejectWriter:
    """Lazy-open CSV writer for rejected inputs."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._fh = None
        self._writer = None

    def write(self, row: dict[str, str], reason: str) -> None:
        if self._fh is None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._fh = open(self._path, "w", newline="", encoding="utf-8")
            fieldnames = list(row.keys()) + ["_reject_reason"]
            self._writer = csv.DictWriter(
                self._fh, fieldnames=fieldnames, extrasaction="ignore"
            )
            self._writer.writeheader()
        out = dict(row)
        out["_reject_reason"] = reason
        self._writer.writerow(out)
        self._fh.flush()

    def close(self) -> None:
        if self._fh:
            self._fh.close()


# ---------------------------------------------------------------------------
# ImportCounters
# ---------------------------------------------------------------------------

@dataclass
class ImportCounters:
    # Canonical import
    documents_read: int = 0
    documents_imported: int = 0
    documents_rejected: int = 0
    federations_inserted: int = 0
    competitions_inserted: int = 0
    competitions_updated: int = 0
    categories_inserted: int = 0
    athletes_inserted: int = 0
    athletes_matched_existing: int = 0
    participants_upserted: int = 0
    lifts_upserted: int = 0
    attempts_upserted: int = 0
    # RIS
    ris_scores_computed: int = 0
    ris_participants_skipped_no_bodyweight: int = 0
    # LiftControl
    liftcontrol_sessions_fetched: int = 0
    liftcontrol_sessions_failed: int = 0
    liftcontrol_files_written: int = 0
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "documents_read": self.documents_read,
            "documents_imported": self.documents_imported,
            "documents_rejected": self.documents_rejected,
            "federations_inserted": self.federations_inserted,
            "competitions_inserted": self.competitions_inserted,
            "competitions_updated": self.competitions_updated,
            "categories_inserted": self.categories_inserted,
            "athletes_inserted": self.athletes_inserted,
            "athletes_matched_existing": self.athletes_matched_existing,
            "participants_upserted": self.participants_upserted,
            "lifts_upserted": self.lifts_upserted,
            "attempts_upserted": self.attempts_upserted,
            "ris_scores_computed": self.ris_scores_computed,
            "ris_participants_skipped_no_bodyweight": self.ris_participants_skipped_no_bodyweight,
            "liftcontrol_sessions_fetched": self.liftcontrol_sessions_fetched,
            "liftcontrol_sessions_failed": self.liftcontrol_sessions_failed,
            "liftcontrol_files_written": self.liftcontrol_files_written,
            "warnings": self.warnings,
        }


# ---------------------------------------------------------------------------
# Run report
# ---------------------------------------------------------------------------

def write_run_report(
    run_id: str,
    started_at: str,
    mode: str,
    dry_run: bool,
    source_paths: dict[str, str],
    counters: ImportCounters,
) -> Path:
    report = {
        "run_id": run_id,
        "mode": mode,
        "started_at": started_at,
        "finished_at": datetime.utcnow().isoformat(),
        "dry_run": dry_run,
        **source_paths,
        "counters": counters.to_dict(),
    }
    report_path = Path(f"./artifacts/reports/{run_id}.json")
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(json.dumps(report, indent=2, default=str))
    return report_path
