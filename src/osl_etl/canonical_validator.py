"""osl_etl.canonical_validator

Structural validation of a CanonicalDocument before import.

validate() never raises: it walks the whole document and collects every
error and warning into a ValidationReport.  ensure_valid() is the gate the
importer uses; it raises ValidationFailed carrying the full error list.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from osl_etl.canonical_models import (
    COMPETITION_STATUSES,
    FORMAT_VERSION,
    SOURCE_TYPES,
    CanonicalDocument,
)
from osl_etl.movement_mapper import CanonicalMovement, CanonicalMovementMapper
from osl_etl.shared import ValidationFailed

log = logging.getLogger(__name__)

VALID_GENDERS = frozenset({"M", "F"})
VALID_JUDGE_COUNTS = frozenset({1, 3})


@dataclass
class ValidationReport:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def validate(doc: CanonicalDocument) -> ValidationReport:
    report = ValidationReport()
    errors, warnings = report.errors, report.warnings

    if doc.format_version != FORMAT_VERSION:
        errors.append(
            f"Unsupported format version: {doc.format_version or '<missing>'}. "
            f"Expected {FORMAT_VERSION}"
        )
    if doc.source.type not in SOURCE_TYPES:
        errors.append(
            f"Unsupported source type: '{doc.source.type}'. "
            f"Must be one of {', '.join(sorted(SOURCE_TYPES))}"
        )

    # -- competition --------------------------------------------------------
    comp = doc.competition
    if not comp.name:
        errors.append("Competition name is required")
    if not comp.slug:
        errors.append("Competition slug is required")
    if not comp.country:
        errors.append("Competition country is required")
    if comp.start_date is None:
        errors.append("Competition start_date is missing or not a valid date")
    if comp.end_date is None:
        errors.append("Competition end_date is missing or not a valid date")
    if comp.start_date and comp.end_date and comp.end_date < comp.start_date:
        errors.append("Competition end_date must be >= start_date")
    if not comp.federation.name:
        errors.append("Federation name is required")
    if comp.status is not None and comp.status not in COMPETITION_STATUSES:
        errors.append(f"Invalid competition status: '{comp.status}'")
    if comp.number_of_judges is not None and comp.number_of_judges not in VALID_JUDGE_COUNTS:
        errors.append(
            f"Invalid number_of_judges: {comp.number_of_judges}. Must be 1 or 3"
        )

    if not comp.venue:
        warnings.append("Competition venue is not specified")
    if not comp.city:
        warnings.append("Competition city is not specified")
    if comp.number_of_judges is None:
        warnings.append("Number of judges is not specified")

    # -- movements ----------------------------------------------------------
    mapper = CanonicalMovementMapper()
    if not doc.movements:
        errors.append("At least one movement is required")
    seen: set[CanonicalMovement] = set()
    for movement in doc.movements:
        if not movement.name:
            errors.append("Movement name cannot be empty")
            continue
        if movement.order is None or movement.order < 1:
            errors.append(
                f"Movement '{movement.name}' has invalid order: {movement.order}. "
                "Order must be >= 1"
            )
        canonical = mapper.map(movement.name)
        if canonical is None:
            errors.append(f"Movement '{movement.name}' is not a canonical movement")
            continue
        if canonical in seen:
            errors.append(f"Duplicate movement name: '{movement.name}'")
        seen.add(canonical)

    # -- categories / athletes ---------------------------------------------
    if not doc.categories:
        errors.append("At least one category is required")

    for category in doc.categories:
        if not category.name:
            errors.append("Category name cannot be empty")
        if category.gender not in VALID_GENDERS:
            errors.append(
                f"Invalid gender in category '{category.name}': '{category.gender}'. "
                "Must be 'M' or 'F'"
            )
        if not category.athletes:
            warnings.append(f"Category '{category.name}' has no athletes")

        for idx, athlete in enumerate(category.athletes, start=1):
            label = f"{idx}. {athlete.first_name} {athlete.last_name}"
            if not athlete.first_name:
                errors.append(f"Athlete in category '{category.name}' has empty first_name")
            if not athlete.last_name:
                errors.append(f"Athlete in category '{category.name}' has empty last_name")
            if not athlete.country:
                errors.append(f"Athlete '{label}' has empty country")
            if athlete.gender is not None and athlete.gender not in VALID_GENDERS:
                errors.append(
                    f"Athlete '{label}' has invalid gender: '{athlete.gender}'. "
                    "Must be 'M' or 'F'"
                )
            if athlete.bodyweight is None:
                warnings.append(f"Athlete '{label}' is missing bodyweight")
            elif athlete.bodyweight <= 0:
                errors.append(f"Athlete '{label}' has non-positive bodyweight")
            if not athlete.lifts:
                warnings.append(f"Athlete '{label}' has no lifts")

            lifted: set[CanonicalMovement] = set()
            for lift in athlete.lifts:
                lift_movement = mapper.map(lift.movement)
                if lift_movement is None or lift_movement not in seen:
                    errors.append(
                        f"Athlete '{label}' has lift for unknown movement: '{lift.movement}'"
                    )
                elif lift_movement in lifted:
                    errors.append(
                        f"Athlete '{label}' has more than one lift for movement "
                        f"'{lift_movement.value}'"
                    )
                else:
                    lifted.add(lift_movement)
                if not lift.attempts:
                    errors.append(
                        f"Athlete '{label}' has lift '{lift.movement}' with no attempts"
                    )
                numbers: set[int] = set()
                for attempt in lift.attempts:
                    n = attempt.attempt_number
                    if n is None or not 1 <= n <= 3:
                        errors.append(
                            f"Athlete '{label}', movement '{lift.movement}': "
                            f"invalid attempt_number {n}. Must be 1-3"
                        )
                    elif n in numbers:
                        errors.append(
                            f"Athlete '{label}', movement '{lift.movement}': "
                            f"duplicate attempt_number {n}"
                        )
                    else:
                        numbers.add(n)
                    if attempt.weight is None:
                        errors.append(
                            f"Athlete '{label}', movement '{lift.movement}', attempt {n}: "
                            "weight is missing or not a number"
                        )
                    elif attempt.weight < 0:
                        errors.append(
                            f"Athlete '{label}', movement '{lift.movement}', attempt {n}: "
                            "negative weight"
                        )

    return report


def log_warnings(report: ValidationReport) -> None:
    for warning in report.warnings:
        log.warning("%s", warning)


def ensure_valid(doc: CanonicalDocument) -> ValidationReport:
    """Validate doc, log warnings, and raise ValidationFailed on any error."""
    report = validate(doc)
    log_warnings(report)
    if report.errors:
        raise ValidationFailed(report.errors, report.warnings)
    return report
