"""osl_etl.cli

Unified command-line entry point (osl-etl --mode ...).

Modes:
  canonical_validate   validate canonical JSON file(s), no database
  canonical_import     import one canonical JSON file
  canonical_batch      import every *.json in a directory, one transaction per file
  liftcontrol_list     list competitions in the registry
  liftcontrol_export   fetch sessions and write canonical JSON for review
  liftcontrol_import   fetch sessions and import them directly
  ris_publish          insert/update RIS formula versions from YAML
  ris_recompute        re-score every participant with a formula
  ranking              print a page of the global ranking as JSON
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from datetime import datetime
from pathlib import Path

import click
import psycopg

from osl_etl.canonical_import import import_canonical_file, run_canonical_batch
from osl_etl.canonical_models import load_canonical_file
from osl_etl.canonical_validator import validate
from osl_etl.competition_registry import DEFAULT_REGISTRY_PATH, load_registry
from osl_etl.import_liftcontrol import (
    export_liftcontrol_competition,
    import_liftcontrol_competition,
)
from osl_etl.liftcontrol_client import DEFAULT_BASE_URL, LiftControlClient
from osl_etl.ranking import InvalidRankingFilter, RankingFilter, RankingMovement, rank
from osl_etl.ris import load_formula_file, publish_formula, recompute_all
from osl_etl.shared import (
    ImportCounters,
    OslEtlError,
    RejectWriter,
    ValidationFailed,
    write_run_report,
)

MODES = [
    "canonical_validate",
    "canonical_import",
    "canonical_batch",
    "liftcontrol_list",
    "liftcontrol_export",
    "liftcontrol_import",
    "ris_publish",
    "ris_recompute",
    "ranking",
]

DB_MODES = frozenset({
    "canonical_import",
    "canonical_batch",
    "liftcontrol_import",
    "ris_publish",
    "ris_recompute",
    "ranking",
})


def _fatal(run_id: str, message: str) -> None:
    click.echo(f"[{run_id}] FATAL: {message}", err=True)
    sys.exit(1)


def _require(value: str | None, flag: str, mode: str, run_id: str) -> str:
    if not value:
        _fatal(run_id, f"{flag} is required for --mode {mode}")
    return value


def _report_validation_errors(run_id: str, exc: ValidationFailed) -> None:
    click.echo(f"[{run_id}] Validation failed with {len(exc.errors)} error(s):", err=True)
    for error in exc.errors:
        click.echo(f"[{run_id}]   - {error}", err=True)


# ---------------------------------------------------------------------------
# Mode runners
# ---------------------------------------------------------------------------

def _run_canonical_validate(run_id: str, input_path: str) -> None:
    root = Path(input_path)
    paths = sorted(root.glob("*.json")) if root.is_dir() else [root]
    if not paths:
        _fatal(run_id, f"no JSON files found under {str(root)!r}")
    failed = 0
    for path in paths:
        try:
            doc = load_canonical_file(path)
        except (OSError, ValueError) as exc:
            click.echo(f"[{run_id}] {path.name}: unreadable ({exc})", err=True)
            failed += 1
            continue
        report = validate(doc)
        for warning in report.warnings:
            click.echo(f"[{run_id}] {path.name}: warning: {warning}")
        for error in report.errors:
            click.echo(f"[{run_id}] {path.name}: error: {error}", err=True)
        status = "OK" if report.is_valid else "INVALID"
        click.echo(
            f"[{run_id}] {path.name}: {status} "
            f"({len(report.errors)} error(s), {len(report.warnings)} warning(s))"
        )
        if not report.is_valid:
            failed += 1
    if failed:
        _fatal(run_id, f"{failed} of {len(paths)} file(s) failed validation")


def _run_canonical_import(
    run_id: str,
    conn: psycopg.Connection,
    input_path: str,
    counters: ImportCounters,
    dry_run: bool,
) -> None:
    path = Path(input_path)
    try:
        summary = import_canonical_file(conn, path, counters, dry_run=dry_run)
    except ValidationFailed as exc:
        _report_validation_errors(run_id, exc)
        sys.exit(1)
    except (OslEtlError, OSError, ValueError, psycopg.Error) as exc:
        _fatal(run_id, f"{path.name}: {exc}")
    prefix = "[dry-run] " if dry_run else ""
    click.echo(
        f"[{run_id}] {prefix}Imported {summary.competition_slug}: "
        f"participants={summary.participants} ris_scored={summary.ris_scored} "
        f"warnings={len(summary.warnings)}"
    )


def _run_canonical_batch(
    run_id: str,
    conn: psycopg.Connection,
    input_path: str,
    counters: ImportCounters,
    rejects: RejectWriter,
    dry_run: bool,
) -> int:
    root = Path(input_path)
    if not root.is_dir():
        _fatal(run_id, f"--input-path {str(root)!r} does not exist or is not a directory")
    results = run_canonical_batch(conn, root, counters, rejects, dry_run=dry_run)
    for result in results:
        name = Path(result.path).name
        if result.ok:
            click.echo(f"[{run_id}] OK     {name} ({result.competition_slug}, {result.participants} participants)")
        else:
            click.echo(f"[{run_id}] FAILED {name}: {result.error}", err=True)
    ok = sum(1 for r in results if r.ok)
    click.echo(f"[{run_id}] Batch done: {ok} succeeded, {len(results) - ok} failed")
    return len(results) - ok


def _run_liftcontrol_list(run_id: str, registry_path: str) -> None:
    registry = load_registry(Path(registry_path))
    for entry in registry.entries():
        aliases = f" (aliases: {', '.join(entry.aliases)})" if entry.aliases else ""
        click.echo(f"{entry.id}{aliases}")
        click.echo(f"  {entry.metadata.name}")
        for sub_slug in entry.sub_slugs:
            click.echo(f"  - {sub_slug}")


def _run_ranking(
    run_id: str,
    conn: psycopg.Connection,
    gender: str | None,
    country: str | None,
    movement: str | None,
    page: int,
    page_size: int,
) -> None:
    try:
        f = RankingFilter(
            gender=gender.upper() if gender else None,
            country=country,
            movement=RankingMovement.parse(movement),
            page=page,
            page_size=page_size,
        )
        entries, total = rank(conn, f)
    except InvalidRankingFilter as exc:
        _fatal(run_id, str(exc))
    click.echo(json.dumps(
        {
            "page": page,
            "page_size": page_size,
            "total_items": total,
            "items": [e.to_dict() for e in entries],
        },
        indent=2,
        default=str,
        ensure_ascii=False,
    ))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

@click.command()
@click.option("--mode", required=True, type=click.Choice(MODES))
@click.option("--db-dsn", envvar="DATABASE_URL", default=None, help="PostgreSQL DSN (default: $DATABASE_URL)")
@click.option("--input-path", default=None, type=click.Path(), help="[canonical_*] Canonical JSON file or directory")
@click.option("--output-dir", default="./artifacts/canonical", show_default=True, type=click.Path(), help="[liftcontrol_export] Where canonical JSON files are written")
@click.option("--registry-path", default=str(DEFAULT_REGISTRY_PATH), show_default=True, type=click.Path(), help="[liftcontrol_*] Competition registry YAML")
@click.option("--competition", default=None, help="[liftcontrol_export|liftcontrol_import] Registry id or alias")
@click.option("--base-url", default=DEFAULT_BASE_URL, show_default=True, help="[liftcontrol_*] LiftControl base URL")
@click.option("--timeout", default=30.0, type=float, show_default=True, help="[liftcontrol_*] HTTP timeout in seconds")
@click.option("--continue-on-error", is_flag=True, default=False, help="[liftcontrol_import] Keep going when a session fails")
@click.option("--formula-path", default="config/ris_formulas.yml", show_default=True, type=click.Path(), help="[ris_publish] RIS formula YAML")
@click.option("--formula-id", default=None, help="[ris_recompute] Formula UUID (default: current formula)")
@click.option("--gender", default=None, type=click.Choice(["M", "F", "m", "f"]), help="[ranking] Gender filter")
@click.option("--country", default=None, help="[ranking] Country filter")
@click.option("--movement", default="total", show_default=True, help="[ranking] muscleup|pullup|dips|squat|total")
@click.option("--page", default=1, type=int, show_default=True, help="[ranking] Page number (1-based)")
@click.option("--page-size", default=50, type=int, show_default=True, help="[ranking] Page size (1-100)")
@click.option("--dry-run", is_flag=True, default=False)
@click.option(
    "--rejects-path",
    default="./artifacts/rejects/canonical_rejects.csv",
    show_default=True,
    type=click.Path(),
)
@click.option("--run-id", default=None, help="Override UUID for log correlation")
@click.option("--verbose", is_flag=True, default=False, help="DEBUG-level logging")
def main(
    mode: str,
    db_dsn: str | None,
    input_path: str | None,
    output_dir: str,
    registry_path: str,
    competition: str | None,
    base_url: str,
    timeout: float,
    continue_on_error: bool,
    formula_path: str,
    formula_id: str | None,
    gender: str | None,
    country: str | None,
    movement: str,
    page: int,
    page_size: int,
    dry_run: bool,
    rejects_path: str,
    run_id: str | None,
    verbose: bool,
) -> None:
    """Streetlifting results ingestion CLI."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    run_id = run_id or str(uuid.uuid4())
    started_at = datetime.utcnow().isoformat()
    counters = ImportCounters()

    if mode != "ranking":
        click.echo(f"[{run_id}] Starting {mode} run (dry_run={dry_run})")

    if mode == "canonical_validate":
        _run_canonical_validate(run_id, _require(input_path, "--input-path", mode, run_id))
        return

    if mode == "liftcontrol_list":
        _run_liftcontrol_list(run_id, registry_path)
        return

    if mode == "liftcontrol_export":
        name = _require(competition, "--competition", mode, run_id)
        try:
            entry = load_registry(Path(registry_path)).get(name)
            client = LiftControlClient(base_url=base_url, timeout=timeout)
            written = export_liftcontrol_competition(client, entry, Path(output_dir), counters)
        except (OslEtlError, OSError, ValueError) as exc:
            _fatal(run_id, str(exc))
        for path in written:
            click.echo(f"[{run_id}] Wrote {path}")
        report_path = write_run_report(
            run_id, started_at, mode, dry_run,
            {"competition": entry.id, "output_dir": output_dir},
            counters,
        )
        click.echo(f"[{run_id}] Run report: {report_path}")
        return

    if mode in DB_MODES and not db_dsn:
        _fatal(run_id, "--db-dsn (or DATABASE_URL) is required")

    rejects = RejectWriter(Path(rejects_path))
    batch_failures = 0
    conn = psycopg.connect(db_dsn, autocommit=False)
    try:
        if mode == "canonical_import":
            _run_canonical_import(
                run_id, conn, _require(input_path, "--input-path", mode, run_id),
                counters, dry_run,
            )
        elif mode == "canonical_batch":
            batch_failures = _run_canonical_batch(
                run_id, conn, _require(input_path, "--input-path", mode, run_id),
                counters, rejects, dry_run,
            )
        elif mode == "liftcontrol_import":
            name = _require(competition, "--competition", mode, run_id)
            try:
                entry = load_registry(Path(registry_path)).get(name)
                client = LiftControlClient(base_url=base_url, timeout=timeout)
                summaries = import_liftcontrol_competition(
                    conn, client, entry, counters,
                    dry_run=dry_run,
                    continue_on_error=continue_on_error,
                )
            except ValidationFailed as exc:
                _report_validation_errors(run_id, exc)
                sys.exit(1)
            except (OslEtlError, OSError, ValueError, psycopg.Error) as exc:
                _fatal(run_id, str(exc))
            for summary in summaries:
                click.echo(
                    f"[{run_id}] Imported session into {summary.competition_slug}: "
                    f"participants={summary.participants} ris_scored={summary.ris_scored}"
                )
            if counters.liftcontrol_sessions_failed:
                click.echo(
                    f"[{run_id}] {counters.liftcontrol_sessions_failed} session(s) failed",
                    err=True,
                )
        elif mode == "ris_publish":
            try:
                formulas = load_formula_file(Path(formula_path))
                with conn.transaction():
                    for formula in formulas:
                        fid = publish_formula(conn, formula)
                        click.echo(f"[{run_id}] Published RIS {formula.year} ({fid})")
                    if dry_run:
                        raise psycopg.Rollback()
            except (OSError, ValueError) as exc:
                _fatal(run_id, str(exc))
        elif mode == "ris_recompute":
            try:
                with conn.transaction():
                    count = recompute_all(conn, formula_id)
                    if dry_run:
                        raise psycopg.Rollback()
            except OslEtlError as exc:
                _fatal(run_id, str(exc))
            click.echo(f"[{run_id}] Recomputed RIS for {count} participant(s)")
        elif mode == "ranking":
            _run_ranking(run_id, conn, gender, country, movement, page, page_size)
            return
    finally:
        conn.close()
        rejects.close()

    report_path = write_run_report(
        run_id, started_at, mode, dry_run,
        {"input_path": input_path or "", "competition": competition or ""},
        counters,
    )
    click.echo(f"[{run_id}] Run report: {report_path}")
    if batch_failures or (mode == "liftcontrol_import" and counters.liftcontrol_sessions_failed):
        sys.exit(1)


if __name__ == "__main__":
    main()
