"""osl_etl.import_liftcontrol

LiftControl pipelines (--mode liftcontrol_export / --mode liftcontrol_import).

Export path: fetch each session and write one canonical JSON file per
sub-slug for manual review; the files are imported later with
--mode canonical_batch.

Direct-import path: fetch each session, build the canonical document in
memory with the same exporter, and hand it to the canonical importer.

Sessions of one competition are processed sequentially, in registry order.
Each session is its own transaction: later sessions see the federation,
competition and movement rows written by earlier ones.
"""

from __future__ import annotations

import logging
from pathlib import Path

import psycopg

from osl_etl.canonical_import import ImportSummary, import_canonical_document
from osl_etl.canonical_models import CanonicalDocument, write_canonical_file
from osl_etl.competition_registry import CompetitionEntry
from osl_etl.liftcontrol_client import LiftControlClient
from osl_etl.liftcontrol_export import LiftControlExporter
from osl_etl.shared import ImportCounters, OslEtlError

log = logging.getLogger(__name__)

LIFTCONTROL_CREATED_BY = "LiftControl Importer"


def fetch_session_document(
    client: LiftControlClient,
    exporter: LiftControlExporter,
    sub_slug: str,
    counters: ImportCounters,
) -> CanonicalDocument:
    table = client.fetch_session(sub_slug)
    counters.liftcontrol_sessions_fetched += 1
    return exporter.to_canonical(table)


def export_liftcontrol_competition(
    client: LiftControlClient,
    entry: CompetitionEntry,
    output_dir: Path,
    counters: ImportCounters,
) -> list[Path]:
    """Write <output_dir>/<sub_slug>.json for every session of entry."""
    exporter = LiftControlExporter(entry)
    written: list[Path] = []
    for sub_slug in entry.sub_slugs:
        log.info("exporting %s session %s", entry.id, sub_slug)
        doc = fetch_session_document(client, exporter, sub_slug, counters)
        path = write_canonical_file(doc, output_dir / f"{sub_slug}.json")
        counters.liftcontrol_files_written += 1
        written.append(path)
    return written


def import_liftcontrol_competition(
    conn: psycopg.Connection,
    client: LiftControlClient,
    entry: CompetitionEntry,
    counters: ImportCounters,
    *,
    dry_run: bool = False,
    continue_on_error: bool = False,
) -> list[ImportSummary]:
    """Fetch and import every session of entry, one transaction per session.

    By default the first failing session stops the run (sessions already
    imported stay committed).  With continue_on_error the failure is
    counted and logged and the next session is attempted.
    """
    exporter = LiftControlExporter(entry)
    summaries: list[ImportSummary] = []
    for sub_slug in entry.sub_slugs:
        log.info("importing %s session %s", entry.id, sub_slug)
        try:
            doc = fetch_session_document(client, exporter, sub_slug, counters)
            counters.documents_read += 1
            summary = import_canonical_document(
                conn, doc, counters,
                dry_run=dry_run,
                created_by=LIFTCONTROL_CREATED_BY,
            )
        except OslEtlError as exc:
            counters.liftcontrol_sessions_failed += 1
            counters.warnings.append(f"{sub_slug}: {exc}")
            if not continue_on_error:
                raise
            log.warning("session %s failed, continuing: %s", sub_slug, exc)
            continue
        counters.documents_imported += 1
        summaries.append(summary)
    return summaries
