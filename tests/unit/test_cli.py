"""Unit tests for the osl-etl CLI modes that need no database."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from osl_etl.cli import main
from osl_etl.liftcontrol_client import LiveTable
from osl_etl.shared import SourceUnavailable

PROJECT_ROOT = Path(__file__).parent.parent.parent
REGISTRY = PROJECT_ROOT / "config" / "liftcontrol_competitions.yml"
FIXTURE = Path(__file__).parent.parent / "fixtures" / "liftcontrol_session.json"


def _live_table() -> LiveTable:
    return LiveTable.from_dict(json.loads(FIXTURE.read_text(encoding="utf-8")))


def _export(runner: CliRunner, out_dir: Path):
    with patch("osl_etl.cli.LiftControlClient") as client_cls:
        client_cls.return_value.fetch_session.return_value = _live_table()
        result = runner.invoke(main, [
            "--mode", "liftcontrol_export",
            "--registry-path", str(REGISTRY),
            "--competition", "annecy",
            "--output-dir", str(out_dir),
            "--run-id", "test-export",
        ])
    return result, client_cls


@pytest.fixture
def in_tmp(tmp_path, monkeypatch):
    """Run from tmp_path so run reports land there."""
    monkeypatch.chdir(tmp_path)
    return tmp_path


class TestLiftControlList:
    def test_lists_registry(self):
        result = CliRunner().invoke(main, [
            "--mode", "liftcontrol_list", "--registry-path", str(REGISTRY),
        ])
        assert result.exit_code == 0, result.output
        assert "annecy-4-lift-2025" in result.output
        assert "annecy-4-lift-2025-dimanche-matin-39" in result.output


class TestLiftControlExport:
    def test_writes_one_file_per_session(self, in_tmp):
        out_dir = in_tmp / "canonical"
        result, client_cls = _export(CliRunner(), out_dir)
        assert result.exit_code == 0, result.output

        fetched = [c.args[0] for c in client_cls.return_value.fetch_session.call_args_list]
        assert fetched == [
            "annecy-4-lift-2025-dimanche-matin-39",
            "annecy-4-lift-2025-dimanche-apres-midi-40",
        ]
        files = sorted(p.name for p in out_dir.glob("*.json"))
        assert files == [
            "annecy-4-lift-2025-dimanche-apres-midi-40.json",
            "annecy-4-lift-2025-dimanche-matin-39.json",
        ]
        data = json.loads((out_dir / files[0]).read_text(encoding="utf-8"))
        assert data["competition"]["slug"] == "annecy-4-lift-2025"

        report = json.loads((in_tmp / "artifacts" / "reports" / "test-export.json").read_text())
        assert report["counters"]["liftcontrol_sessions_fetched"] == 2
        assert report["counters"]["liftcontrol_files_written"] == 2

    def test_unknown_competition(self, in_tmp):
        result = CliRunner().invoke(main, [
            "--mode", "liftcontrol_export",
            "--registry-path", str(REGISTRY),
            "--competition", "nowhere",
        ])
        assert result.exit_code == 1
        assert "Unknown competition" in result.output

    def test_source_unavailable_is_fatal(self, in_tmp):
        with patch("osl_etl.cli.LiftControlClient") as client_cls:
            client_cls.return_value.fetch_session.side_effect = SourceUnavailable("HTTP 503")
            result = CliRunner().invoke(main, [
                "--mode", "liftcontrol_export",
                "--registry-path", str(REGISTRY),
                "--competition", "annecy",
                "--output-dir", str(in_tmp / "out"),
            ])
        assert result.exit_code == 1
        assert "HTTP 503" in result.output

    def test_competition_required(self, in_tmp):
        result = CliRunner().invoke(main, [
            "--mode", "liftcontrol_export", "--registry-path", str(REGISTRY),
        ])
        assert result.exit_code == 1
        assert "--competition is required" in result.output


class TestCanonicalValidate:
    def test_exported_files_are_valid(self, in_tmp):
        runner = CliRunner()
        out_dir = in_tmp / "canonical"
        _export(runner, out_dir)
        result = runner.invoke(main, [
            "--mode", "canonical_validate", "--input-path", str(out_dir),
        ])
        assert result.exit_code == 0, result.output
        assert result.output.count(": OK") == 2

    def test_invalid_file_exits_nonzero(self, tmp_path):
        bad = tmp_path / "bad.json"
        bad.write_text(json.dumps({"format_version": "0.1"}), encoding="utf-8")
        result = CliRunner().invoke(main, [
            "--mode", "canonical_validate", "--input-path", str(bad),
        ])
        assert result.exit_code == 1
        assert "Unsupported format version" in result.output
        assert "INVALID" in result.output

    def test_unreadable_json(self, tmp_path):
        bad = tmp_path / "broken.json"
        bad.write_text("{", encoding="utf-8")
        result = CliRunner().invoke(main, [
            "--mode", "canonical_validate", "--input-path", str(bad),
        ])
        assert result.exit_code == 1
        assert "unreadable" in result.output

    def test_empty_directory(self, tmp_path):
        result = CliRunner().invoke(main, [
            "--mode", "canonical_validate", "--input-path", str(tmp_path),
        ])
        assert result.exit_code == 1
        assert "no JSON files" in result.output


class TestDatabaseModes:
    def test_dsn_required(self, in_tmp):
        result = CliRunner().invoke(
            main,
            ["--mode", "ranking"],
            env={"DATABASE_URL": None},
        )
        assert result.exit_code == 1
        assert "--db-dsn" in result.output

    def test_bad_mode_rejected(self):
        result = CliRunner().invoke(main, ["--mode", "scrape"])
        assert result.exit_code == 2
