"""Tests for the import_runs.py script."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest

from runtrack.core.config import AppSettings
from runtrack.models.run import WorkflowState

# Make scripts/ importable
sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent / "scripts"))

from import_runs import main, run_import  # noqa: E402

EVENTS = [
    {"title": "101", "date": "2024-02-01", "url": "u101", "status": "Complete", "description": ""},
    {"title": "102", "date": "2024-02-02", "url": "u102", "status": "Transfer WIPAC", "description": ""},
    {"title": "Maintenance", "date": "2024-02-03", "url": "", "status": "", "description": ""},
]


@pytest.fixture
def events_file(tmp_path):
    path = tmp_path / "events.json"
    path.write_text(json.dumps(EVENTS))
    return path


class TestRunImport:
    def test_imports_and_reports(self, sql_store, events_file):
        report = run_import(sql_store, str(events_file), AppSettings())
        assert (report.total, report.imported, report.skipped) == (3, 2, 1)
        assert sql_store.get_run(102).state is WorkflowState.TRANSFER_WIPAC

    def test_rerun_is_idempotent(self, sql_store, events_file):
        run_import(sql_store, str(events_file), AppSettings())
        run_import(sql_store, str(events_file), AppSettings())
        assert len(sql_store.list_runs()) == 2
        assert len(sql_store.get_run_with_steps(101).steps) == 2


class TestMain:
    def test_prints_summary(self, db_url, events_file, monkeypatch, capsys):
        monkeypatch.setattr(
            sys, "argv", ["import_runs.py", "--source", str(events_file), "--database-url", db_url],
        )
        assert main() == 0
        out = capsys.readouterr().out
        assert "Imported: 2" in out
        assert "Skipped:  1" in out
        assert "Total:    3" in out
