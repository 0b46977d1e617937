"""Tests for LegacyImporter against a SQLite store."""

from __future__ import annotations

import json
from datetime import datetime

import pytest

from runtrack.core.exceptions import StoreError, ValidationError
from runtrack.importer.legacy_loader import (
    LegacyImporter,
    load_records,
    parse_run_date,
    parse_run_number,
    parse_status,
)
from runtrack.models.run import StepUpdate, WorkflowState
from tests.fakes import MemoryRunStore


def _record(title="1001", date="2024-05-01", status="Process Step 1", url="https://x/1001"):
    return {"title": title, "date": date, "url": url, "status": status, "description": ""}


class TestParsers:
    @pytest.mark.parametrize("title,expected", [("12", 12), (" 42 ", 42), ("-3", -3)])
    def test_run_number(self, title, expected):
        assert parse_run_number(title) == expected

    @pytest.mark.parametrize("title,expected", [("2147483647", 2**31 - 1), ("-2147483648", -(2**31))])
    def test_run_number_at_int_bounds(self, title, expected):
        assert parse_run_number(title) == expected

    @pytest.mark.parametrize(
        "title",
        ["Run 12", "", "1_000", "12.5", "\u0661\u0662", "2147483648", "-2147483649", "99999999999999999999"],
    )
    def test_run_number_rejects(self, title):
        with pytest.raises(ValidationError):
            parse_run_number(title)

    def test_date_is_midnight(self):
        assert parse_run_date("2024-05-01") == datetime(2024, 5, 1)

    @pytest.mark.parametrize("value", ["05/01/2024", "2024-13-01", "yesterday"])
    def test_date_rejects(self, value):
        with pytest.raises(ValidationError):
            parse_run_date(value)

    def test_unknown_status_defaults(self):
        assert parse_status("in progress") is WorkflowState.NOT_YET_STARTED

    def test_unknown_status_strict(self):
        with pytest.raises(ValidationError):
            parse_status("in progress", strict=True)


class TestImport:
    def test_imports_run_with_two_steps(self, sql_store):
        report = LegacyImporter(sql_store).run([_record()])
        assert (report.total, report.imported, report.skipped) == (1, 1, 0)
        detail = sql_store.get_run_with_steps(1001)
        assert detail.run.state is WorkflowState.PROCESS_STEP_1
        assert detail.run.file_number == 0
        assert detail.run.run_start_date == datetime(2024, 5, 1)
        assert [s.step_number for s in detail.steps] == [1, 2]

    def test_non_numeric_title_is_skipped(self, sql_store):
        report = LegacyImporter(sql_store).run([_record(title="Calibration")])
        assert (report.imported, report.skipped) == (0, 1)
        assert sql_store.list_runs() == []

    def test_bad_date_is_skipped_and_batch_continues(self, sql_store):
        records = [_record(title="1", date="not a date"), _record(title="2")]
        report = LegacyImporter(sql_store).run(records)
        assert (report.total, report.imported, report.skipped) == (2, 1, 1)
        assert [r.run_number for r in sql_store.list_runs()] == [2]
        assert "row 0" in report.errors[0]

    def test_out_of_range_title_is_skipped_and_batch_continues(self, sql_store):
        records = [_record(title="99999999999999999999"), _record(title="5")]
        report = LegacyImporter(sql_store).run(records)
        assert (report.total, report.imported, report.skipped) == (2, 1, 1)
        assert [r.run_number for r in sql_store.list_runs()] == [5]
        assert "out of range" in report.errors[0]

    def test_unknown_status_imports_as_not_yet_started(self, sql_store):
        LegacyImporter(sql_store).run([_record(status="Waiting")])
        assert sql_store.get_run(1001).state is WorkflowState.NOT_YET_STARTED

    def test_unknown_status_skipped_in_strict_mode(self, sql_store):
        report = LegacyImporter(sql_store, strict_states=True).run([_record(status="Waiting")])
        assert report.skipped == 1
        assert sql_store.list_runs() == []

    def test_duplicate_titles_upsert(self, sql_store):
        records = [
            _record(status="Process Step 1", url="https://x/old"),
            _record(status="Complete", url="https://x/new"),
        ]
        report = LegacyImporter(sql_store).run(records)
        assert report.imported == 2
        detail = sql_store.get_run_with_steps(1001)
        assert detail.run.state is WorkflowState.COMPLETE
        assert detail.run.url == "https://x/new"
        assert len(detail.steps) == 2

    def test_reimport_keeps_step_data(self, sql_store):
        importer = LegacyImporter(sql_store)
        importer.run([_record()])
        sql_store.update_step(1001, 2, StepUpdate(checksum="deadbeef"))
        importer.run([_record(status="Finish Step 2")])
        steps = sql_store.get_run_with_steps(1001).steps
        assert steps[1].checksum == "deadbeef"

    def test_malformed_record_is_skipped(self, sql_store):
        report = LegacyImporter(sql_store).run([{"title": None, "date": "2024-01-01"}])
        assert report.skipped == 1

    def test_store_failure_is_skipped(self):
        class FailingStore(MemoryRunStore):
            def upsert_run(self, *args, **kwargs):
                raise StoreError("connection lost")

        report = LegacyImporter(FailingStore()).run([_record(), _record(title="2")])
        assert (report.imported, report.skipped) == (0, 2)


class TestLoadRecords:
    def test_reads_json_array(self, tmp_path):
        path = tmp_path / "events.json"
        path.write_text(json.dumps([_record()]))
        assert load_records(path)[0]["title"] == "1001"

    def test_rejects_non_array(self, tmp_path):
        path = tmp_path / "events.json"
        path.write_text(json.dumps({"events": []}))
        with pytest.raises(ValidationError):
            load_records(path)
