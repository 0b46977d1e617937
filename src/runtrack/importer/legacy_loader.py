"""LegacyImporter: one-time ingestion of legacy event records into the store.

Each record is handled on its own: a record that cannot be parsed or stored
is counted as skipped and the batch carries on.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable

from pydantic import ValidationError as PydanticValidationError

from runtrack.core.config import ImportConfig
from runtrack.core.exceptions import InvalidStateError, StoreError, ValidationError
from runtrack.core.protocols import IRunStore
from runtrack.models.legacy import ImportReport, LegacyRecord
from runtrack.models.run import WorkflowState, fits_int32

logger = logging.getLogger(__name__)

PROGRESS_EVERY = 100

_RUN_NUMBER = re.compile(r"[+-]?[0-9]+")


def parse_run_number(title: str) -> int:
    if not _RUN_NUMBER.fullmatch(title.strip()):
        raise ValidationError(f"{title!r} is not a valid run number")
    value = int(title)
    if not fits_int32(value):
        raise ValidationError(f"{title!r} is out of range for a run number")
    return value


def parse_run_date(value: str, date_format: str = "%Y-%m-%d") -> datetime:
    """Parse a calendar date to midnight of that day."""
    try:
        return datetime.strptime(value.strip(), date_format)
    except ValueError:
        raise ValidationError(f"{value!r} is not a valid date") from None


def parse_status(status: str, strict: bool = False) -> WorkflowState:
    """Exact match against the canonical strings.

    Unknown statuses fall back to NOT_YET_STARTED unless ``strict``.
    """
    try:
        return WorkflowState.parse(status)
    except InvalidStateError:
        if strict:
            raise
        logger.warning("Unknown status %r, defaulting to %s", status, WorkflowState.NOT_YET_STARTED)
        return WorkflowState.NOT_YET_STARTED


def load_records(path: str | Path) -> list[dict[str, Any]]:
    """Read the legacy JSON array of event records."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValidationError(f"{path}: expected a JSON array of records")
    return data


class LegacyImporter:
    """Upserts legacy records as runs, each with both processing steps."""

    def __init__(
        self,
        store: IRunStore,
        *,
        date_format: str = "%Y-%m-%d",
        strict_states: bool = False,
    ) -> None:
        self._store = store
        self._date_format = date_format
        self._strict_states = strict_states

    @classmethod
    def from_config(cls, store: IRunStore, config: ImportConfig) -> LegacyImporter:
        return cls(store, date_format=config.date_format, strict_states=config.strict_states)

    def import_record(self, record: LegacyRecord) -> int:
        """Upsert one record; returns its run number.

        Raises:
            ValidationError: the title, date, or (strict) status is unusable.
            StoreError: the store rejected the row.
        """
        run_number = parse_run_number(record.title)
        run_start_date = parse_run_date(record.date, self._date_format)
        state = parse_status(record.status, strict=self._strict_states)

        # file_number is not part of the legacy format
        self._store.upsert_run(run_number, 0, run_start_date, state, record.url or None)
        self._store.ensure_steps(run_number)
        return run_number

    def run(self, records: Iterable[dict[str, Any] | LegacyRecord]) -> ImportReport:
        report = ImportReport()
        for idx, raw in enumerate(records):
            report.total += 1
            try:
                record = raw if isinstance(raw, LegacyRecord) else LegacyRecord.model_validate(raw)
                self.import_record(record)
            except (ValidationError, PydanticValidationError, StoreError) as exc:
                report.skipped += 1
                report.errors.append(f"row {idx}: {exc}")
                logger.info("Skipping row %d: %s", idx, exc)
                continue
            report.imported += 1
            if report.imported % PROGRESS_EVERY == 0:
                logger.info("Imported %d runs...", report.imported)

        logger.info(
            "Import complete: total=%d imported=%d skipped=%d",
            report.total, report.imported, report.skipped,
        )
        return report
