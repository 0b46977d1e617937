"""Legacy flat event records and the import report."""

from __future__ import annotations

from pydantic import BaseModel, Field


class LegacyRecord(BaseModel):
    """One row of the legacy events.json file."""

    title: str = ""
    date: str = ""
    url: str = ""
    status: str = ""
    description: str = ""


class ImportReport(BaseModel):
    """Counts reported at the end of an import."""

    total: int = 0
    imported: int = 0
    skipped: int = 0
    errors: list[str] = Field(default_factory=list)
