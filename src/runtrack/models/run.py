"""Run, processing step, and workflow state models."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Annotated, Optional

from pydantic import BaseModel, Field

from runtrack.core.exceptions import InvalidStateError


class WorkflowState(StrEnum):
    """Position of a run in the processing pipeline.

    Values are the canonical display strings used on the wire and in the
    database, so ``WorkflowState("Transfer WIPAC")`` and ``.value`` are the
    whole string <-> enum mapping.
    """

    NOT_YET_STARTED = "Not Yet Started"
    TRANSFER_FROM_TAPE = "Transfer from Tape"
    PROCESS_STEP_1 = "Process Step 1"
    FINISH_STEP_1 = "Finish Step 1"
    TRANSFER_WIPAC = "Transfer WIPAC"
    PROCESS_STEP_2 = "Process Step 2"
    FINISH_STEP_2 = "Finish Step 2"
    COMPLETE = "Complete"
    STEP_1_ERROR = "Step 1 Error"
    STEP_2_ERROR = "Step 2 Error"

    @classmethod
    def parse(cls, value: object) -> WorkflowState:
        """Exact-match lookup; raises InvalidStateError for anything else."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InvalidStateError(value) from None

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL


_TERMINAL = frozenset(
    {WorkflowState.COMPLETE, WorkflowState.STEP_1_ERROR, WorkflowState.STEP_2_ERROR}
)

STEP_NUMBERS: tuple[int, ...] = (1, 2)

# run_number, file_number and step_number are 32-bit INT columns
INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1

Int32 = Annotated[int, Field(ge=INT32_MIN, le=INT32_MAX)]


def fits_int32(value: int) -> bool:
    return INT32_MIN <= value <= INT32_MAX


class Run(BaseModel):
    """A trackable unit of processing work."""

    run_number: int
    file_number: int
    run_start_date: datetime
    state: WorkflowState = WorkflowState.NOT_YET_STARTED
    url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ProcessingStep(BaseModel):
    """One of the two mandatory processing stages of a run."""

    id: str
    run_number: int
    step_number: int
    started_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    site: Optional[str] = None
    checksum: Optional[str] = None
    location: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RunDetail(BaseModel):
    """A run together with its steps, ordered by step number."""

    run: Run
    steps: list[ProcessingStep] = Field(default_factory=list)


class StepUpdate(BaseModel):
    """Partial step update. Only fields explicitly set are written."""

    started_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    site: Optional[str] = None
    checksum: Optional[str] = None
    location: Optional[str] = None

    def changes(self) -> dict[str, object]:
        return self.model_dump(exclude_unset=True)
