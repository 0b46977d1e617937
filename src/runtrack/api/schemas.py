"""Request bodies for the dashboard API."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from runtrack.models.run import Int32, StepUpdate, WorkflowState


class CreateRunRequest(BaseModel):
    file_number: Int32
    run_start_date: datetime
    state: str = WorkflowState.NOT_YET_STARTED.value
    url: Optional[str] = None


class StateUpdateRequest(BaseModel):
    run_number: Optional[Int32] = None  # must match the path when given
    new_state: str


class StepUpdateRequest(BaseModel):
    run_number: Int32
    step_number: Int32
    started_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    site: Optional[str] = None
    checksum: Optional[str] = None
    location: Optional[str] = None

    def to_update(self) -> StepUpdate:
        """Carry over only the fields the client actually sent."""
        sent = self.model_dump(exclude_unset=True, exclude={"run_number", "step_number"})
        return StepUpdate(**sent)


class LoginRequest(BaseModel):
    password: str
