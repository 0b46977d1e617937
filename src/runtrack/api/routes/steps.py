"""Processing step update endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from runtrack.api.auth import require_admin
from runtrack.api.deps import get_machine
from runtrack.api.schemas import StepUpdateRequest
from runtrack.models.run import ProcessingStep
from runtrack.workflow.state_machine import WorkflowStateMachine

router = APIRouter(tags=["steps"])


@router.post("/steps", dependencies=[Depends(require_admin)])
def update_step(
    body: StepUpdateRequest,
    machine: WorkflowStateMachine = Depends(get_machine),
) -> ProcessingStep:
    """Partial update: omitted fields keep their stored value."""
    return machine.update_step(body.run_number, body.step_number, body.to_update())
