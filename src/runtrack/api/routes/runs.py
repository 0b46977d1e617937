"""Run listing, detail, creation, and state transition endpoints."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, status

from runtrack.api.auth import require_admin
from runtrack.api.deps import get_machine, get_store
from runtrack.api.schemas import CreateRunRequest, StateUpdateRequest
from runtrack.core.exceptions import RunNotFoundError, ValidationError
from runtrack.core.protocols import IRunStore
from runtrack.models.run import Run, RunDetail
from runtrack.workflow.state_machine import WorkflowStateMachine

router = APIRouter(tags=["runs"])


@router.get("/runs")
def list_runs(store: IRunStore = Depends(get_store)) -> list[Run]:
    """All runs, most recent start date first."""
    return store.list_runs()


@router.get("/runs/{run_number}")
def get_run(run_number: int, store: IRunStore = Depends(get_store)) -> Optional[RunDetail]:
    """A run with its two steps, or null when it does not exist."""
    try:
        return store.get_run_with_steps(run_number)
    except RunNotFoundError:
        return None


@router.post(
    "/runs",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
def create_run(
    body: CreateRunRequest,
    machine: WorkflowStateMachine = Depends(get_machine),
) -> RunDetail:
    return machine.create_run(body.file_number, body.run_start_date, body.state, body.url)


@router.post("/runs/{run_number}/state", dependencies=[Depends(require_admin)])
def update_state(
    run_number: int,
    body: StateUpdateRequest,
    machine: WorkflowStateMachine = Depends(get_machine),
) -> Run:
    if body.run_number is not None and body.run_number != run_number:
        raise ValidationError(
            f"Body run_number {body.run_number} does not match path run_number {run_number}"
        )
    return machine.apply_transition(run_number, body.new_state)
