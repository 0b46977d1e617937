"""WorkflowStateMachine: validate and apply run state changes.

Every successful mutation hands the committed snapshot to the mirror
synchronizer exactly once. Transitions are unrestricted unless strict mode
is enabled, in which case a run in a terminal state may only stay there or
be reset to NOT_YET_STARTED.
"""

from __future__ import annotations

import logging
from datetime import datetime

from runtrack.core.exceptions import InvalidTransitionError, RunNotFoundError
from runtrack.core.protocols import IMirrorSync, IRunStore
from runtrack.models.run import ProcessingStep, Run, RunDetail, StepUpdate, WorkflowState

logger = logging.getLogger(__name__)


class WorkflowStateMachine:
    """Applies state transitions and step updates on top of the run store."""

    def __init__(
        self,
        *,
        store: IRunStore,
        sync: IMirrorSync,
        strict_transitions: bool = False,
    ) -> None:
        self._store = store
        self._sync = sync
        self._strict = strict_transitions

    def _check_edge(self, run: Run, requested: WorkflowState) -> None:
        current = run.state
        if not current.is_terminal or requested in (current, WorkflowState.NOT_YET_STARTED):
            return
        raise InvalidTransitionError(run.run_number, current.value, requested.value)

    def apply_transition(self, run_number: int, requested_state: WorkflowState | str) -> Run:
        """Move a run to ``requested_state`` and schedule one mirror push.

        Raises:
            InvalidStateError: ``requested_state`` is not a workflow state.
            InvalidTransitionError: strict mode rejected the edge.
            RunNotFoundError: no such run.
        """
        state = WorkflowState.parse(requested_state)
        if self._strict:
            self._check_edge(self._store.get_run(run_number), state)

        if self._store.update_run_state(run_number, state) == 0:
            raise RunNotFoundError(run_number)

        detail = self._store.get_run_with_steps(run_number)
        logger.info("Run %d -> %s", run_number, state)
        self._sync.enqueue_run(detail.run, detail.model_dump(mode="json"))
        return detail.run

    def create_run(
        self,
        file_number: int,
        run_start_date: datetime,
        state: WorkflowState | str = WorkflowState.NOT_YET_STARTED,
        url: str | None = None,
    ) -> RunDetail:
        run = self._store.create_run(file_number, run_start_date, WorkflowState.parse(state), url)
        detail = self._store.get_run_with_steps(run.run_number)
        self._sync.enqueue_run(run, detail.model_dump(mode="json"))
        return detail

    def update_step(
        self, run_number: int, step_number: int, fields: StepUpdate
    ) -> ProcessingStep:
        step = self._store.update_step(run_number, step_number, fields)
        detail = self._store.get_run_with_steps(run_number)
        self._sync.enqueue_run(detail.run, detail.model_dump(mode="json"))
        return step
