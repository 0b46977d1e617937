"""Protocol interfaces for all runtrack abstractions.

All inter-layer communication uses these Protocols: structural typing,
no inheritance required, easy to test with isinstance().
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from runtrack.models.mirror import MirrorPush, MirrorSnapshot, MirrorTargetStatus
from runtrack.models.run import ProcessingStep, Run, RunDetail, StepUpdate, WorkflowState


# ---------------------------------------------------------------------------
# Persistence: Workflow State Store
# ---------------------------------------------------------------------------

@runtime_checkable
class IRunStore(Protocol):
    """Authoritative storage for runs and their processing steps."""

    def create_run(
        self, file_number: int, run_start_date: datetime,
        initial_state: WorkflowState, url: str | None = None,
    ) -> Run: ...

    def get_run(self, run_number: int) -> Run: ...

    def list_runs(self) -> list[Run]: ...

    def get_run_with_steps(self, run_number: int) -> RunDetail: ...

    def update_step(
        self, run_number: int, step_number: int, fields: StepUpdate
    ) -> ProcessingStep: ...

    def update_run_state(self, run_number: int, new_state: WorkflowState) -> int: ...

    def upsert_run(
        self, run_number: int, file_number: int, run_start_date: datetime,
        state: WorkflowState, url: str | None = None,
    ) -> None: ...

    def ensure_steps(self, run_number: int) -> int: ...


# ---------------------------------------------------------------------------
# Mirror: versioned remote JSON file
# ---------------------------------------------------------------------------

@runtime_checkable
class IMirrorClient(Protocol):
    """Fetch-token-write access to the external versioned mirror."""

    async def fetch(self, path: str) -> MirrorSnapshot | None: ...

    async def write(
        self, path: str, content: str, message: str, token: str | None
    ) -> str: ...

    async def aclose(self) -> None: ...


# ---------------------------------------------------------------------------
# Mirror: push outbox
# ---------------------------------------------------------------------------

@runtime_checkable
class IPushOutbox(Protocol):
    """Per-target FIFO of pending mirror pushes plus last-result status.

    ``pop`` claims the head entry; it stays durable until ``ack``. ``recover``
    returns claimed but unacknowledged entries to the head of their queue.
    """

    def append(self, push: MirrorPush) -> None: ...

    def pop(self, target: str) -> MirrorPush | None: ...

    def ack(self, target: str) -> None: ...

    def recover(self) -> int: ...

    def pending_targets(self) -> list[str]: ...

    def set_status(self, status: MirrorTargetStatus) -> None: ...

    def statuses(self) -> list[MirrorTargetStatus]: ...


# ---------------------------------------------------------------------------
# Mirror: synchronizer as seen by the state machine
# ---------------------------------------------------------------------------

@runtime_checkable
class IMirrorSync(Protocol):
    """Schedules out-of-band mirror pushes."""

    def enqueue_run(self, run: Run, payload: Any | None = None) -> None: ...
