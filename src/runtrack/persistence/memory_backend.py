"""In-memory backends for unit tests: dict-backed fakes."""

from __future__ import annotations

import hashlib
import threading
import uuid
from collections import deque
from datetime import datetime

from runtrack.core.exceptions import (
    MirrorConflictError,
    RunNotFoundError,
    StepNotFoundError,
)
from runtrack.models.mirror import MirrorPush, MirrorSnapshot, MirrorTargetStatus
from runtrack.models.run import (
    STEP_NUMBERS,
    ProcessingStep,
    Run,
    RunDetail,
    StepUpdate,
    WorkflowState,
)


class MemoryRunStore:
    """Dict-backed IRunStore for unit tests."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._runs: dict[int, Run] = {}
        self._steps: dict[tuple[int, int], ProcessingStep] = {}

    def create_run(
        self,
        file_number: int,
        run_start_date: datetime,
        initial_state: WorkflowState = WorkflowState.NOT_YET_STARTED,
        url: str | None = None,
    ) -> Run:
        with self._lock:
            run_number = max(self._runs, default=0) + 1
            run = Run(
                run_number=run_number, file_number=file_number,
                run_start_date=run_start_date, state=initial_state, url=url,
            )
            self._runs[run_number] = run
            self._add_missing_steps(run_number)
            return run

    def get_run(self, run_number: int) -> Run:
        try:
            return self._runs[run_number]
        except KeyError:
            raise RunNotFoundError(run_number) from None

    def list_runs(self) -> list[Run]:
        return sorted(
            self._runs.values(),
            key=lambda r: (r.run_start_date, r.run_number),
            reverse=True,
        )

    def get_run_with_steps(self, run_number: int) -> RunDetail:
        run = self.get_run(run_number)
        steps = [self._steps[(run_number, n)] for n in STEP_NUMBERS if (run_number, n) in self._steps]
        return RunDetail(run=run, steps=steps)

    def update_step(self, run_number: int, step_number: int, fields: StepUpdate) -> ProcessingStep:
        with self._lock:
            key = (run_number, step_number)
            if key not in self._steps:
                raise StepNotFoundError(run_number, step_number)
            self._steps[key] = self._steps[key].model_copy(update=fields.changes())
            return self._steps[key]

    def update_run_state(self, run_number: int, new_state: WorkflowState) -> int:
        with self._lock:
            if run_number not in self._runs:
                return 0
            self._runs[run_number] = self._runs[run_number].model_copy(update={"state": new_state})
            return 1

    def upsert_run(
        self,
        run_number: int,
        file_number: int,
        run_start_date: datetime,
        state: WorkflowState,
        url: str | None = None,
    ) -> None:
        with self._lock:
            existing = self._runs.get(run_number)
            if existing is None:
                self._runs[run_number] = Run(
                    run_number=run_number, file_number=file_number,
                    run_start_date=run_start_date, state=state, url=url,
                )
            else:
                self._runs[run_number] = existing.model_copy(update={"state": state, "url": url})

    def ensure_steps(self, run_number: int) -> int:
        with self._lock:
            return self._add_missing_steps(run_number)

    def _add_missing_steps(self, run_number: int) -> int:
        added = 0
        for n in STEP_NUMBERS:
            if (run_number, n) not in self._steps:
                self._steps[(run_number, n)] = ProcessingStep(
                    id=str(uuid.uuid4()), run_number=run_number, step_number=n,
                )
                added += 1
        return added


class MemoryPushOutbox:
    """Deque-backed IPushOutbox for unit tests and single-process deployments."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._queues: dict[str, deque[MirrorPush]] = {}
        self._claimed: dict[str, deque[MirrorPush]] = {}
        self._status: dict[str, MirrorTargetStatus] = {}

    def append(self, push: MirrorPush) -> None:
        with self._lock:
            self._queues.setdefault(push.target, deque()).append(push)

    def pop(self, target: str) -> MirrorPush | None:
        with self._lock:
            queue = self._queues.get(target)
            if not queue:
                return None
            push = queue.popleft()
            self._claimed.setdefault(target, deque()).append(push)
            return push

    def ack(self, target: str) -> None:
        with self._lock:
            claimed = self._claimed.get(target)
            if claimed:
                claimed.popleft()

    def recover(self) -> int:
        recovered = 0
        with self._lock:
            for target, claimed in self._claimed.items():
                queue = self._queues.setdefault(target, deque())
                while claimed:
                    queue.appendleft(claimed.pop())
                    recovered += 1
        return recovered

    def pending_targets(self) -> list[str]:
        with self._lock:
            return sorted(t for t, q in self._queues.items() if q)

    def set_status(self, status: MirrorTargetStatus) -> None:
        with self._lock:
            self._status[status.target] = status

    def statuses(self) -> list[MirrorTargetStatus]:
        with self._lock:
            return [self._status[k] for k in sorted(self._status)]


class MemoryMirrorClient:
    """Dict-backed IMirrorClient with optimistic concurrency on a token."""

    def __init__(self) -> None:
        self._files: dict[str, MirrorSnapshot] = {}
        self._version = 0
        self.writes: list[tuple[str, str]] = []  # (path, message) of accepted writes

    def seed(self, path: str, content: str) -> str:
        """Place a file directly, as an external edit would."""
        return self._store(path, content)

    def content(self, path: str) -> str | None:
        snapshot = self._files.get(path)
        return snapshot.content if snapshot else None

    async def fetch(self, path: str) -> MirrorSnapshot | None:
        return self._files.get(path)

    async def write(self, path: str, content: str, message: str, token: str | None) -> str:
        current = self._files.get(path)
        current_token = current.token if current else None
        if token != current_token:
            raise MirrorConflictError(path)
        self.writes.append((path, message))
        return self._store(path, content)

    async def aclose(self) -> None:
        return None

    def _store(self, path: str, content: str) -> str:
        self._version += 1
        token = hashlib.sha1(f"{self._version}:{content}".encode()).hexdigest()
        self._files[path] = MirrorSnapshot(path=path, content=content, token=token)
        return token
