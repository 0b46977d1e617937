"""Shared test doubles: re-export memory backends."""

from __future__ import annotations

from runtrack.persistence.memory_backend import (
    MemoryMirrorClient,
    MemoryPushOutbox,
    MemoryRunStore,
)

__all__ = ["MemoryMirrorClient", "MemoryPushOutbox", "MemoryRunStore", "RecordingSync"]


class RecordingSync:
    """IMirrorSync that records enqueued runs instead of pushing them."""

    def __init__(self) -> None:
        self.enqueued: list[tuple[int, object]] = []

    def enqueue_run(self, run, payload=None) -> None:
        self.enqueued.append((run.run_number, payload))
