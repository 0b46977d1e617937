"""MirrorSynchronizer: propagate canonical run state to the versioned mirror.

Each push runs the fetch -> serialize -> conditional write cycle against one
mirror target. Pushes are queued in an outbox and drained by a single
consumer task per target, so at most one cycle per target is in flight;
different targets push concurrently. A stale token re-runs the whole cycle
with backoff. Any other failure is logged, recorded in the target status,
and dropped. An outbox entry is acknowledged only after its push has been
attempted, so entries claimed by a crashed process are recovered on start.
The canonical store is never touched.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import random
from typing import Any, AsyncIterator

from runtrack.core.config import MirrorConfig
from runtrack.core.exceptions import MirrorConflictError, MirrorError, OutboxError, RuntrackError
from runtrack.core.protocols import IMirrorClient, IPushOutbox, IRunStore
from runtrack.core.types import MirrorTarget
from runtrack.models.mirror import MirrorPush, MirrorTargetStatus
from runtrack.models.run import Run

logger = logging.getLogger(__name__)


def serialize_snapshot(payload: Any) -> str:
    """Canonical JSON form written to the mirror."""
    return json.dumps(payload, indent=2, ensure_ascii=False) + "\n"


class MirrorSynchronizer:
    """Queues and performs mirror pushes out-of-band from request handling."""

    def __init__(
        self,
        client: IMirrorClient,
        outbox: IPushOutbox,
        store: IRunStore | None = None,
        *,
        enabled: bool = True,
        collection_path: str = "runs.json",
        run_path_template: str = "runs/{run_number}.json",
        max_attempts: int = 3,
        backoff_base_s: float = 0.5,
        reconcile_interval_s: float = 300.0,
    ) -> None:
        self._client = client
        self._outbox = outbox
        self._store = store
        self._enabled = enabled
        self._collection_path = collection_path
        self._run_path_template = run_path_template
        self._max_attempts = max(1, max_attempts)
        self._backoff_base_s = backoff_base_s
        self._reconcile_interval_s = reconcile_interval_s

        self._loop: asyncio.AbstractEventLoop | None = None
        self._consumers: dict[MirrorTarget, asyncio.Task[None]] = {}
        self._locks: dict[MirrorTarget, asyncio.Lock] = {}
        self._lock_users: dict[MirrorTarget, int] = {}
        self._reconcile_task: asyncio.Task[None] | None = None

    @classmethod
    def from_config(
        cls,
        config: MirrorConfig,
        client: IMirrorClient,
        outbox: IPushOutbox,
        store: IRunStore | None = None,
    ) -> MirrorSynchronizer:
        return cls(
            client,
            outbox,
            store,
            enabled=config.enabled,
            collection_path=config.collection_path,
            run_path_template=config.run_path_template,
            max_attempts=config.max_attempts,
            backoff_base_s=config.backoff_base_s,
            reconcile_interval_s=config.reconcile_interval_s,
        )

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def collection_path(self) -> MirrorTarget:
        return self._collection_path

    def target_for(self, run: Run) -> MirrorTarget:
        return self._run_path_template.format(run_number=run.run_number)

    # ---- lifecycle ----

    def start(self) -> None:
        """Bind to the running loop, resume leftover pushes, start reconciling."""
        if not self._enabled:
            logger.info("Mirror synchronization disabled")
            return
        self._loop = asyncio.get_running_loop()
        recovered = self._outbox.recover()
        if recovered:
            logger.info("Recovered %d unacknowledged mirror pushes", recovered)
        for target in self._outbox.pending_targets():
            self._ensure_consumer(target)
        if self._store is not None and self._reconcile_interval_s > 0:
            self._reconcile_task = self._loop.create_task(
                self._reconcile_forever(), name="mirror-reconcile"
            )
        logger.info("Mirror synchronizer started")

    async def stop(self) -> None:
        """Stop reconciling, let in-flight pushes finish, close the client."""
        if self._reconcile_task is not None:
            self._reconcile_task.cancel()
            try:
                await self._reconcile_task
            except asyncio.CancelledError:
                pass
            self._reconcile_task = None
        await self.wait_idle()
        self._loop = None
        await self._client.aclose()

    async def wait_idle(self) -> None:
        """Wait until every consumer has drained its target."""
        while True:
            pending = [t for t in self._consumers.values() if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    # ---- scheduling ----

    def enqueue(self, target: MirrorTarget, payload: Any, message: str) -> None:
        """Queue a push. Safe to call from any thread.

        Without a started loop the push stays in the outbox until ``start()``.
        """
        if not self._enabled:
            return
        try:
            self._outbox.append(MirrorPush(target=target, message=message, payload=payload))
        except OutboxError:
            logger.exception("Cannot queue push to %s; push dropped", target)
            return
        loop = self._loop
        if loop is None or loop.is_closed():
            logger.debug("Push to %s queued; synchronizer not running", target)
            return
        loop.call_soon_threadsafe(self._ensure_consumer, target)

    def enqueue_run(self, run: Run, payload: Any | None = None) -> None:
        """Queue a push of one run's snapshot to that run's own target."""
        if payload is None:
            payload = run.model_dump(mode="json")
        self.enqueue(
            self.target_for(run),
            payload,
            f"Update run {run.run_number} ({run.state}) via dashboard",
        )

    def _ensure_consumer(self, target: MirrorTarget) -> None:
        task = self._consumers.get(target)
        if task is not None and not task.done():
            return
        assert self._loop is not None
        task = self._loop.create_task(self._drain(target), name=f"mirror-push:{target}")
        task.add_done_callback(lambda t: self._forget(target, t))
        self._consumers[target] = task

    def _forget(self, target: MirrorTarget, task: asyncio.Task[None]) -> None:
        if self._consumers.get(target) is task:
            del self._consumers[target]

    async def _drain(self, target: MirrorTarget) -> None:
        while True:
            try:
                push = self._outbox.pop(target)
            except OutboxError:
                logger.exception("Cannot read outbox for %s", target)
                return
            if push is None:
                return
            await self.push(push.target, push.payload, push.message)
            try:
                self._outbox.ack(target)
            except OutboxError:
                logger.exception("Cannot acknowledge push to %s", target)

    # ---- protocol ----

    @contextlib.asynccontextmanager
    async def _target_lock(self, target: MirrorTarget) -> AsyncIterator[None]:
        """Hold the per-target lock; it is discarded once nobody uses it."""
        lock = self._locks.get(target)
        if lock is None:
            lock = self._locks[target] = asyncio.Lock()
        self._lock_users[target] = self._lock_users.get(target, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[target] -= 1
            if not self._lock_users[target]:
                del self._lock_users[target]
                del self._locks[target]

    def _backoff(self, attempt: int) -> float:
        delay = self._backoff_base_s * (2 ** (attempt - 1))
        return delay * (0.5 + random.random())  # noqa: S311

    async def push(self, target: MirrorTarget, payload: Any, message: str) -> bool:
        """Run one push to ``target``, retrying stale-token conflicts.

        Returns True once the mirror holds the payload, False when the push
        was dropped. Never raises for a failed push.
        """
        async with self._target_lock(target):
            for attempt in range(1, self._max_attempts + 1):
                try:
                    await self._push_once(target, payload, message)
                except MirrorConflictError as exc:
                    if attempt == self._max_attempts:
                        logger.warning(
                            "Mirror push to %s dropped after %d conflicts", target, attempt,
                        )
                        self._record(target, "failed", attempt, str(exc))
                        return False
                    delay = self._backoff(attempt)
                    logger.info(
                        "Mirror conflict on %s (attempt %d/%d), retrying in %.2fs",
                        target, attempt, self._max_attempts, delay,
                    )
                    await asyncio.sleep(delay)
                    continue
                except MirrorError as exc:
                    logger.error("Mirror push to %s dropped: %s", target, exc)
                    self._record(target, "failed", attempt, str(exc))
                    return False
                except Exception as exc:
                    logger.exception("Unexpected error pushing to %s; push dropped", target)
                    self._record(target, "failed", attempt, f"{type(exc).__name__}: {exc}")
                    return False
                self._record(target, "ok", attempt, None)
                return True
        return False  # pragma: no cover - loop always returns

    async def _push_once(self, target: MirrorTarget, payload: Any, message: str) -> None:
        snapshot = await self._client.fetch(target)
        content = serialize_snapshot(payload)
        if snapshot is not None and snapshot.content == content:
            logger.debug("Mirror %s already up to date", target)
            return
        token = snapshot.token if snapshot is not None else None
        await self._client.write(target, content, message, token)
        logger.info("Pushed %s to mirror", target)

    def _record(self, target: MirrorTarget, result: str, attempts: int, error: str | None) -> None:
        try:
            self._outbox.set_status(MirrorTargetStatus(
                target=target, last_result=result, attempts=attempts, last_error=error,
            ))
        except OutboxError:
            logger.exception("Cannot record mirror status for %s", target)

    def status(self) -> list[MirrorTargetStatus]:
        return self._outbox.statuses()

    # ---- reconciliation ----

    async def reconcile(self) -> bool:
        """Push the entire current run collection to the collection target."""
        if self._store is None:
            raise RuntrackError("Reconciliation needs a run store")
        runs = await asyncio.to_thread(self._store.list_runs)
        payload = [run.model_dump(mode="json") for run in runs]
        logger.info("Reconciling %d runs to %s", len(runs), self._collection_path)
        return await self.push(
            self._collection_path, payload, f"Reconcile {len(runs)} runs from canonical store",
        )

    async def _reconcile_forever(self) -> None:
        while True:
            await asyncio.sleep(self._reconcile_interval_s)
            try:
                await self.reconcile()
            except Exception:
                logger.exception("Mirror reconciliation failed; retrying next interval")
