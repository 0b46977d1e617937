"""Redis push outbox implementing IPushOutbox."""

from __future__ import annotations

import redis

from runtrack.core.exceptions import OutboxError
from runtrack.models.mirror import MirrorPush, MirrorTargetStatus


class RedisPushOutbox:
    """Production IPushOutbox backed by Redis lists, one per mirror target.

    Keys:
        ``{prefix}:mirror:outbox:{target}``      list of pending pushes (FIFO)
        ``{prefix}:mirror:processing:{target}``  claimed, not yet acknowledged
        ``{prefix}:mirror:targets``              set of targets with entries in either list
        ``{prefix}:mirror:status``               hash target -> last status JSON
    """

    def __init__(self, host: str = "localhost", port: int = 6379, db: int = 0,
                 key_prefix: str = "runtrack") -> None:
        self._prefix = key_prefix
        self._client = redis.Redis(
            host=host, port=port, db=db, decode_responses=True,
        )

    def _queue_key(self, target: str) -> str:
        return f"{self._prefix}:mirror:outbox:{target}"

    def _processing_key(self, target: str) -> str:
        return f"{self._prefix}:mirror:processing:{target}"

    @property
    def _targets_key(self) -> str:
        return f"{self._prefix}:mirror:targets"

    @property
    def _status_key(self) -> str:
        return f"{self._prefix}:mirror:status"

    def append(self, push: MirrorPush) -> None:
        try:
            pipe = self._client.pipeline()
            pipe.rpush(self._queue_key(push.target), push.model_dump_json())
            pipe.sadd(self._targets_key, push.target)
            pipe.execute()
        except Exception as exc:
            raise OutboxError(f"Redis RPUSH failed for target={push.target!r}: {exc}") from exc

    def pop(self, target: str) -> MirrorPush | None:
        queue, processing = self._queue_key(target), self._processing_key(target)
        try:
            raw = self._client.lmove(queue, processing, "LEFT", "RIGHT")
            if raw is None:
                self._client.transaction(
                    lambda pipe: self._forget_if_empty(pipe, target), queue, processing,
                )
                return None
        except Exception as exc:
            raise OutboxError(f"Redis LMOVE failed for target={target!r}: {exc}") from exc
        return MirrorPush.model_validate_json(raw)

    def _forget_if_empty(self, pipe, target: str) -> None:
        # WATCHed: an append racing this check aborts and retries the transaction
        empty = (
            pipe.llen(self._queue_key(target)) == 0
            and pipe.llen(self._processing_key(target)) == 0
        )
        pipe.multi()
        if empty:
            pipe.srem(self._targets_key, target)

    def ack(self, target: str) -> None:
        try:
            self._client.lpop(self._processing_key(target))
        except Exception as exc:
            raise OutboxError(f"Redis LPOP failed for target={target!r}: {exc}") from exc

    def recover(self) -> int:
        recovered = 0
        try:
            for target in self._client.smembers(self._targets_key):
                while self._client.lmove(
                    self._processing_key(target), self._queue_key(target), "RIGHT", "LEFT",
                ) is not None:
                    recovered += 1
        except Exception as exc:
            raise OutboxError(f"Redis outbox recovery failed: {exc}") from exc
        return recovered

    def pending_targets(self) -> list[str]:
        try:
            targets = sorted(self._client.smembers(self._targets_key))
            return [t for t in targets if self._client.llen(self._queue_key(t)) > 0]
        except Exception as exc:
            raise OutboxError(f"Redis pending target scan failed: {exc}") from exc

    def set_status(self, status: MirrorTargetStatus) -> None:
        try:
            self._client.hset(self._status_key, status.target, status.model_dump_json())
        except Exception as exc:
            raise OutboxError(f"Redis HSET failed for target={status.target!r}: {exc}") from exc

    def statuses(self) -> list[MirrorTargetStatus]:
        try:
            raw = self._client.hgetall(self._status_key)
        except Exception as exc:
            raise OutboxError(f"Redis HGETALL failed: {exc}") from exc
        return [MirrorTargetStatus.model_validate_json(raw[k]) for k in sorted(raw)]
