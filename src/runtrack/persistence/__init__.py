"""Pluggable persistence backends behind Protocol interfaces."""

from __future__ import annotations

from runtrack.core.config import AppSettings
from runtrack.persistence.github_mirror import GitHubMirrorClient
from runtrack.persistence.memory_backend import MemoryPushOutbox
from runtrack.persistence.redis_backend import RedisPushOutbox
from runtrack.persistence.sql_store import SQLRunStore


def create_persistence(settings: AppSettings | None = None):
    """Create wired-up persistence backends from application settings.

    Returns:
        Tuple of (run_store, push_outbox, mirror_client).
    """
    if settings is None:
        settings = AppSettings()

    run_store = SQLRunStore.from_config(settings.database)

    if settings.mirror.outbox_backend == "redis":
        outbox = RedisPushOutbox(
            host=settings.redis.host,
            port=settings.redis.port,
            db=settings.redis.db,
            key_prefix=settings.redis.key_prefix,
        )
    else:
        outbox = MemoryPushOutbox()

    mirror_client = GitHubMirrorClient.from_config(settings.mirror)

    return run_store, outbox, mirror_client
