"""Shared fixtures: SQLite-backed store, in-memory fakes, sample dates."""

from __future__ import annotations

from datetime import datetime

import pytest

from runtrack.core.config import DatabaseConfig
from runtrack.persistence.sql_store import SQLRunStore
from tests.fakes import MemoryMirrorClient, MemoryPushOutbox, MemoryRunStore, RecordingSync


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'runtrack.db'}"


@pytest.fixture
def sql_store(db_url):
    store = SQLRunStore.from_config(DatabaseConfig(url=db_url))
    store.create_schema()
    yield store
    store.dispose()


@pytest.fixture
def memory_store() -> MemoryRunStore:
    return MemoryRunStore()


@pytest.fixture
def recording_sync() -> RecordingSync:
    return RecordingSync()


@pytest.fixture
def mirror() -> MemoryMirrorClient:
    return MemoryMirrorClient()


@pytest.fixture
def outbox() -> MemoryPushOutbox:
    return MemoryPushOutbox()


@pytest.fixture
def start_date() -> datetime:
    return datetime(2024, 1, 1)
