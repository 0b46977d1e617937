"""Integration test fixtures: live PostgreSQL."""

from __future__ import annotations

import os

import pytest
import sqlalchemy as sa

from runtrack.core.config import DatabaseConfig
from runtrack.persistence.sql_store import SQLRunStore, metadata

POSTGRES_URL = os.environ.get("RUNTRACK_TEST_PG_URL", "")


def _postgres_available() -> bool:
    """Check if PostgreSQL is reachable."""
    if not POSTGRES_URL:
        return False
    try:
        engine = sa.create_engine(POSTGRES_URL)
        with engine.connect() as conn:
            conn.execute(sa.text("SELECT 1"))
        engine.dispose()
        return True
    except Exception:
        return False


skip_no_postgres = pytest.mark.skipif(
    not _postgres_available(),
    reason="PostgreSQL not available (set RUNTRACK_TEST_PG_URL)",
)


@pytest.fixture
def pg_store():
    """Fresh schema on the test database, dropped afterwards."""
    store = SQLRunStore.from_config(DatabaseConfig(url=POSTGRES_URL))
    metadata.drop_all(store.engine)
    store.create_schema()
    yield store
    metadata.drop_all(store.engine)
    store.dispose()
