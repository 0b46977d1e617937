"""Fixtures for API tests: app over SQLite with the in-memory mirror."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from runtrack.api.app import create_app
from runtrack.core.config import AppSettings, AuthConfig, MirrorConfig

PASSWORD = "hunter2"


@pytest.fixture
def settings() -> AppSettings:
    return AppSettings(
        mirror=MirrorConfig(enabled=True, reconcile_interval_s=0, backoff_base_s=0),
        auth=AuthConfig(admin_password=PASSWORD, session_secret="test-secret"),
    )


@pytest.fixture
def client(settings, sql_store, outbox, mirror):
    app = create_app(settings, store=sql_store, outbox=outbox, mirror_client=mirror)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def admin(client):
    resp = client.post("/api/login", json={"password": PASSWORD})
    assert resp.status_code == 200
    return client
