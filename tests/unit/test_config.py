"""Tests for configuration defaults and env overrides."""

from __future__ import annotations

import pydantic
import pytest

from runtrack.core.config import AppSettings, DatabaseConfig, MirrorConfig


def test_default_settings():
    settings = AppSettings()
    assert settings.environment == "dev"
    assert settings.mirror.enabled is False
    assert settings.workflow.strict_transitions is False


def test_mirror_config_defaults():
    config = MirrorConfig()
    assert config.collection_path == "runs.json"
    assert config.run_path_template.format(run_number=7) == "runs/7.json"
    assert config.timeout == 5.0
    assert config.max_attempts == 3


def test_env_override(monkeypatch):
    monkeypatch.setenv("RUNTRACK_DB_URL", "postgresql+psycopg://u:p@db:5432/runs")
    assert DatabaseConfig().url == "postgresql+psycopg://u:p@db:5432/runs"


def test_settings_are_immutable():
    settings = AppSettings()
    with pytest.raises(pydantic.ValidationError):
        settings.log_level = "DEBUG"
