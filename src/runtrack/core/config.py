"""Application configuration using pydantic-settings with grouped env prefixes.

Settings are frozen: one ``AppSettings`` value is built at process start and
handed to each component.
"""

from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings


class DatabaseConfig(BaseSettings):
    """Canonical relational store configuration."""

    model_config = {"env_prefix": "RUNTRACK_DB_", "frozen": True}

    url: str = "sqlite:///./runtrack.db"  # postgresql+psycopg://... in prod
    pool_size: int = 5
    echo: bool = False


class RedisConfig(BaseSettings):
    """Redis configuration for the durable mirror push outbox."""

    model_config = {"env_prefix": "RUNTRACK_REDIS_", "frozen": True}

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    key_prefix: str = "runtrack"


class MirrorConfig(BaseSettings):
    """GitHub-hosted JSON mirror configuration."""

    model_config = {"env_prefix": "RUNTRACK_MIRROR_", "frozen": True}

    enabled: bool = False
    api_url: str = "https://api.github.com"
    owner: str = ""
    repo: str = ""
    token: str = ""
    branch: str | None = None  # repository default branch when unset
    collection_path: str = "runs.json"
    run_path_template: str = "runs/{run_number}.json"
    timeout: float = 5.0
    max_attempts: int = 3
    backoff_base_s: float = 0.5
    reconcile_interval_s: float = 300.0
    outbox_backend: Literal["memory", "redis"] = "memory"


class AuthConfig(BaseSettings):
    """Dashboard admin authorization."""

    model_config = {"env_prefix": "RUNTRACK_AUTH_", "frozen": True}

    admin_password: str = "secret123"
    session_secret: str = "change-me"
    session_max_age_s: int = 12 * 3600
    cookie_secure: bool = False


class ImportConfig(BaseSettings):
    """Legacy record import options."""

    model_config = {"env_prefix": "RUNTRACK_IMPORT_", "frozen": True}

    date_format: str = "%Y-%m-%d"
    strict_states: bool = False  # count unknown statuses as skipped


class WorkflowConfig(BaseSettings):
    """Workflow state machine options."""

    model_config = {"env_prefix": "RUNTRACK_WORKFLOW_", "frozen": True}

    strict_transitions: bool = False


class AppSettings(BaseSettings):
    """Root application settings aggregating all sub-configs."""

    model_config = {"env_prefix": "RUNTRACK_", "frozen": True}

    environment: Literal["dev", "uat", "prod"] = "dev"
    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "text"

    database: DatabaseConfig = DatabaseConfig()
    redis: RedisConfig = RedisConfig()
    mirror: MirrorConfig = MirrorConfig()
    auth: AuthConfig = AuthConfig()
    importer: ImportConfig = ImportConfig()
    workflow: WorkflowConfig = WorkflowConfig()
