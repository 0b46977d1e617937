"""FastAPI application with lifespan and router mounting."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from runtrack.api.routes import health, mirror, runs, session, steps
from runtrack.core.config import AppSettings
from runtrack.core.exceptions import (
    NotFoundError,
    RuntrackError,
    StoreError,
    UnauthorizedError,
    ValidationError,
)
from runtrack.core.logging import setup_logging
from runtrack.core.protocols import IMirrorClient, IPushOutbox, IRunStore
from runtrack.persistence import create_persistence
from runtrack.sync.synchronizer import MirrorSynchronizer
from runtrack.workflow.state_machine import WorkflowStateMachine

logger = logging.getLogger(__name__)

_ERROR_STATUS: list[tuple[type[RuntrackError], int]] = [
    (UnauthorizedError, 401),
    (NotFoundError, 404),
    (ValidationError, 422),
    (StoreError, 503),
]


def _error_handler(status_code: int):
    async def handler(request: Request, exc: Exception) -> JSONResponse:
        if status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})
    return handler


def create_app(
    settings: AppSettings | None = None,
    *,
    store: IRunStore | None = None,
    outbox: IPushOutbox | None = None,
    mirror_client: IMirrorClient | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Backends not passed in are built from ``settings`` at startup.
    """
    settings = settings or AppSettings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Initialize and tear down application resources."""
        setup_logging(settings.log_level, settings.log_format)
        run_store, push_outbox, client = store, outbox, mirror_client
        if run_store is None or push_outbox is None or client is None:
            built = create_persistence(settings)
            run_store = run_store or built[0]
            push_outbox = push_outbox or built[1]
            client = client or built[2]
        if hasattr(run_store, "create_schema"):
            run_store.create_schema()

        synchronizer = MirrorSynchronizer.from_config(
            settings.mirror, client, push_outbox, run_store,
        )
        app.state.settings = settings
        app.state.store = run_store
        app.state.synchronizer = synchronizer
        app.state.machine = WorkflowStateMachine(
            store=run_store,
            sync=synchronizer,
            strict_transitions=settings.workflow.strict_transitions,
        )
        synchronizer.start()
        logger.info("runtrack started (environment=%s)", settings.environment)
        yield
        await synchronizer.stop()
        if hasattr(run_store, "dispose"):
            run_store.dispose()

    app = FastAPI(
        title="runtrack Run Workflow Dashboard",
        version="0.1.0",
        lifespan=lifespan,
    )
    for exc_type, status_code in _ERROR_STATUS:
        app.add_exception_handler(exc_type, _error_handler(status_code))

    app.include_router(health.router)
    app.include_router(session.router, prefix="/api")
    app.include_router(runs.router, prefix="/api")
    app.include_router(steps.router, prefix="/api")
    app.include_router(mirror.router, prefix="/api")
    return app
