"""Request-scoped accessors for components built in the lifespan."""

from __future__ import annotations

from fastapi import Request

from runtrack.core.config import AppSettings
from runtrack.core.protocols import IRunStore
from runtrack.sync.synchronizer import MirrorSynchronizer
from runtrack.workflow.state_machine import WorkflowStateMachine


def get_settings(request: Request) -> AppSettings:
    return request.app.state.settings


def get_store(request: Request) -> IRunStore:
    return request.app.state.store


def get_machine(request: Request) -> WorkflowStateMachine:
    return request.app.state.machine


def get_synchronizer(request: Request) -> MirrorSynchronizer:
    return request.app.state.synchronizer
