"""Mirror snapshot, outbox entry, and push status models."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MirrorSnapshot(BaseModel):
    """Content of a mirror file as observed, with its opaque token."""

    path: str
    content: str
    token: str


class MirrorPush(BaseModel):
    """A pending push of a snapshot to one mirror target."""

    target: str
    message: str
    payload: Any
    enqueued_at: datetime = Field(default_factory=_utcnow)


class MirrorTargetStatus(BaseModel):
    """Outcome of the most recent push to a mirror target."""

    target: str
    last_result: Literal["ok", "failed"]
    attempts: int = 0
    last_error: Optional[str] = None
    updated_at: datetime = Field(default_factory=_utcnow)
