"""Mirror synchronization status and manual reconciliation."""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, status

from runtrack.api.auth import require_admin
from runtrack.api.deps import get_synchronizer
from runtrack.models.mirror import MirrorTargetStatus
from runtrack.sync.synchronizer import MirrorSynchronizer

router = APIRouter(tags=["mirror"])


@router.get("/mirror/status")
def mirror_status(
    synchronizer: MirrorSynchronizer = Depends(get_synchronizer),
) -> list[MirrorTargetStatus]:
    return synchronizer.status()


@router.post(
    "/mirror/reconcile",
    status_code=status.HTTP_202_ACCEPTED,
    dependencies=[Depends(require_admin)],
)
async def reconcile(
    background_tasks: BackgroundTasks,
    synchronizer: MirrorSynchronizer = Depends(get_synchronizer),
) -> dict[str, bool]:
    """Schedule a full-collection push; the result shows up in /mirror/status."""
    if not synchronizer.enabled:
        return {"scheduled": False}
    background_tasks.add_task(synchronizer.reconcile)
    return {"scheduled": True}
