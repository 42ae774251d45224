"""
Persistence status.

Mutating routes answer as soon as the local change is applied; saving runs in
the background. These endpoints report what is still queued and retry it.
"""

from fastapi import APIRouter, Depends

from simplescrum.api import schemas
from simplescrum.api.dependencies import get_engine
from simplescrum.services.engine import ScrumEngine

router = APIRouter(prefix="/sync", tags=["Persistence"])


def _sync_out(engine: ScrumEngine) -> schemas.SyncOut:
    pending = engine.pending_operations
    return schemas.SyncOut(
        synced=not pending,
        pending=[schemas.PendingOperationOut.model_validate(op) for op in pending],
    )


@router.get("", response_model=schemas.SyncOut)
async def get_sync_status(engine: ScrumEngine = Depends(get_engine)):
    await engine.settle()
    return _sync_out(engine)


@router.post("/retry", response_model=schemas.SyncOut)
async def retry_sync(engine: ScrumEngine = Depends(get_engine)):
    await engine.retry_persistence()
    return _sync_out(engine)
