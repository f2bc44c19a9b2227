"""System API: health check, scheduler status, cycle logs."""

from fastapi import APIRouter, Depends

from tradecore.api.deps import get_current_caller, get_store
from tradecore.services.position_store import PositionStore

router = APIRouter(prefix="/api/system", tags=["system"])


@router.get("/health")
def health_check():
    return {"status": "ok"}


@router.get("/scheduler", dependencies=[Depends(get_current_caller)])
def scheduler_status():
    """Current scheduler state with job details and the loop lock holder."""
    from tradecore.engine.loop_lock import DatabaseLoopLock
    from tradecore.engine.scheduler import get_scheduler_status

    return {**get_scheduler_status(), "lock": DatabaseLoopLock().status()}


@router.get("/logs", dependencies=[Depends(get_current_caller)])
def cycle_logs(limit: int = 50, store: PositionStore = Depends(get_store)):
    return store.list_cycle_logs(limit=limit)
