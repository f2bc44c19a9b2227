"""Positions API (read-only)."""

from fastapi import APIRouter, Depends, HTTPException

from tradecore.api.deps import get_current_caller, get_store
from tradecore.models import PositionStatus
from tradecore.services.position_store import PositionStore

router = APIRouter(prefix="/api/positions", tags=["positions"], dependencies=[Depends(get_current_caller)])


@router.get("")
def list_positions(
    status: str | None = None,
    venue_id: int | None = None,
    limit: int = 100,
    store: PositionStore = Depends(get_store),
):
    """Active positions by default; ``status=all`` includes closed/orphaned/stuck."""
    if status == "all":
        statuses = None
    elif status:
        statuses = (status,)
    else:
        statuses = PositionStatus.ACTIVE
    return store.list_positions(statuses, venue_id=venue_id, limit=limit)


@router.get("/{position_id}")
def get_position(position_id: int, store: PositionStore = Depends(get_store)):
    position = store.get_position(position_id)
    if position is None:
        raise HTTPException(status_code=404, detail="Position not found")
    return position
