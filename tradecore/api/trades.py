"""Trade history API (read-only)."""

from fastapi import APIRouter, Depends

from tradecore.api.deps import get_current_caller, get_store
from tradecore.services.position_store import PositionStore

router = APIRouter(prefix="/api/trades", tags=["trades"], dependencies=[Depends(get_current_caller)])


@router.get("")
def list_trades(
    status: str | None = None,
    limit: int = 100,
    store: PositionStore = Depends(get_store),
):
    return store.list_trades(limit=limit, status=status)
