"""Engine API: one endpoint per trading operation."""

import logging

from fastapi import APIRouter, Depends, Response, status

from tradecore.api.deps import get_current_caller, get_execution_service, get_loop, get_reconciler, get_store
from tradecore.engine.reconciliation import Reconciler
from tradecore.models import BotSettings
from tradecore.schemas.requests import ClosePositionRequest, OpenPositionRequest, ReconcileRequest, RunCycleRequest
from tradecore.schemas.results import (
    CloseResult,
    CycleResult,
    ErrorType,
    OpenResult,
    ReconcileResult,
    RetryResult,
    TradeError,
)
from tradecore.services import risk
from tradecore.services.execution import OrderExecutionService
from tradecore.services.position_store import PositionStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/engine", tags=["engine"], dependencies=[Depends(get_current_caller)])


@router.post("/run-cycle", response_model=CycleResult)
async def run_cycle(body: RunCycleRequest | None = None, loop=Depends(get_loop)):
    """Run one trading cycle now. Returns ``skipped_concurrent`` if one is already running."""
    triggered_by = body.triggered_by if body else "api"
    return await loop.run_cycle(triggered_by=triggered_by)


@router.post("/open-position", response_model=OpenResult)
async def open_position(
    body: OpenPositionRequest,
    response: Response,
    store: PositionStore = Depends(get_store),
    service: OrderExecutionService = Depends(get_execution_service),
):
    venue = store.get_venue(body.venue_id)
    if venue is None:
        response.status_code = status.HTTP_404_NOT_FOUND
        return OpenResult(
            success=False,
            errors=[TradeError(error_type=ErrorType.NOT_FOUND, message=f"Venue {body.venue_id} not found")],
        )

    policy = store.get_settings() or BotSettings()
    profit_target = body.profit_target or risk.profit_target(policy, body.trade_type)
    leverage = body.leverage or risk.leverage(policy, body.trade_type)
    is_paper = policy.is_paper_trading if body.is_paper_trade is None else body.is_paper_trade

    return await service.open_position(
        venue,
        body.symbol,
        body.direction,
        body.trade_type,
        order_size_usd=body.order_size_usd,
        entry_price=body.entry_price,
        profit_target=profit_target,
        leverage=leverage,
        is_paper=is_paper,
        score=body.score,
        reasoning=body.reasoning,
    )


@router.post("/close-position", response_model=CloseResult)
async def close_position(
    body: ClosePositionRequest,
    response: Response,
    service: OrderExecutionService = Depends(get_execution_service),
):
    result = await service.close_position(
        body.position_id,
        exit_price_hint=body.exit_price,
        require_profit=body.require_profit,
    )
    if any(e.error_type == ErrorType.NOT_FOUND for e in result.errors):
        response.status_code = status.HTTP_404_NOT_FOUND
    return result


@router.post("/reconcile", response_model=ReconcileResult)
async def reconcile(body: ReconcileRequest | None = None, reconciler: Reconciler = Depends(get_reconciler)):
    return await reconciler.reconcile(auto_fix=body.auto_fix if body else False)


@router.post("/retry-take-profits", response_model=RetryResult)
async def retry_take_profits(service: OrderExecutionService = Depends(get_execution_service)):
    return await service.retry_failed_take_profits()
