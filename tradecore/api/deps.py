"""Shared API dependencies."""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from tradecore.engine.reconciliation import Reconciler
from tradecore.services.auth import decode_access_token
from tradecore.services.execution import OrderExecutionService
from tradecore.services.market_data import PublicTickerPriceSource
from tradecore.services.position_store import PositionStore

bearer_scheme = HTTPBearer()


def get_current_caller(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> str:
    """Validate the service token and return its subject."""
    subject = decode_access_token(credentials.credentials)
    if subject is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    return subject


def get_store() -> PositionStore:
    return PositionStore()


async def get_execution_service(store: PositionStore = Depends(get_store)):
    """Execution service for one request; its venue connections close afterwards."""
    price_source = PublicTickerPriceSource()
    service = OrderExecutionService(store, price_source)
    try:
        yield service
    finally:
        await service.close()
        await price_source.close()


def get_reconciler(store: PositionStore = Depends(get_store)) -> Reconciler:
    return Reconciler(store)


def get_loop():
    from tradecore.engine.scheduler import get_trading_loop

    return get_trading_loop()
