"""Exchange gateway capability set and the paper-fill simulator all venues share."""

import logging
import random
import time
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from tradecore.utils.constants import PAPER_SLIPPAGE_MAX, PAPER_SLIPPAGE_MIN

logger = logging.getLogger(__name__)


@dataclass
class OrderResult:
    success: bool
    order_id: str | None = None
    error: str | None = None
    error_type: str | None = None
    filled_price: float | None = None
    filled_amount: float | None = None
    order_status: str | None = None  # "new", "filled", "cancelled", "not_found"
    raw_response: str | None = None


@dataclass(frozen=True)
class Credentials:
    api_key: str
    api_secret: str
    passphrase: str | None = None


@dataclass
class VenuePosition:
    """A futures position as the venue reports it, in base asset units."""

    symbol: str  # "BTC/USDT"
    side: str  # "long" or "short"
    quantity: float
    entry_price: float | None = None


@runtime_checkable
class ExchangeGateway(Protocol):
    name: str

    def round_quantity(self, symbol: str, quantity: float, trade_type: str = "spot") -> float: ...

    def round_price(self, price: float, rounding: str | None = None) -> float: ...

    async def place_limit_order(
        self,
        symbol: str,
        side: str,
        quantity: float,
        price: float,
        trade_type: str = "spot",
        reduce_only: bool = False,
        paper: bool = False,
    ) -> OrderResult: ...

    async def place_market_order(
        self,
        symbol: str,
        side: str,
        quantity: float,
        trade_type: str = "spot",
        reduce_only: bool = False,
        reference_price: float | None = None,
        paper: bool = False,
    ) -> OrderResult: ...

    async def cancel_order(
        self, symbol: str, order_id: str, trade_type: str = "spot", paper: bool = False
    ) -> OrderResult: ...

    async def get_balance(self, asset: str, trade_type: str = "spot", paper: bool = False) -> float:
        """Holdings of ``asset`` including amounts locked in open orders. Raises GatewayError."""
        ...

    async def get_open_positions(self, paper: bool = False) -> list[VenuePosition]: ...

    async def close(self) -> None: ...


class PaperSimulator:
    """Simulated fills for ``paper=True`` calls.

    Slippage is drawn uniformly from [PAPER_SLIPPAGE_MIN, PAPER_SLIPPAGE_MAX]
    and always goes against the trader: buys fill higher, sells fill lower.
    Reduce-only limit orders (take-profits) rest instead of filling.
    """

    def __init__(self, venue: str, rng: random.Random | None = None, balance: float = 0.0):
        self.venue = venue
        self.rng = rng or random.Random()
        self.balance = balance

    def _order_id(self, kind: str) -> str:
        return f"paper-{self.venue}-{kind}-{int(time.time() * 1000)}-{self.rng.randrange(16**6):06x}"

    def slipped_price(self, side: str, price: float) -> float:
        slippage = self.rng.uniform(PAPER_SLIPPAGE_MIN, PAPER_SLIPPAGE_MAX)
        if side == "buy":
            return price * (1 + slippage)
        return price * (1 - slippage)

    def limit_order(self, symbol: str, side: str, quantity: float, price: float, reduce_only: bool) -> OrderResult:
        if reduce_only:
            order_id = self._order_id("tp")
            logger.info(f"[{self.venue}] PAPER limit {side} {quantity} {symbol} @ {price} resting ({order_id})")
            return OrderResult(success=True, order_id=order_id, order_status="new")
        return self._fill("limit", symbol, side, quantity, price)

    def market_order(self, symbol: str, side: str, quantity: float, reference_price: float | None) -> OrderResult:
        if not reference_price or reference_price <= 0:
            return OrderResult(
                success=False,
                error="Paper market order requires a reference price",
                error_type="PRICE_UNAVAILABLE",
            )
        return self._fill("market", symbol, side, quantity, reference_price)

    def _fill(self, kind: str, symbol: str, side: str, quantity: float, price: float) -> OrderResult:
        if quantity <= 0:
            return OrderResult(success=False, error="Quantity rounds to zero", error_type="MIN_SIZE_VIOLATION")
        filled = self.slipped_price(side, price)
        order_id = self._order_id(kind)
        logger.info(f"[{self.venue}] PAPER {kind} {side} {quantity} {symbol} filled @ {filled:.6f} ({order_id})")
        return OrderResult(
            success=True,
            order_id=order_id,
            filled_price=filled,
            filled_amount=quantity,
            order_status="filled",
        )

    def cancel(self, order_id: str) -> OrderResult:
        logger.info(f"[{self.venue}] PAPER cancel {order_id}")
        return OrderResult(success=True, order_id=order_id, order_status="cancelled")

    def get_balance(self, asset: str) -> float:
        return self.balance if asset.upper() in ("USDT", "USDC", "USD") else 0.0


def order_failure(venue: str, action: str, exc: Exception) -> OrderResult:
    """Turn a gateway exception into a failed OrderResult."""
    error_type = getattr(exc, "error_type", None) or "GATEWAY_ERROR"
    logger.error(f"[{venue}] {action} failed: {exc}")
    return OrderResult(success=False, error=str(exc), error_type=error_type)
