"""Fee, PnL and take-profit price algebra.

Pure computation over floats. Fees are
charged on notional (order size in quote currency); the take-profit price is
the exact inverse of ``net_pnl`` so that closing at it realizes the target.
"""

from dataclasses import dataclass

from tradecore.utils.constants import FUNDING_FEE_RATE, FUTURES_FEE_RATE, SPOT_FEE_RATE


@dataclass(frozen=True)
class FeeBreakdown:
    entry_fee: float
    exit_fee: float
    funding_fee: float

    @property
    def total(self) -> float:
        return self.entry_fee + self.exit_fee + self.funding_fee


@dataclass(frozen=True)
class PnL:
    gross: float
    fees: FeeBreakdown

    @property
    def net(self) -> float:
        return self.gross - self.fees.total


def fee_rate(trade_type: str) -> float:
    return FUTURES_FEE_RATE if trade_type == "futures" else SPOT_FEE_RATE


def estimate_fees(order_size_usd: float, trade_type: str, exit_notional: float | None = None) -> FeeBreakdown:
    """Entry + exit fee on notional, plus a funding allowance for futures.

    ``exit_notional`` is the size actually being closed; it defaults to the full order size.
    """
    rate = fee_rate(trade_type)
    funding = order_size_usd * FUNDING_FEE_RATE if trade_type == "futures" else 0.0
    if exit_notional is None:
        exit_notional = order_size_usd
    return FeeBreakdown(
        entry_fee=order_size_usd * rate,
        exit_fee=exit_notional * rate,
        funding_fee=funding,
    )


def gross_pnl(
    direction: str,
    entry_price: float,
    exit_price: float,
    quantity: float,
    leverage: float = 1.0,
) -> float:
    move = exit_price - entry_price if direction == "long" else entry_price - exit_price
    return move * quantity * (leverage or 1.0)


def compute_pnl(
    direction: str,
    trade_type: str,
    entry_price: float,
    exit_price: float,
    quantity: float,
    order_size_usd: float,
    leverage: float = 1.0,
    entry_fee: float | None = None,
) -> PnL:
    """Net PnL of closing at ``exit_price``, all fees included.

    ``entry_fee`` overrides the estimated entry fee when the recorded one is known.
    The exit fee is charged on ``quantity`` at entry valuation, so a partial exit
    pays a proportional fee.
    """
    fees = estimate_fees(order_size_usd, trade_type, exit_notional=quantity * entry_price)
    if entry_fee is not None:
        fees = FeeBreakdown(entry_fee=entry_fee, exit_fee=fees.exit_fee, funding_fee=fees.funding_fee)
    return PnL(
        gross=gross_pnl(direction, entry_price, exit_price, quantity, leverage),
        fees=fees,
    )


def take_profit_price(
    entry_price: float,
    direction: str,
    profit_target: float,
    order_size_usd: float,
    quantity: float,
    leverage: float,
    trade_type: str,
) -> float:
    """Exit price at which net PnL equals ``profit_target``.

    requiredGross = target + entry fee + exit fee + funding fee
    priceDelta    = requiredGross / (quantity * leverage)
    """
    if quantity <= 0:
        raise ValueError("quantity must be positive")
    fees = estimate_fees(order_size_usd, trade_type, exit_notional=quantity * entry_price)
    required_gross = profit_target + fees.total
    price_delta = required_gross / (quantity * (leverage or 1.0))
    if direction == "long":
        return entry_price + price_delta
    return entry_price - price_delta
