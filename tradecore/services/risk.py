"""Risk & sizing gate.

Pure checks over a signal, the policy record and the venue's available
balance. Rejections come back as ``TradeError`` values, never exceptions,
so one bad candidate cannot stop the rest of a batch.
"""

import logging
from dataclasses import dataclass
from typing import Callable

from tradecore.models import BotSettings
from tradecore.schemas.results import CycleStatus, ErrorType, TradeError
from tradecore.schemas.signal import Signal
from tradecore.utils.constants import (
    AGGRESSIVENESS_THRESHOLDS,
    DEFAULT_FUTURES_PROFIT_TARGET,
    DEFAULT_SPOT_PROFIT_TARGET,
    MIN_ORDER_SIZE_FLOOR,
)

logger = logging.getLogger(__name__)


@dataclass
class Sizing:
    order_size_usd: float
    quantity: float
    leverage: float
    profit_target: float


@dataclass
class GateDecision:
    sizing: Sizing | None = None
    error: TradeError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def thresholds_for(aggressiveness: str) -> tuple[float, float]:
    """(min confidence, min score) for an aggressiveness level; unknown levels fall back to balanced."""
    return AGGRESSIVENESS_THRESHOLDS.get(aggressiveness, AGGRESSIVENESS_THRESHOLDS["balanced"])


def passes_threshold(signal: Signal, aggressiveness: str) -> bool:
    min_confidence, min_score = thresholds_for(aggressiveness)
    return signal.confidence >= min_confidence and signal.score >= min_score


def order_size(settings: BotSettings) -> float:
    """Configured minimum, clamped into [floor, max_order_size]."""
    return min(max(settings.min_order_size, MIN_ORDER_SIZE_FLOOR), settings.max_order_size)


def profit_target(settings: BotSettings, trade_type: str) -> float:
    if trade_type == "futures":
        return settings.futures_profit_target or DEFAULT_FUTURES_PROFIT_TARGET
    return settings.spot_profit_target or DEFAULT_SPOT_PROFIT_TARGET


def leverage(settings: BotSettings, trade_type: str) -> float:
    return (settings.futures_leverage or 1.0) if trade_type == "futures" else 1.0


def check_policy(settings: BotSettings | None, today_net_profit: float) -> tuple[CycleStatus, TradeError] | None:
    """Cycle-level gates evaluated before any position is touched."""
    if settings is None:
        return CycleStatus.NO_SETTINGS, TradeError(
            error_type=ErrorType.NO_SETTINGS,
            message="No bot settings record",
            suggestion="Create the bot_settings row",
        )
    if not settings.is_bot_running:
        return CycleStatus.BOT_STOPPED, TradeError(
            error_type=ErrorType.BOT_STOPPED,
            message="Bot is stopped",
        )
    if settings.daily_loss_limit and today_net_profit <= -abs(settings.daily_loss_limit):
        return CycleStatus.DAILY_LIMIT_REACHED, TradeError(
            error_type=ErrorType.DAILY_LIMIT,
            message=f"Daily loss limit reached: {today_net_profit:.2f} <= -{abs(settings.daily_loss_limit):.2f}",
            suggestion="Trading resumes on the next UTC day",
        )
    return None


def _reject(signal: Signal, error_type: ErrorType, message: str, suggestion: str | None = None) -> GateDecision:
    logger.info(f"[{signal.venue}] Rejected {signal.direction} {signal.symbol}: {message}")
    return GateDecision(
        error=TradeError(
            symbol=signal.symbol,
            venue=signal.venue,
            error_type=error_type,
            message=message,
            suggestion=suggestion,
        )
    )


def validate(
    signal: Signal,
    settings: BotSettings,
    available_balance: float,
    has_active_position: bool,
    round_quantity: Callable[[str, float, str], float],
) -> GateDecision:
    """Check one candidate. Order: threshold, duplicate, direction, balance, minimum tradable unit."""
    if not passes_threshold(signal, settings.ai_aggressiveness):
        min_confidence, min_score = thresholds_for(settings.ai_aggressiveness)
        return _reject(
            signal,
            ErrorType.BELOW_THRESHOLD,
            f"confidence {signal.confidence:.2f} / score {signal.score:.0f} below "
            f"{min_confidence:.2f} / {min_score:.0f} ({settings.ai_aggressiveness})",
        )

    if has_active_position:
        return _reject(signal, ErrorType.DUPLICATE_POSITION, f"Already holding {signal.symbol} on {signal.venue}")

    if signal.trade_type == "spot" and signal.direction == "short":
        return _reject(
            signal,
            ErrorType.UNSUPPORTED_DIRECTION,
            "Spot shorts are not supported",
            "Enable futures on this venue to trade short",
        )

    size = order_size(settings)
    if available_balance < size:
        shortfall = size - available_balance
        return _reject(
            signal,
            ErrorType.INSUFFICIENT_BALANCE,
            f"Insufficient balance: ${available_balance:.2f}, need ${size:.2f} (short ${shortfall:.2f})",
            "Deposit more USDT or reduce order size",
        )

    quantity = round_quantity(signal.symbol, size / signal.entry_price, signal.trade_type)
    if quantity <= 0:
        return _reject(
            signal,
            ErrorType.MIN_SIZE_VIOLATION,
            f"${size:.2f} at {signal.entry_price} is below one tradable unit of {signal.symbol}",
            "Raise min_order_size or pick a cheaper asset",
        )

    return GateDecision(
        sizing=Sizing(
            order_size_usd=size,
            quantity=quantity,
            leverage=leverage(settings, signal.trade_type),
            profit_target=profit_target(settings, signal.trade_type),
        )
    )
