"""Database models."""

from tradecore.models.venue import Venue
from tradecore.models.bot_settings import BotSettings
from tradecore.models.position import Position, PositionStatus, TakeProfitStatus
from tradecore.models.trade import Trade
from tradecore.models.daily_stats import DailyStats
from tradecore.models.loop_lock import LoopLock
from tradecore.models.cycle_log import CycleLog

__all__ = [
    "Venue",
    "BotSettings",
    "Position",
    "PositionStatus",
    "TakeProfitStatus",
    "Trade",
    "DailyStats",
    "LoopLock",
    "CycleLog",
]
