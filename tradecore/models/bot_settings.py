"""BotSettings model: the single trading policy record."""

from datetime import datetime, timezone
from sqlmodel import SQLModel, Field


class BotSettings(SQLModel, table=True):
    __tablename__ = "bot_settings"

    id: int | None = Field(default=None, primary_key=True)
    is_bot_running: bool = False
    is_paper_trading: bool = True

    # Sizing (quote currency)
    min_order_size: float = 333.0
    max_order_size: float = 450.0

    # Fees-inclusive profit targets (quote currency)
    spot_profit_target: float = 1.0
    futures_profit_target: float = 3.0
    futures_leverage: float = 10.0

    # Risk
    daily_loss_limit: float = 50.0
    max_open_positions: int = 10
    ai_aggressiveness: str = "balanced"  # "conservative", "balanced", "aggressive"

    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
