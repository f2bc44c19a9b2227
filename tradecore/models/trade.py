"""Trade model: accounting twin of a Position, immutable once closed."""

from datetime import datetime, timezone
from sqlmodel import SQLModel, Field


class Trade(SQLModel, table=True):
    __tablename__ = "trade"

    id: int | None = Field(default=None, primary_key=True)
    venue_id: int = Field(foreign_key="venue.id", index=True)
    symbol: str
    direction: str  # "long" or "short"
    trade_type: str  # "spot" or "futures"
    entry_price: float
    exit_price: float | None = None
    quantity: float
    order_size_usd: float
    leverage: float = 1.0
    entry_fee: float = 0.0
    exit_fee: float = 0.0
    funding_fee: float = 0.0
    gross_profit: float | None = None
    net_profit: float | None = None
    is_paper_trade: bool = False
    signal_score: float | None = None
    signal_reasoning: str | None = None
    status: str = "open"  # "open", "closed"
    entry_order_id: str | None = None
    exit_order_id: str | None = None
    tp_price: float | None = None
    opened_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    closed_at: datetime | None = None
    tp_filled_at: datetime | None = None
