"""Position model: the unit of capital at risk, retained after close as audit trail."""

from datetime import datetime, timezone

from sqlalchemy import Index, text
from sqlmodel import SQLModel, Field


class PositionStatus:
    OPEN = "open"
    CLOSING = "closing"  # short-lived claim held by one close attempt
    CLOSED = "closed"
    ORPHANED = "orphaned"  # open locally, missing on the venue
    STUCK = "stuck"  # exit attempted, nothing to sell, no fill evidence

    ACTIVE = (OPEN, CLOSING)


class TakeProfitStatus:
    PENDING = "pending"
    FILLED = "filled"
    CANCELLED = "cancelled"
    ERROR = "error"

    # Statuses the monitor resolves through the TP fill check
    WATCHED = (PENDING, FILLED)


_ACTIVE_WHERE = text("status IN ('open', 'closing')")


class Position(SQLModel, table=True):
    __tablename__ = "position"
    __table_args__ = (
        # At most one live position per (venue, symbol)
        Index(
            "ix_position_venue_symbol_active",
            "venue_id",
            "symbol",
            unique=True,
            sqlite_where=_ACTIVE_WHERE,
            postgresql_where=_ACTIVE_WHERE,
        ),
    )

    id: int | None = Field(default=None, primary_key=True)
    venue_id: int = Field(foreign_key="venue.id", index=True)
    trade_id: int | None = Field(default=None, foreign_key="trade.id")
    symbol: str  # "BTC/USDT"
    direction: str  # "long" or "short"
    trade_type: str  # "spot" or "futures"
    entry_price: float
    current_price: float
    quantity: float
    order_size_usd: float
    leverage: float = 1.0
    profit_target: float
    unrealized_pnl: float = 0.0
    is_paper_trade: bool = False
    status: str = Field(default=PositionStatus.OPEN, index=True)
    status_reason: str | None = None

    entry_order_id: str | None = None
    exit_order_id: str | None = None
    take_profit_order_id: str | None = None
    take_profit_price: float | None = None
    take_profit_status: str | None = None
    take_profit_placed_at: datetime | None = None
    take_profit_filled_at: datetime | None = None

    opened_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    closed_at: datetime | None = None

    @property
    def base_asset(self) -> str:
        return self.symbol.split("/")[0].upper()
