"""DailyStats model: per-day aggregate of closed trades."""

from sqlmodel import SQLModel, Field


class DailyStats(SQLModel, table=True):
    __tablename__ = "daily_stats"

    id: int | None = Field(default=None, primary_key=True)
    date: str = Field(unique=True, index=True)  # UTC "YYYY-MM-DD"
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    gross_profit: float = 0.0
    total_fees: float = 0.0
    net_profit: float = 0.0
