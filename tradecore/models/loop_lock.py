"""LoopLock model: single-row arbitration record for the trading loop."""

from datetime import datetime
from sqlmodel import SQLModel, Field


class LoopLock(SQLModel, table=True):
    __tablename__ = "trading_loop_lock"

    id: int = Field(default=1, primary_key=True)
    locked_at: datetime | None = None
    locked_by: str | None = None
