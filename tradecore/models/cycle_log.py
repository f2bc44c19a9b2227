"""CycleLog model: one row per trading loop run."""

from datetime import datetime, timezone
from typing import Any

from sqlmodel import SQLModel, Field, Column
from sqlalchemy import JSON


class CycleLog(SQLModel, table=True):
    __tablename__ = "cycle_log"

    id: int | None = Field(default=None, primary_key=True)
    cycle_id: str = Field(index=True)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    status: str  # "completed", "skipped_concurrent", "bot_stopped", "error", ...
    signals_generated: int = 0
    trades_executed: int = 0
    positions_closed: int = 0
    duration_ms: int = 0
    actions: list[str] | None = Field(default=None, sa_column=Column(JSON))
    errors: list[dict[str, Any]] | None = Field(default=None, sa_column=Column(JSON))
