"""Result objects returned by the engine operations and endpoints.

Every result carries ``success`` and a list of structured ``errors`` so
callers never need to parse free-form messages.
"""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

_CAMEL = {"alias_generator": to_camel, "populate_by_name": True}


class ErrorType(str, Enum):
    CONCURRENT_SKIP = "CONCURRENT_SKIP"
    NO_SETTINGS = "NO_SETTINGS"
    BOT_STOPPED = "BOT_STOPPED"
    DAILY_LIMIT = "DAILY_LIMIT"
    MAX_POSITIONS = "MAX_POSITIONS"
    BELOW_THRESHOLD = "BELOW_THRESHOLD"
    DUPLICATE_POSITION = "DUPLICATE_POSITION"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    MIN_SIZE_VIOLATION = "MIN_SIZE_VIOLATION"
    UNSUPPORTED_DIRECTION = "UNSUPPORTED_DIRECTION"
    NO_CREDENTIALS = "NO_CREDENTIALS"
    GATEWAY_ERROR = "GATEWAY_ERROR"
    PRICE_UNAVAILABLE = "PRICE_UNAVAILABLE"
    ALREADY_CLOSED = "ALREADY_CLOSED"
    PROFIT_NOT_MET = "PROFIT_NOT_MET"
    NO_BALANCE = "NO_BALANCE"
    NOT_FOUND = "NOT_FOUND"
    RECONCILE_MISMATCH = "RECONCILE_MISMATCH"
    INTERNAL = "INTERNAL"


class TradeError(BaseModel):
    symbol: str | None = None
    venue: str | None = None
    error_type: ErrorType = ErrorType.INTERNAL
    message: str
    suggestion: str | None = None

    model_config = _CAMEL


class CycleStatus(str, Enum):
    COMPLETED = "completed"
    SKIPPED_CONCURRENT = "skipped_concurrent"
    NO_SETTINGS = "no_settings"
    BOT_STOPPED = "bot_stopped"
    DAILY_LIMIT_REACHED = "daily_limit_reached"
    NO_EXCHANGES = "no_exchanges"
    MAX_POSITIONS = "max_positions"
    NO_SIGNALS = "no_signals"
    ERROR = "error"


class CycleResult(BaseModel):
    success: bool = True
    status: CycleStatus = CycleStatus.COMPLETED
    cycle_id: str | None = None
    actions: list[str] = Field(default_factory=list)
    signals_generated: int = 0
    trades_executed: int = 0
    positions_closed: int = 0
    # The gate that ended the cycle early; a clean stop, not an error
    outcome: TradeError | None = None
    errors: list[TradeError] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = _CAMEL


class OpenedTrade(BaseModel):
    id: int
    symbol: str
    direction: str
    entry_price: float
    quantity: float
    order_size_usd: float
    entry_fee: float
    entry_order_id: str | None = None
    is_paper_trade: bool

    model_config = _CAMEL


class OpenedPosition(BaseModel):
    id: int
    profit_target: float
    take_profit_order_id: str | None = None
    take_profit_price: float
    take_profit_status: str

    model_config = _CAMEL


class OpenResult(BaseModel):
    success: bool
    trade: OpenedTrade | None = None
    position: OpenedPosition | None = None
    errors: list[TradeError] = Field(default_factory=list)

    model_config = _CAMEL


class CloseResult(BaseModel):
    success: bool
    status: str  # "closed", "blocked", "already_closed", "stuck", "error"
    position_id: int
    already_closed: bool = False
    exit_price: float | None = None
    gross_profit: float | None = None
    net_profit: float | None = None
    entry_fee: float | None = None
    exit_fee: float | None = None
    funding_fee: float | None = None
    shortfall: float | None = None
    take_profit_status: str | None = None
    errors: list[TradeError] = Field(default_factory=list)

    model_config = _CAMEL


class Mismatch(BaseModel):
    position_id: int
    symbol: str
    venue: str
    kind: str  # "MISSING" or "QUANTITY_MISMATCH"
    db_quantity: float
    venue_quantity: float
    action_taken: str | None = None

    model_config = _CAMEL


class ReconcileResult(BaseModel):
    success: bool = True
    total_positions: int = 0
    matched: int = 0
    mismatched: int = 0
    fixed: int = 0
    mismatches: list[Mismatch] = Field(default_factory=list)
    orphaned_trades: list[int] = Field(default_factory=list)
    errors: list[TradeError] = Field(default_factory=list)

    model_config = _CAMEL


class RetryResult(BaseModel):
    success: bool = True
    retried: int = 0
    succeeded: int = 0
    failed: int = 0
    errors: list[TradeError] = Field(default_factory=list)

    model_config = _CAMEL
