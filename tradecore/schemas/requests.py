"""Request bodies for the engine endpoints."""

from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel

_CAMEL = {"alias_generator": to_camel, "populate_by_name": True}


class RunCycleRequest(BaseModel):
    triggered_by: str = "api"

    model_config = _CAMEL


class OpenPositionRequest(BaseModel):
    venue_id: int
    symbol: str = Field(min_length=3, max_length=32)
    direction: str
    trade_type: str = "spot"
    order_size_usd: float = Field(gt=0)
    entry_price: float = Field(gt=0)
    profit_target: float | None = Field(default=None, gt=0)
    leverage: float | None = Field(default=None, ge=1)
    is_paper_trade: bool | None = None
    score: float | None = None
    reasoning: str | None = None

    model_config = _CAMEL

    @field_validator("symbol")
    @classmethod
    def _normalize_symbol(cls, value: str) -> str:
        text = value.strip().upper().replace("-", "/")
        if "/" not in text:
            raise ValueError("must be BASE/QUOTE, e.g. BTC/USDT")
        return text

    @field_validator("direction")
    @classmethod
    def _validate_direction(cls, value: str) -> str:
        text = value.strip().lower()
        if text not in ("long", "short"):
            raise ValueError("must be 'long' or 'short'")
        return text

    @field_validator("trade_type")
    @classmethod
    def _validate_trade_type(cls, value: str) -> str:
        text = value.strip().lower()
        if text not in ("spot", "futures"):
            raise ValueError("must be 'spot' or 'futures'")
        return text


class ClosePositionRequest(BaseModel):
    position_id: int
    exit_price: float | None = Field(default=None, gt=0)
    require_profit: bool = True

    model_config = _CAMEL


class ReconcileRequest(BaseModel):
    auto_fix: bool = False

    model_config = _CAMEL
