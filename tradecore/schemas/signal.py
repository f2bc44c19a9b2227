"""Candidate trade proposed by the external analysis collaborator."""

from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel


class Signal(BaseModel):
    venue: str = Field(validation_alias="exchange")
    symbol: str
    direction: str  # "long" or "short"
    score: float = 0.0
    confidence: float = 0.0
    entry_price: float = Field(gt=0)
    trade_type: str = "spot"
    reasoning: str = ""

    model_config = {"alias_generator": to_camel, "populate_by_name": True}

    @field_validator("venue", "direction", "trade_type")
    @classmethod
    def _lower(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("symbol")
    @classmethod
    def _normalize_symbol(cls, value: str) -> str:
        text = value.strip().upper().replace("-", "/")
        if "/" not in text:
            raise ValueError("must be BASE/QUOTE, e.g. BTC/USDT")
        return text
