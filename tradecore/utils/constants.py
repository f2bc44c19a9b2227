"""Shared constants and trading defaults."""

# Fee rates applied to notional (order size in quote currency)
SPOT_FEE_RATE = 0.001
FUTURES_FEE_RATE = 0.0005
FUNDING_FEE_RATE = 0.0001  # futures only

DEFAULT_SPOT_PROFIT_TARGET = 1.0
DEFAULT_FUTURES_PROFIT_TARGET = 3.0

# Signal gates per aggressiveness: (min confidence, min score)
AGGRESSIVENESS_THRESHOLDS: dict[str, tuple[float, float]] = {
    "conservative": (0.55, 55.0),
    "balanced": (0.35, 40.0),
    "aggressive": (0.30, 35.0),
}

# Reconciliation tolerance bands (fraction of recorded quantity)
SPOT_TOLERANCE = 0.10
FUTURES_TOLERANCE = 0.20

# Simulated slippage bounds for paper fills
PAPER_SLIPPAGE_MIN = 0.0001
PAPER_SLIPPAGE_MAX = 0.0005

QUOTE_CURRENCY = "USDT"
SUPPORTED_VENUES = ["binance", "okx", "bybit"]

# Lowest order size the loop will ever place, whatever bot_settings says
MIN_ORDER_SIZE_FLOOR = 50.0

# Spot take-profit counts as filled once the base balance drops below this share
TP_FILLED_BALANCE_RATIO = 0.10
