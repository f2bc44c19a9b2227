"""Symbol formatting and quantity/price rounding shared by the venue gateways."""

import math
from decimal import ROUND_CEILING, ROUND_DOWN, ROUND_FLOOR, ROUND_HALF_UP, Decimal

# Base asset -> quantity decimals
QUANTITY_PRECISION: dict[str, int] = {
    "BTC": 5,
    "ETH": 4,
    "SOL": 3, "BNB": 3, "LTC": 3,
    "AVAX": 2, "LINK": 2, "UNI": 2, "AAVE": 2,
    "DOT": 1, "ATOM": 1, "NEAR": 1, "OP": 1, "ARB": 1, "XRP": 1,
    "MATIC": 0, "ADA": 0, "DOGE": 0, "SHIB": 0, "TRX": 0,
}
DEFAULT_QUANTITY_PRECISION = 2

# OKX perpetual swap contract size, in base asset units per contract
OKX_CONTRACT_SIZE: dict[str, float] = {
    "BTC": 0.01, "ETH": 0.1, "SOL": 1, "DOT": 10, "XRP": 100, "DOGE": 1000,
    "ADA": 100, "LINK": 1, "AVAX": 1, "MATIC": 100, "LTC": 0.1, "BNB": 0.1,
    "ATOM": 1, "NEAR": 10, "UNI": 1, "OP": 10, "ARB": 10, "SUI": 10, "SEI": 100,
}
DEFAULT_CONTRACT_SIZE = 1.0

KNOWN_QUOTES = ("USDT", "USDC", "BUSD", "USD")

_ROUNDING = {
    "up": ROUND_CEILING,
    "down": ROUND_FLOOR,
    None: ROUND_HALF_UP,
}


def split_symbol(symbol: str) -> tuple[str, str]:
    """'BTC/USDT' -> ('BTC', 'USDT')."""
    base, _, quote = symbol.upper().partition("/")
    return base, quote or "USDT"


def base_asset(symbol: str) -> str:
    return split_symbol(symbol)[0]


def compact_symbol(symbol: str) -> str:
    """'BTC/USDT' -> 'BTCUSDT' (Binance, Bybit)."""
    base, quote = split_symbol(symbol)
    return f"{base}{quote}"


def from_compact_symbol(raw: str) -> str:
    """'BTCUSDT' -> 'BTC/USDT'. Unknown quotes are returned unchanged."""
    raw = raw.upper()
    for quote in KNOWN_QUOTES:
        if raw.endswith(quote) and len(raw) > len(quote):
            return f"{raw[:-len(quote)]}/{quote}"
    return raw


def quantity_decimals(symbol: str) -> int:
    return QUANTITY_PRECISION.get(base_asset(symbol), DEFAULT_QUANTITY_PRECISION)


def floor_to_decimals(value: float, decimals: int) -> float:
    step = Decimal(1).scaleb(-decimals)
    return float(Decimal(str(value)).quantize(step, rounding=ROUND_DOWN))


def round_quantity(symbol: str, quantity: float) -> float:
    """Floor to the asset's step so an order never exceeds the intended size."""
    if quantity <= 0:
        return 0.0
    return floor_to_decimals(quantity, quantity_decimals(symbol))


def okx_contract_size(symbol: str) -> float:
    return OKX_CONTRACT_SIZE.get(base_asset(symbol), DEFAULT_CONTRACT_SIZE)


def okx_contracts(symbol: str, quantity: float) -> int:
    """Whole contracts that fit in ``quantity`` base units."""
    if quantity <= 0:
        return 0
    size = Decimal(str(okx_contract_size(symbol)))
    return int((Decimal(str(quantity)) / size).to_integral_value(rounding=ROUND_DOWN))


def okx_contracts_to_quantity(symbol: str, contracts: float) -> float:
    return float(Decimal(str(contracts)) * Decimal(str(okx_contract_size(symbol))))


def price_decimals(price: float) -> int:
    if price > 1000:
        return 2
    if price > 1:
        return 4
    return 6


def round_price(price: float, rounding: str | None = None) -> float:
    """Round to the venue tick. ``rounding`` is 'up', 'down' or None (nearest)."""
    if price <= 0 or math.isnan(price):
        return price
    step = Decimal(1).scaleb(-price_decimals(price))
    return float(Decimal(str(price)).quantize(step, rounding=_ROUNDING[rounding]))


def format_number(value: float) -> str:
    """Plain decimal string without exponent or trailing zeros, as venues expect."""
    text = format(Decimal(str(value)), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"
