"""Venue gateways, selected by name."""

import random

from tradecore.services.gateway.base import (
    Credentials,
    ExchangeGateway,
    OrderResult,
    PaperSimulator,
    VenuePosition,
)
from tradecore.services.gateway.binance import BinanceGateway
from tradecore.services.gateway.bybit import BybitGateway
from tradecore.services.gateway.errors import (
    GatewayError,
    GatewayHTTPError,
    GatewayNetworkError,
    RateLimitExceededError,
    UnsupportedVenueError,
)
from tradecore.services.gateway.http_client import AsyncHTTPClient
from tradecore.services.gateway.okx import OKXGateway

GATEWAYS: dict[str, type] = {
    "binance": BinanceGateway,
    "okx": OKXGateway,
    "bybit": BybitGateway,
}


def get_gateway(
    name: str,
    credentials: Credentials,
    rng: random.Random | None = None,
    paper_balance: float = 0.0,
    http: AsyncHTTPClient | None = None,
) -> ExchangeGateway:
    """Build the gateway registered under ``name`` (case-insensitive)."""
    gateway_cls = GATEWAYS.get(name.lower())
    if gateway_cls is None:
        raise UnsupportedVenueError(f"Unsupported venue: {name}", {"supported": sorted(GATEWAYS)})
    return gateway_cls(credentials, http=http, rng=rng, paper_balance=paper_balance)


__all__ = [
    "AsyncHTTPClient",
    "Credentials",
    "ExchangeGateway",
    "GATEWAYS",
    "GatewayError",
    "GatewayHTTPError",
    "GatewayNetworkError",
    "OrderResult",
    "PaperSimulator",
    "RateLimitExceededError",
    "UnsupportedVenueError",
    "VenuePosition",
    "get_gateway",
]
