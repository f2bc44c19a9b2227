"""Public ticker prices from the venues' unauthenticated endpoints.

Used by the fallback monitor and at close time. Failures return ``None``;
callers decide what a missing price means.
"""

import logging
from typing import Protocol

from tradecore.services.gateway import precision
from tradecore.services.gateway.errors import GatewayError
from tradecore.services.gateway.http_client import AsyncHTTPClient
from tradecore.services.gateway.okx import inst_id

logger = logging.getLogger(__name__)


class PriceSource(Protocol):
    async def get_price(self, venue: str, symbol: str, trade_type: str = "spot") -> float | None: ...


class PublicTickerPriceSource:

    def __init__(self, http: AsyncHTTPClient | None = None):
        self.http = http or AsyncHTTPClient()

    async def get_price(self, venue: str, symbol: str, trade_type: str = "spot") -> float | None:
        fetch = {
            "binance": self._binance,
            "okx": self._okx,
            "bybit": self._bybit,
        }.get(venue.lower())
        if fetch is None:
            logger.warning(f"No public ticker for venue {venue}")
            return None
        try:
            price = await fetch(symbol, trade_type)
        except (GatewayError, KeyError, IndexError, ValueError, TypeError) as e:
            logger.warning(f"[{venue}] Ticker fetch failed for {symbol}: {e}")
            return None
        if price is None or price <= 0:
            return None
        return price

    async def _binance(self, symbol: str, trade_type: str) -> float:
        if trade_type == "futures":
            url = "https://fapi.binance.com/fapi/v1/ticker/price"
        else:
            url = "https://api.binance.com/api/v3/ticker/price"
        data = await self.http.get(url, params={"symbol": precision.compact_symbol(symbol)})
        return float(data["price"])

    async def _okx(self, symbol: str, trade_type: str) -> float:
        data = await self.http.get(
            "https://www.okx.com/api/v5/market/ticker", params={"instId": inst_id(symbol, trade_type)}
        )
        return float(data["data"][0]["last"])

    async def _bybit(self, symbol: str, trade_type: str) -> float:
        data = await self.http.get(
            "https://api.bybit.com/v5/market/tickers",
            params={
                "category": "linear" if trade_type == "futures" else "spot",
                "symbol": precision.compact_symbol(symbol),
            },
        )
        return float(data["result"]["list"][0]["lastPrice"])

    async def close(self) -> None:
        await self.http.close()
