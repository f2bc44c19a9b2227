"""Binance gateway: spot (api/v3) and USDT-M futures (fapi).

Signing: HMAC-SHA256 hex over the url-encoded query string, sent as the
``signature`` parameter with the key in ``X-MBX-APIKEY``.
"""

import hashlib
import hmac
import logging
import random
import time
from urllib.parse import urlencode

from tradecore.services.gateway import precision
from tradecore.services.gateway.base import (
    Credentials,
    OrderResult,
    PaperSimulator,
    VenuePosition,
    order_failure,
)
from tradecore.services.gateway.errors import GatewayError, GatewayHTTPError
from tradecore.services.gateway.http_client import AsyncHTTPClient
from tradecore.services.gateway.rate_limiter import limiter_for

logger = logging.getLogger(__name__)

SPOT_URL = "https://api.binance.com"
FUTURES_URL = "https://fapi.binance.com"
RECV_WINDOW = 5000
UNKNOWN_ORDER_CODE = -2011


class BinanceGateway:
    name = "binance"

    def __init__(
        self,
        credentials: Credentials,
        http: AsyncHTTPClient | None = None,
        rng: random.Random | None = None,
        paper_balance: float = 0.0,
        requests_per_second: float = 10.0,
    ):
        self.credentials = credentials
        self.http = http or AsyncHTTPClient()
        self.rate_limiter = limiter_for(self.name, requests_per_second)
        self.paper = PaperSimulator(self.name, rng=rng, balance=paper_balance)

    # ── signing ──────────────────────────────────────

    def sign(self, query: str) -> str:
        return hmac.new(
            self.credentials.api_secret.encode("utf-8"),
            query.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()

    def _signed_url(self, base: str, path: str, params: dict) -> str:
        params = {**params, "recvWindow": RECV_WINDOW, "timestamp": int(time.time() * 1000)}
        query = urlencode(params)
        return f"{base}{path}?{query}&signature={self.sign(query)}"

    def _headers(self) -> dict[str, str]:
        return {"X-MBX-APIKEY": self.credentials.api_key}

    async def _send(self, method: str, base: str, path: str, params: dict):
        await self.rate_limiter.acquire()
        url = self._signed_url(base, path, params)
        return await self.http.request(method, url, headers=self._headers(), retry=method == "GET")

    # ── precision ────────────────────────────────────

    def round_quantity(self, symbol: str, quantity: float, trade_type: str = "spot") -> float:
        return precision.round_quantity(symbol, quantity)

    def round_price(self, price: float, rounding: str | None = None) -> float:
        return precision.round_price(price, rounding)

    @staticmethod
    def _order_path(trade_type: str) -> tuple[str, str]:
        if trade_type == "futures":
            return FUTURES_URL, "/fapi/v1/order"
        return SPOT_URL, "/api/v3/order"

    # ── orders ───────────────────────────────────────

    async def place_limit_order(
        self,
        symbol: str,
        side: str,
        quantity: float,
        price: float,
        trade_type: str = "spot",
        reduce_only: bool = False,
        paper: bool = False,
    ) -> OrderResult:
        quantity = self.round_quantity(symbol, quantity, trade_type)
        if quantity <= 0:
            return OrderResult(success=False, error="Quantity rounds to zero", error_type="MIN_SIZE_VIOLATION")
        price = self.round_price(price)
        if paper:
            return self.paper.limit_order(symbol, side, quantity, price, reduce_only)

        params = {
            "symbol": precision.compact_symbol(symbol),
            "side": side.upper(),
            "type": "LIMIT",
            "timeInForce": "GTC",
            "quantity": precision.format_number(quantity),
            "price": precision.format_number(price),
        }
        if trade_type == "futures" and reduce_only:
            params["reduceOnly"] = "true"
        base, path = self._order_path(trade_type)
        try:
            data = await self._send("POST", base, path, params)
        except GatewayError as e:
            return order_failure(self.name, "limit order", e)
        logger.info(f"[binance] Limit {side} {quantity} {symbol} @ {price} -> {data.get('orderId')}")
        return self._order_result(data)

    async def place_market_order(
        self,
        symbol: str,
        side: str,
        quantity: float,
        trade_type: str = "spot",
        reduce_only: bool = False,
        reference_price: float | None = None,
        paper: bool = False,
    ) -> OrderResult:
        quantity = self.round_quantity(symbol, quantity, trade_type)
        if quantity <= 0:
            return OrderResult(success=False, error="Quantity rounds to zero", error_type="MIN_SIZE_VIOLATION")
        if paper:
            return self.paper.market_order(symbol, side, quantity, reference_price)

        params = {
            "symbol": precision.compact_symbol(symbol),
            "side": side.upper(),
            "type": "MARKET",
            "quantity": precision.format_number(quantity),
        }
        if trade_type == "futures":
            params["newOrderRespType"] = "RESULT"
            if reduce_only:
                params["reduceOnly"] = "true"
        else:
            params["newOrderRespType"] = "FULL"
        base, path = self._order_path(trade_type)
        try:
            data = await self._send("POST", base, path, params)
        except GatewayError as e:
            return order_failure(self.name, "market order", e)
        result = self._order_result(data)
        logger.info(f"[binance] Market {side} {quantity} {symbol} filled @ {result.filled_price}")
        return result

    async def cancel_order(
        self, symbol: str, order_id: str, trade_type: str = "spot", paper: bool = False
    ) -> OrderResult:
        if paper:
            return self.paper.cancel(order_id)

        params = {"symbol": precision.compact_symbol(symbol), "orderId": order_id}
        base, path = self._order_path(trade_type)
        try:
            data = await self._send("DELETE", base, path, params)
        except GatewayHTTPError as e:
            if e.payload.get("code") == UNKNOWN_ORDER_CODE:
                logger.info(f"[binance] Cancel {order_id}: unknown order, treating as gone")
                return OrderResult(success=True, order_id=order_id, order_status="not_found")
            return order_failure(self.name, "cancel", e)
        except GatewayError as e:
            return order_failure(self.name, "cancel", e)
        logger.info(f"[binance] Cancelled {order_id}")
        return OrderResult(success=True, order_id=order_id, order_status="cancelled", raw_response=str(data))

    # ── reads (raise GatewayError) ───────────────────

    async def get_balance(self, asset: str, trade_type: str = "spot", paper: bool = False) -> float:
        if paper:
            return self.paper.get_balance(asset)

        asset = asset.upper()
        if trade_type == "futures":
            rows = await self._send("GET", FUTURES_URL, "/fapi/v2/balance", {})
            for row in rows:
                if row.get("asset") == asset:
                    return float(row.get("availableBalance") or 0)
            return 0.0

        data = await self._send("GET", SPOT_URL, "/api/v3/account", {})
        for row in data.get("balances", []):
            if row.get("asset") == asset:
                return float(row.get("free") or 0) + float(row.get("locked") or 0)
        return 0.0

    async def get_open_positions(self, paper: bool = False) -> list[VenuePosition]:
        if paper:
            return []
        rows = await self._send("GET", FUTURES_URL, "/fapi/v2/positionRisk", {})
        positions = []
        for row in rows:
            amount = float(row.get("positionAmt") or 0)
            if amount == 0:
                continue
            positions.append(
                VenuePosition(
                    symbol=precision.from_compact_symbol(row["symbol"]),
                    side="long" if amount > 0 else "short",
                    quantity=abs(amount),
                    entry_price=float(row.get("entryPrice") or 0) or None,
                )
            )
        return positions

    async def close(self) -> None:
        await self.http.close()

    @staticmethod
    def _order_result(data: dict) -> OrderResult:
        executed = float(data.get("executedQty") or 0)
        filled_price = None
        if float(data.get("avgPrice") or 0) > 0:
            filled_price = float(data["avgPrice"])
        elif executed > 0 and float(data.get("cummulativeQuoteQty") or 0) > 0:
            filled_price = float(data["cummulativeQuoteQty"]) / executed
        return OrderResult(
            success=True,
            order_id=str(data.get("orderId")),
            filled_price=filled_price,
            filled_amount=executed or None,
            order_status=str(data.get("status", "")).lower() or None,
            raw_response=str(data),
        )
