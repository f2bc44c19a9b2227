"""Bybit v5 gateway: ``spot`` and ``linear`` (USDT perpetual) categories.

Signing: HMAC-SHA256 hex over ``timestamp + apiKey + recvWindow + payload``
where payload is the JSON body (POST) or the query string (GET).
"""

import hashlib
import hmac
import json
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
from tradecore.services.gateway.errors import GatewayError, VenueRejectedError
from tradecore.services.gateway.http_client import AsyncHTTPClient
from tradecore.services.gateway.rate_limiter import limiter_for

logger = logging.getLogger(__name__)

BASE_URL = "https://api.bybit.com"
RECV_WINDOW = "5000"
# 110001: order does not exist (linear); 170213: order does not exist (spot)
UNKNOWN_ORDER_CODES = {110001, 170213}


def category(trade_type: str) -> str:
    return "linear" if trade_type == "futures" else "spot"


class BybitGateway:
    name = "bybit"

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

    def sign(self, timestamp: str, payload: str) -> str:
        message = timestamp + self.credentials.api_key + RECV_WINDOW + payload
        return hmac.new(
            self.credentials.api_secret.encode("utf-8"),
            message.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()

    def _headers(self, payload: str) -> dict[str, str]:
        timestamp = str(int(time.time() * 1000))
        return {
            "X-BAPI-API-KEY": self.credentials.api_key,
            "X-BAPI-SIGN": self.sign(timestamp, payload),
            "X-BAPI-TIMESTAMP": timestamp,
            "X-BAPI-RECV-WINDOW": RECV_WINDOW,
            "Content-Type": "application/json",
        }

    async def _get(self, path: str, params: dict) -> dict:
        query = urlencode(params)
        await self.rate_limiter.acquire()
        data = await self.http.get(f"{BASE_URL}{path}?{query}", headers=self._headers(query))
        return self._unwrap(data)

    async def _post(self, path: str, payload: dict) -> dict:
        body = json.dumps(payload, separators=(",", ":"))
        await self.rate_limiter.acquire()
        data = await self.http.post(f"{BASE_URL}{path}", headers=self._headers(body), content=body)
        return self._unwrap(data)

    @staticmethod
    def _unwrap(data: dict) -> dict:
        code = data.get("retCode", 0)
        if code != 0:
            raise VenueRejectedError(
                f"Bybit error {code}: {data.get('retMsg', '')}", code=code, details={"response": data}
            )
        return data.get("result") or {}

    # ── precision ────────────────────────────────────

    def round_quantity(self, symbol: str, quantity: float, trade_type: str = "spot") -> float:
        return precision.round_quantity(symbol, quantity)

    def round_price(self, price: float, rounding: str | None = None) -> float:
        return precision.round_price(price, rounding)

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

        payload = {
            "category": category(trade_type),
            "symbol": precision.compact_symbol(symbol),
            "side": side.capitalize(),
            "orderType": "Limit",
            "qty": precision.format_number(quantity),
            "price": precision.format_number(price),
            "timeInForce": "GTC",
        }
        if trade_type == "futures" and reduce_only:
            payload["reduceOnly"] = True
        try:
            result = await self._post("/v5/order/create", payload)
        except GatewayError as e:
            return order_failure(self.name, "limit order", e)
        order_id = result.get("orderId")
        logger.info(f"[bybit] Limit {side} {quantity} {symbol} @ {price} -> {order_id}")
        return OrderResult(success=True, order_id=order_id, order_status="new", raw_response=str(result))

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

        payload = {
            "category": category(trade_type),
            "symbol": precision.compact_symbol(symbol),
            "side": side.capitalize(),
            "orderType": "Market",
            "qty": precision.format_number(quantity),
        }
        if trade_type == "futures":
            if reduce_only:
                payload["reduceOnly"] = True
        else:
            payload["marketUnit"] = "baseCoin"
        try:
            result = await self._post("/v5/order/create", payload)
        except GatewayError as e:
            return order_failure(self.name, "market order", e)
        order_id = result.get("orderId")
        logger.info(f"[bybit] Market {side} {quantity} {symbol} -> {order_id}")
        return OrderResult(
            success=True,
            order_id=order_id,
            filled_amount=quantity,
            order_status="filled",
            raw_response=str(result),
        )

    async def cancel_order(
        self, symbol: str, order_id: str, trade_type: str = "spot", paper: bool = False
    ) -> OrderResult:
        if paper:
            return self.paper.cancel(order_id)

        payload = {
            "category": category(trade_type),
            "symbol": precision.compact_symbol(symbol),
            "orderId": order_id,
        }
        try:
            await self._post("/v5/order/cancel", payload)
        except VenueRejectedError as e:
            if e.code in UNKNOWN_ORDER_CODES:
                logger.info(f"[bybit] Cancel {order_id}: order does not exist, treating as gone")
                return OrderResult(success=True, order_id=order_id, order_status="not_found")
            return order_failure(self.name, "cancel", e)
        except GatewayError as e:
            return order_failure(self.name, "cancel", e)
        logger.info(f"[bybit] Cancelled {order_id}")
        return OrderResult(success=True, order_id=order_id, order_status="cancelled")

    # ── reads (raise GatewayError) ───────────────────

    async def get_balance(self, asset: str, trade_type: str = "spot", paper: bool = False) -> float:
        if paper:
            return self.paper.get_balance(asset)

        asset = asset.upper()
        result = await self._get("/v5/account/wallet-balance", {"accountType": "UNIFIED", "coin": asset})
        for account in result.get("list", []):
            for coin in account.get("coin", []):
                if coin.get("coin") == asset:
                    return float(coin.get("walletBalance") or 0)
        return 0.0

    async def get_open_positions(self, paper: bool = False) -> list[VenuePosition]:
        if paper:
            return []
        result = await self._get("/v5/position/list", {"category": "linear", "settleCoin": "USDT"})
        positions = []
        for row in result.get("list", []):
            size = float(row.get("size") or 0)
            if size == 0:
                continue
            positions.append(
                VenuePosition(
                    symbol=precision.from_compact_symbol(row.get("symbol", "")),
                    side="long" if row.get("side") == "Buy" else "short",
                    quantity=size,
                    entry_price=float(row.get("avgPrice") or 0) or None,
                )
            )
        return positions

    async def close(self) -> None:
        await self.http.close()
