"""OKX gateway: spot (``cash``) and USDT perpetual swaps (``cross``).

Signing: base64 HMAC-SHA256 over ``timestamp + METHOD + requestPath + body``
with the passphrase sent alongside in the ``OK-ACCESS-*`` headers. Swap
sizes are whole contracts; see ``precision.OKX_CONTRACT_SIZE``.
"""

import base64
import hashlib
import hmac
import json
import logging
import random
from datetime import datetime, timezone
from urllib.parse import urlencode

from tradecore.services.gateway import precision
from tradecore.services.gateway.base import (
    Credentials,
    OrderResult,
    PaperSimulator,
    VenuePosition,
    order_failure,
)
from tradecore.services.gateway.errors import GatewayError, GatewayHTTPError, VenueRejectedError
from tradecore.services.gateway.http_client import AsyncHTTPClient
from tradecore.services.gateway.rate_limiter import limiter_for

logger = logging.getLogger(__name__)

BASE_URL = "https://www.okx.com"
UNKNOWN_ORDER_CODES = {"51400", "51401"}


def inst_id(symbol: str, trade_type: str) -> str:
    """'BTC/USDT' -> 'BTC-USDT' (spot) or 'BTC-USDT-SWAP' (futures)."""
    base, quote = precision.split_symbol(symbol)
    if trade_type == "futures":
        return f"{base}-{quote}-SWAP"
    return f"{base}-{quote}"


def symbol_from_inst_id(value: str) -> str:
    parts = value.upper().split("-")
    return f"{parts[0]}/{parts[1]}" if len(parts) >= 2 else value.upper()


class OKXGateway:
    name = "okx"

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

    def sign(self, timestamp: str, method: str, request_path: str, body: str = "") -> str:
        prehash = f"{timestamp}{method.upper()}{request_path}{body}"
        digest = hmac.new(
            self.credentials.api_secret.encode("utf-8"),
            prehash.encode("utf-8"),
            hashlib.sha256,
        ).digest()
        return base64.b64encode(digest).decode("utf-8")

    def _headers(self, method: str, request_path: str, body: str = "") -> dict[str, str]:
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
        return {
            "OK-ACCESS-KEY": self.credentials.api_key,
            "OK-ACCESS-SIGN": self.sign(timestamp, method, request_path, body),
            "OK-ACCESS-TIMESTAMP": timestamp,
            "OK-ACCESS-PASSPHRASE": self.credentials.passphrase or "",
            "Content-Type": "application/json",
        }

    async def _get(self, path: str, params: dict | None = None) -> list:
        request_path = f"{path}?{urlencode(params)}" if params else path
        await self.rate_limiter.acquire()
        data = await self.http.get(f"{BASE_URL}{request_path}", headers=self._headers("GET", request_path))
        return self._unwrap(data)

    async def _post(self, path: str, payload: dict) -> list:
        body = json.dumps(payload, separators=(",", ":"))
        await self.rate_limiter.acquire()
        data = await self.http.post(f"{BASE_URL}{path}", headers=self._headers("POST", path, body), content=body)
        return self._unwrap(data)

    @staticmethod
    def _unwrap(data: dict) -> list:
        """Return ``data`` or raise on a top-level or per-item error code."""
        rows = data.get("data") or []
        code = str(data.get("code", "0"))
        if code == "0":
            return rows
        if rows and isinstance(rows[0], dict) and rows[0].get("sCode") not in (None, "", "0"):
            code = str(rows[0]["sCode"])
            message = rows[0].get("sMsg") or data.get("msg", "")
        else:
            message = data.get("msg", "")
        raise VenueRejectedError(f"OKX error {code}: {message}", code=code, details={"response": data})

    # ── precision ────────────────────────────────────

    def round_quantity(self, symbol: str, quantity: float, trade_type: str = "spot") -> float:
        if trade_type == "futures":
            return precision.okx_contracts_to_quantity(symbol, precision.okx_contracts(symbol, quantity))
        return precision.round_quantity(symbol, quantity)

    def round_price(self, price: float, rounding: str | None = None) -> float:
        return precision.round_price(price, rounding)

    def _size(self, symbol: str, quantity: float, trade_type: str) -> str:
        if trade_type == "futures":
            return str(precision.okx_contracts(symbol, quantity))
        return precision.format_number(quantity)

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
            return OrderResult(
                success=False, error="Quantity below one lot/contract", error_type="MIN_SIZE_VIOLATION"
            )
        price = self.round_price(price)
        if paper:
            return self.paper.limit_order(symbol, side, quantity, price, reduce_only)

        payload = {
            "instId": inst_id(symbol, trade_type),
            "tdMode": "cross" if trade_type == "futures" else "cash",
            "side": side.lower(),
            "ordType": "limit",
            "sz": self._size(symbol, quantity, trade_type),
            "px": precision.format_number(price),
        }
        if trade_type == "futures" and reduce_only:
            payload["reduceOnly"] = True
        try:
            rows = await self._post("/api/v5/trade/order", payload)
        except GatewayError as e:
            return order_failure(self.name, "limit order", e)
        order_id = rows[0].get("ordId") if rows else None
        logger.info(f"[okx] Limit {side} {quantity} {symbol} @ {price} -> {order_id}")
        return OrderResult(success=True, order_id=order_id, order_status="new", raw_response=str(rows))

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
            return OrderResult(
                success=False, error="Quantity below one lot/contract", error_type="MIN_SIZE_VIOLATION"
            )
        if paper:
            return self.paper.market_order(symbol, side, quantity, reference_price)

        payload = {
            "instId": inst_id(symbol, trade_type),
            "tdMode": "cross" if trade_type == "futures" else "cash",
            "side": side.lower(),
            "ordType": "market",
            "sz": self._size(symbol, quantity, trade_type),
        }
        if trade_type == "futures":
            if reduce_only:
                payload["reduceOnly"] = True
        else:
            # Spot market buys are sized in quote currency unless told otherwise
            payload["tgtCcy"] = "base_ccy"
        try:
            rows = await self._post("/api/v5/trade/order", payload)
        except GatewayError as e:
            return order_failure(self.name, "market order", e)
        order_id = rows[0].get("ordId") if rows else None
        logger.info(f"[okx] Market {side} {quantity} {symbol} -> {order_id}")
        return OrderResult(
            success=True,
            order_id=order_id,
            filled_amount=quantity,
            order_status="filled",
            raw_response=str(rows),
        )

    async def cancel_order(
        self, symbol: str, order_id: str, trade_type: str = "spot", paper: bool = False
    ) -> OrderResult:
        if paper:
            return self.paper.cancel(order_id)

        payload = {"instId": inst_id(symbol, trade_type), "ordId": order_id}
        try:
            await self._post("/api/v5/trade/cancel-order", payload)
        except VenueRejectedError as e:
            if str(e.code) in UNKNOWN_ORDER_CODES:
                logger.info(f"[okx] Cancel {order_id}: order does not exist, treating as gone")
                return OrderResult(success=True, order_id=order_id, order_status="not_found")
            return order_failure(self.name, "cancel", e)
        except GatewayHTTPError as e:
            if str(e.payload.get("code")) in UNKNOWN_ORDER_CODES:
                return OrderResult(success=True, order_id=order_id, order_status="not_found")
            return order_failure(self.name, "cancel", e)
        except GatewayError as e:
            return order_failure(self.name, "cancel", e)
        logger.info(f"[okx] Cancelled {order_id}")
        return OrderResult(success=True, order_id=order_id, order_status="cancelled")

    # ── reads (raise GatewayError) ───────────────────

    async def get_balance(self, asset: str, trade_type: str = "spot", paper: bool = False) -> float:
        if paper:
            return self.paper.get_balance(asset)

        asset = asset.upper()
        rows = await self._get("/api/v5/account/balance", {"ccy": asset})
        for account in rows:
            for detail in account.get("details", []):
                if detail.get("ccy") == asset:
                    return float(detail.get("cashBal") or detail.get("availBal") or 0)
        return 0.0

    async def get_open_positions(self, paper: bool = False) -> list[VenuePosition]:
        if paper:
            return []
        rows = await self._get("/api/v5/account/positions", {"instType": "SWAP"})
        positions = []
        for row in rows:
            contracts = float(row.get("pos") or 0)
            if contracts == 0:
                continue
            symbol = symbol_from_inst_id(row.get("instId", ""))
            pos_side = row.get("posSide", "net")
            if pos_side in ("long", "short"):
                side = pos_side
            else:
                side = "long" if contracts > 0 else "short"
            positions.append(
                VenuePosition(
                    symbol=symbol,
                    side=side,
                    quantity=precision.okx_contracts_to_quantity(symbol, abs(contracts)),
                    entry_price=float(row.get("avgPx") or 0) or None,
                )
            )
        return positions

    async def close(self) -> None:
        await self.http.close()
