"""Async HTTP client for venue REST calls.

Wraps ``httpx.AsyncClient`` with bounded retries. Only idempotent requests
(``retry=True``, i.e. reads) are retried; order placement is sent once so a
timeout can never double-submit an order.
"""

import asyncio
import logging
from typing import Any

import httpx

from tradecore.services.gateway.errors import (
    GatewayHTTPError,
    GatewayNetworkError,
    GatewayServerError,
    RateLimitExceededError,
)

logger = logging.getLogger(__name__)

MAX_RETRY_AFTER_SECONDS = 5


class AsyncHTTPClient:

    def __init__(
        self,
        timeout: float = 10.0,
        max_retries: int = 3,
        base_delay: float = 0.5,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.base_delay = base_delay
        self.client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def request(
        self,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
        params: dict[str, Any] | None = None,
        content: str | None = None,
        retry: bool = False,
    ) -> Any:
        """Send a request and return the decoded JSON body.

        Raises:
            GatewayHTTPError: 4xx response (payload attached).
            RateLimitExceededError: 429 after retries.
            GatewayServerError: 5xx after retries.
            GatewayNetworkError: timeout / connection failure after retries.
        """
        attempts = self.max_retries if retry else 1
        last_exc: Exception | None = None

        for attempt in range(attempts):
            if attempt > 0:
                delay = self.base_delay * (2 ** (attempt - 1))
                logger.info(f"Retry {attempt}/{attempts - 1} in {delay:.1f}s: {method} {url}")
                await asyncio.sleep(delay)

            try:
                response = await self.client.request(
                    method, url, headers=headers, params=params, content=content
                )
            except httpx.TimeoutException as e:
                logger.warning(f"Timeout: {method} {url}")
                last_exc = GatewayNetworkError(f"Request timeout: {url}", {"error": str(e)})
                continue
            except httpx.RequestError as e:
                logger.warning(f"Network error: {method} {url} - {e}")
                last_exc = GatewayNetworkError(f"Network error: {url}", {"error": str(e)})
                continue

            logger.debug(f"{method} {url} -> {response.status_code}")

            if 200 <= response.status_code < 300:
                return response.json()

            if response.status_code == 429:
                retry_after = int(response.headers.get("Retry-After", 1))
                logger.warning(f"Rate limit exceeded: {url}, retry after {retry_after}s")
                last_exc = RateLimitExceededError(
                    f"Rate limit exceeded: {url}", retry_after=retry_after, details={"url": url}
                )
                if attempt < attempts - 1:
                    await asyncio.sleep(min(retry_after, MAX_RETRY_AFTER_SECONDS))
                continue

            if 400 <= response.status_code < 500:
                body = response.text[:500]
                logger.error(f"API error {response.status_code}: {method} {url} | {body}")
                raise GatewayHTTPError(
                    f"API error: {response.status_code}",
                    status_code=response.status_code,
                    payload=_safe_json(response),
                    details={"url": url, "response": body},
                )

            body = response.text[:500]
            logger.warning(f"Server error {response.status_code}: {method} {url} | {body}")
            last_exc = GatewayServerError(
                f"Server error: {response.status_code}",
                status_code=response.status_code,
                details={"url": url, "response": body},
            )

        raise last_exc or GatewayNetworkError("Max retries exceeded", {"url": url})

    async def get(self, url: str, headers: dict[str, str] | None = None, params: dict[str, Any] | None = None) -> Any:
        return await self.request("GET", url, headers=headers, params=params, retry=True)

    async def post(self, url: str, headers: dict[str, str] | None = None, content: str | None = None) -> Any:
        return await self.request("POST", url, headers=headers, content=content)

    async def delete(self, url: str, headers: dict[str, str] | None = None) -> Any:
        return await self.request("DELETE", url, headers=headers)

    async def close(self) -> None:
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


def _safe_json(response: httpx.Response) -> dict:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}
