"""Client for the external analysis service that proposes candidate trades."""

import json
import logging
from typing import Protocol

from pydantic import ValidationError

from tradecore.schemas.signal import Signal
from tradecore.services.gateway.http_client import AsyncHTTPClient

logger = logging.getLogger(__name__)


class SignalSource(Protocol):
    async def analyze(self, venues: list[str], mode: str, aggressiveness: str) -> list[Signal]: ...


class HTTPSignalSource:
    """POSTs ``{exchanges, mode, aggressiveness}`` and reads back a ranked list.

    The response is either a bare list or ``{"signals": [...]}``. Malformed
    entries are dropped with a warning; transport failures propagate as
    ``GatewayError``.
    """

    def __init__(self, url: str, http: AsyncHTTPClient | None = None):
        self.url = url
        self.http = http or AsyncHTTPClient()

    async def analyze(self, venues: list[str], mode: str, aggressiveness: str) -> list[Signal]:
        if not self.url:
            logger.warning("Signal source URL not configured; no candidates")
            return []

        body = json.dumps({"exchanges": venues, "mode": mode, "aggressiveness": aggressiveness})
        data = await self.http.post(self.url, headers={"Content-Type": "application/json"}, content=body)
        rows = data.get("signals", []) if isinstance(data, dict) else data

        signals = []
        for row in rows or []:
            try:
                signals.append(Signal.model_validate(row))
            except ValidationError as e:
                logger.warning(f"Dropping malformed signal {row!r}: {e.error_count()} error(s)")
        logger.info(f"Signal source returned {len(signals)} candidate(s) for {venues}")
        return signals

    async def close(self) -> None:
        await self.http.close()
