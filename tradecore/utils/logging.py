"""Root logger configuration."""

import logging

from tradecore.config import settings

_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
_configured = False


def setup_logging(level: str | None = None):
    """Configure the root logger once. Safe to call repeatedly."""
    global _configured
    if _configured:
        return

    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format=_FORMAT,
    )
    # Request-level noise from the HTTP client and the scheduler
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("apscheduler.executors.default").setLevel(logging.WARNING)
    _configured = True
