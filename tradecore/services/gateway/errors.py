"""Exchange gateway exceptions.

Order placement/cancel calls convert these into ``OrderResult`` failures;
balance/position reads let them propagate so callers can tell "zero" from
"unreachable".
"""


class GatewayError(Exception):
    """Base class for venue failures."""

    error_type = "GATEWAY_ERROR"

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self):
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class GatewayHTTPError(GatewayError):
    """Non-retryable 4xx response. ``payload`` holds the parsed venue error body."""

    def __init__(self, message: str, status_code: int, payload: dict | None = None, details: dict | None = None):
        self.status_code = status_code
        self.payload = payload or {}
        super().__init__(message, details)


class GatewayServerError(GatewayError):
    """5xx response after retries were exhausted."""

    def __init__(self, message: str, status_code: int, details: dict | None = None):
        self.status_code = status_code
        super().__init__(message, details)


class GatewayNetworkError(GatewayError):
    """Connection failure or timeout."""


class RateLimitExceededError(GatewayError):
    """429 from the venue."""

    error_type = "RATE_LIMITED"

    def __init__(self, message: str, retry_after: int | None = None, details: dict | None = None):
        self.retry_after = retry_after
        super().__init__(message, details)


class VenueRejectedError(GatewayError):
    """Venue answered 200 with a business error code (OKX ``code``, Bybit ``retCode``)."""

    def __init__(self, message: str, code: str | int | None = None, details: dict | None = None):
        self.code = code
        super().__init__(message, details)


class UnsupportedVenueError(GatewayError):
    """No gateway is registered under the requested venue name."""
