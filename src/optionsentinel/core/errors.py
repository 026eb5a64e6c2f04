"""Error types raised by the flow engine."""

from typing import Optional


class UpstreamError(Exception):
    """Non-success response from the market-data provider."""

    def __init__(self, status: int, request_key: str, message: Optional[str] = None):
        super().__init__(message or f"Tradier error {status} on {request_key}")
        self.status = status
        self.request_key = request_key


class MalformedSubscription(Exception):
    """A viewer's subscribe message was invalid or not authorized."""


class TransportGone(Exception):
    """The viewer's socket can no longer be written to."""
