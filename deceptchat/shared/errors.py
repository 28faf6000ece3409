from __future__ import annotations

from typing import Optional


class ChatClientError(Exception):
    """Base class for client-side failures."""
    pass


class TransportError(ChatClientError):
    """Raised when the socket fails to open or drops. Triggers the reconnect policy."""

    def __init__(self, detail: str, *, code: Optional[int] = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.code = code


class ProtocolParseError(ChatClientError):
    """Raised when an inbound frame cannot be parsed. The frame is dropped."""

    def __init__(self, detail: str, raw: object = None) -> None:
        super().__init__(detail)
        self.raw = raw


class NotConnectedError(ChatClientError):
    """Raised when a send is attempted while the connection is not open."""
    pass


class ReconnectExhausted(ChatClientError):
    """Terminal: automatic retries are used up."""

    def __init__(self, attempts: int) -> None:
        super().__init__(f"Gave up after {attempts} reconnect attempts")
        self.attempts = attempts
