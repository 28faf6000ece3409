import asyncio
import logging
import os
from typing import Any, Callable, List, Optional

import pytest
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK

# Keep test runs from writing logs/deceptchat.log
os.environ.setdefault("DECEPTCHAT_LOG_FILE", "0")

_CLOSE = object()
_DROP = object()


class DummyWebSocket:
    """In-memory stand-in for a websockets client connection."""

    def __init__(self) -> None:
        self.sent_messages: List[str] = []
        self.closed = False
        self.close_code: Optional[int] = None
        self.close_reason: Optional[str] = None
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def send(self, data: str) -> None:
        if self.closed:
            raise ConnectionClosedOK(None, None)
        self.sent_messages.append(data)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.closed = True
        self.close_code = code
        self.close_reason = reason
        self._inbox.put_nowait(_CLOSE)

    def feed(self, raw: Any) -> None:
        self._inbox.put_nowait(raw)

    def drop(self) -> None:
        """Simulate the server vanishing without a close handshake."""
        self._inbox.put_nowait(_DROP)

    def fail(self, exc: BaseException) -> None:
        """Make the receive loop raise `exc` on its next read."""
        self._inbox.put_nowait(exc)

    def __aiter__(self) -> "DummyWebSocket":
        return self

    async def __anext__(self) -> Any:
        item = await self._inbox.get()
        if item is _CLOSE:
            raise StopAsyncIteration
        if item is _DROP:
            self.closed = True
            raise ConnectionClosedError(None, None)
        if isinstance(item, BaseException):
            raise item
        return item


class DummyConnector:
    """Connector that refuses the first `failures` attempts, then hands out DummyWebSockets."""

    def __init__(self, failures: int = 0) -> None:
        self.failures = failures
        self.calls = 0
        self.urls: List[str] = []
        self.sockets: List[DummyWebSocket] = []

    async def __call__(self, url: str) -> DummyWebSocket:
        self.calls += 1
        self.urls.append(url)
        if self.failures > 0:
            self.failures -= 1
            raise OSError("Connection refused")
        ws = DummyWebSocket()
        self.sockets.append(ws)
        return ws


class RecordingListener:
    def __init__(self) -> None:
        self.frames: List[Any] = []
        self.events: List[tuple] = []

    def on_frame(self, frame: Any) -> None:
        self.frames.append(frame)

    def on_connection_usable(self) -> None:
        self.events.append(("usable",))

    def on_connection_unusable(self, error: Any) -> None:
        self.events.append(("unusable", error))

    def on_reconnect_scheduled(self, attempt: int, max_attempts: int, delay: float) -> None:
        self.events.append(("scheduled", attempt, max_attempts))

    def on_reconnect_exhausted(self, error: Any) -> None:
        self.events.append(("exhausted", error))

    def count(self, name: str) -> int:
        return sum(1 for event in self.events if event[0] == name)


async def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
    loop = asyncio.get_running_loop()
    end = loop.time() + timeout
    while loop.time() < end:
        if predicate():
            return True
        await asyncio.sleep(0.005)
    return predicate()


@pytest.fixture
def fast_config():
    from deceptchat.client.config import ClientConfig

    return ClientConfig(server_url="ws://chat.test/ws", reconnect_delay=0.01, max_reconnect_attempts=5)


@pytest.fixture(autouse=True)
def propagate_project_logs(monkeypatch):
    """Project loggers stop at their own handlers; let records reach caplog on the root."""
    from deceptchat.shared import log

    for name in list(log._loggers_configured):
        monkeypatch.setattr(logging.getLogger(name), "propagate", True)
