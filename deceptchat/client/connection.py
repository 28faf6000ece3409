from __future__ import annotations
import asyncio
from typing import Any, Awaitable, Callable, Optional, Protocol, Set, Union

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK, WebSocketException

from deceptchat.client.config import ClientConfig
from deceptchat.client.state import ConnectionState
from deceptchat.shared.errors import NotConnectedError, ProtocolParseError, ReconnectExhausted, TransportError
from deceptchat.shared.frames import Frame, OutboundEvent, SetUsername, decode, encode
from deceptchat.shared.log import get_logger

logger = get_logger(__name__)


Connector = Callable[[str], Awaitable[Any]]

# States in which no socket is open or pending
_SETTLED_STATES: Set[ConnectionState] = {
    ConnectionState.DISCONNECTED,
    ConnectionState.FAILED,
}

# States from which connect() may start a new attempt
_CONNECTABLE_STATES: Set[ConnectionState] = {
    ConnectionState.DISCONNECTED,
    ConnectionState.RECONNECT_SCHEDULED,
    ConnectionState.FAILED,
}

_CONNECT_ERRORS = (OSError, asyncio.TimeoutError, WebSocketException)


class ConnectionListener(Protocol):
    """Receives everything the connection manager observes. Methods run on the event loop."""

    def on_frame(self, frame: Frame) -> None: ...

    def on_connection_usable(self) -> None: ...

    def on_connection_unusable(self, error: Optional[TransportError]) -> None: ...

    def on_reconnect_scheduled(self, attempt: int, max_attempts: int, delay: float) -> None: ...

    def on_reconnect_exhausted(self, error: ReconnectExhausted) -> None: ...


class ConnectionManager:
    """
    Owns the one WebSocket of a chat session and its reconnect policy.

    State machine:
        DISCONNECTED -> CONNECTING -> OPEN -> CLOSING -> DISCONNECTED
        CONNECTING|OPEN --(transport closed)--> RECONNECT_SCHEDULED | FAILED

    A close the user did not ask for schedules a retry after `reconnect_delay`
    seconds while fewer than `max_reconnect_attempts` retries have been
    scheduled since the last successful open. The counter is incremented when
    the retry is scheduled. Once the budget is spent the manager parks in
    FAILED until connect() is called again.
    """

    def __init__(
        self,
        config: ClientConfig,
        identity: str,
        connector: Optional[Connector] = None,
        listener: Optional[ConnectionListener] = None,
    ) -> None:
        self.config = config
        self.identity = identity
        self.listener = listener
        self.websocket: Optional[Any] = None
        self._connector: Connector = connector or self._default_connector
        self._state = ConnectionState.DISCONNECTED
        self._attempts = 0
        self._retry_handle: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Task] = None
        self._user_closing = False
        self._disposed = False
        self._settled = asyncio.Event()
        self._settled.set()

    # ========================================
    #           PUBLIC API
    # ========================================

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def reconnect_attempts(self) -> int:
        return self._attempts

    @property
    def is_open(self) -> bool:
        return self._state == ConnectionState.OPEN

    async def connect(self) -> None:
        """
        Start a connection attempt with a fresh retry budget.

        Returns once the attempt is started; open/close outcomes arrive
        through the listener. Ignored while a socket is open or pending.
        """
        if self._disposed:
            raise RuntimeError("ConnectionManager has been disposed")
        if self._state not in _CONNECTABLE_STATES:
            logger.warning(f"connect() ignored while {self._state.value}")
            return

        self._cancel_retry()
        self._attempts = 0
        self._user_closing = False
        self._start_attempt()

    async def disconnect(self) -> None:
        """User-initiated close. Never schedules a retry and cancels a pending one."""
        self._cancel_retry()
        self._user_closing = True

        if self._state in _CONNECTABLE_STATES:
            self._set_state(ConnectionState.DISCONNECTED)
            return
        if self._state == ConnectionState.CLOSING:
            await self.wait_closed()
            return

        connecting = self._state == ConnectionState.CONNECTING
        self._set_state(ConnectionState.CLOSING)
        task = self._task
        if connecting and task is not None and not task.done():
            task.cancel()

        if self.websocket is not None:
            await self._close_socket(self.websocket)

        if task is not None and task is not asyncio.current_task():
            await asyncio.wait({task})
            if not task.cancelled() and task.exception() is not None:
                logger.error(f"Connection task failed: {task.exception()}")

        if self._state != ConnectionState.DISCONNECTED:
            self._handle_closed(None)

    async def send(self, event: OutboundEvent) -> None:
        """Write one frame. Raises NotConnectedError unless OPEN; nothing is queued."""
        websocket = self.websocket
        if self._state != ConnectionState.OPEN or websocket is None:
            raise NotConnectedError(f"Cannot send while {self._state.value}")

        text = encode(event)
        try:
            await websocket.send(text)
        except ConnectionClosed as e:
            logger.warning(f"Connection closed while sending {type(event).__name__}")
            raise NotConnectedError("Connection closed while sending") from e
        logger.debug(f"Sent {type(event).__name__} frame", extra={"user_id": self.identity})

    async def wait_closed(self) -> None:
        """Wait until no socket is open or pending and no retry is scheduled."""
        while self._state not in _SETTLED_STATES:
            await self._settled.wait()

    async def dispose(self) -> None:
        """Close for good. The instance cannot be reconnected afterwards."""
        await self.disconnect()
        self.listener = None
        self._disposed = True

    # ========================================
    #           CONNECTION TASK
    # ========================================

    async def _default_connector(self, url: str) -> Any:
        return await websockets.connect(
            url,
            ping_interval=self.config.ping_interval,
            ping_timeout=self.config.ping_timeout,
        )

    def _start_attempt(self) -> None:
        self._set_state(ConnectionState.CONNECTING)
        logger.info(f"Connecting to {self.config.server_url}", extra={"user_id": self.identity})
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        url = self.config.server_url
        try:
            websocket = await self._connector(url)
        except _CONNECT_ERRORS as e:
            logger.warning(f"Connection to {url} failed: {e!r}")
            self._handle_closed(TransportError(str(e) or type(e).__name__))
            return
        except Exception as e:
            logger.error(f"Unexpected error connecting to {url}: {e!r}")
            self._handle_closed(TransportError(f"Unexpected error: {e!r}"))
            return

        self.websocket = websocket
        error: Optional[TransportError] = None
        try:
            await self._handle_open(websocket)
            async for raw in websocket:
                self._handle_raw(raw)
        except ConnectionClosedOK:
            pass
        except ConnectionClosed as e:
            error = TransportError(f"Connection lost: {e}", code=e.rcvd.code if e.rcvd else None)
        except OSError as e:
            error = TransportError(str(e) or type(e).__name__)
        except Exception as e:
            logger.error(f"Receive loop failed: {e!r}")
            # The socket may still be up; release it before any retry opens another
            await self._close_socket(websocket, reason="client error")
            error = TransportError(f"Unexpected error: {e!r}")
        self._handle_closed(error)

    async def _handle_open(self, websocket: Any) -> None:
        self._attempts = 0
        # Identity goes out before anything the application sends
        await websocket.send(encode(SetUsername(self.identity)))
        self._set_state(ConnectionState.OPEN)
        logger.info("Connected", extra={"user_id": self.identity})
        self._notify("on_connection_usable")

    def _handle_raw(self, raw: Union[str, bytes]) -> None:
        try:
            frame = decode(raw)
            if frame is None:
                return
            if self.listener is not None:
                self.listener.on_frame(frame)
        except ProtocolParseError as e:
            logger.warning(f"Dropped malformed frame: {e}")
        except Exception as e:
            logger.error(f"Failed to parse/process inbound frame: {e}; raw={raw!r}")

    def _handle_closed(self, error: Optional[TransportError]) -> None:
        self.websocket = None

        if self._user_closing:
            self._set_state(ConnectionState.DISCONNECTED)
            logger.info("Connection closed by user", extra={"user_id": self.identity})
            self._notify("on_connection_unusable", None)
            return

        if error is not None:
            logger.warning(f"Connection closed: {error}", extra={"user_id": self.identity})
        else:
            logger.info("Connection closed by server", extra={"user_id": self.identity})
        self._state = ConnectionState.DISCONNECTED
        self._notify("on_connection_unusable", error)

        max_attempts = self.config.max_reconnect_attempts
        if self._attempts < max_attempts:
            self._attempts += 1
            delay = self.config.reconnect_delay
            self._set_state(ConnectionState.RECONNECT_SCHEDULED)
            self._retry_handle = asyncio.get_running_loop().call_later(delay, self._fire_retry)
            logger.info(f"Reconnecting in {delay}s (attempt {self._attempts}/{max_attempts})")
            self._notify("on_reconnect_scheduled", self._attempts, max_attempts, delay)
        else:
            self._set_state(ConnectionState.FAILED)
            exhausted = ReconnectExhausted(self._attempts)
            logger.error(str(exhausted), extra={"user_id": self.identity})
            self._notify("on_reconnect_exhausted", exhausted)

    def _fire_retry(self) -> None:
        self._retry_handle = None
        if self._user_closing or self._state != ConnectionState.RECONNECT_SCHEDULED:
            return
        self._start_attempt()

    # ========================================
    #           HELPERS
    # ========================================

    def _cancel_retry(self) -> None:
        if self._retry_handle is not None:
            self._retry_handle.cancel()
            self._retry_handle = None
            logger.debug("Cancelled pending reconnect")

    async def _close_socket(self, websocket: Any, reason: str = "logout") -> None:
        try:
            await websocket.close(code=1000, reason=reason)
        except Exception as e:
            logger.error(f"Error closing connection: {e}")

    def _set_state(self, state: ConnectionState) -> None:
        if state != self._state:
            logger.debug(f"{self._state.value} -> {state.value}", extra={"connection_state": state.value})
        self._state = state
        if state in _SETTLED_STATES:
            self._settled.set()
        else:
            self._settled.clear()

    def _notify(self, method: str, *args: Any) -> None:
        listener = self.listener
        handler = getattr(listener, method, None) if listener is not None else None
        if handler is None:
            return
        try:
            handler(*args)
        except Exception as e:
            logger.error(f"Listener {method} failed: {e}")
