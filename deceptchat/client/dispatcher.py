from __future__ import annotations
from typing import Callable, Dict, List, Optional

from deceptchat.client.connection import ConnectionManager
from deceptchat.client.state import ChatLog, ChatMessage, MatchState, MatchStatus
from deceptchat.shared.errors import NotConnectedError, ReconnectExhausted, TransportError
from deceptchat.shared.frames import ChatFrame, ChatSend, ControlFrame, Frame, FrameTag, RawFrame, RequestMatch
from deceptchat.shared.log import get_logger, log_frame

logger = get_logger(__name__)


StatusCallback = Callable[[str], None]
MessageCallback = Callable[[ChatMessage], None]
MatchCallback = Callable[[MatchStatus], None]

STATUS_CONNECTED = "Connected"
STATUS_CLOSED = "Connection closed"
STATUS_NOT_CONNECTED = "Not connected: message not sent"
STATUS_MATCH_NOT_SENT = "Not connected: match request not sent"
STATUS_QUEUED = "Matching..."
STATUS_MATCH_PENDING = "Already matching, wait for the current request"
STATUS_TIMED_OUT = "Match timed out, please retry"
STATUS_PEER_DISCONNECTED = "Opponent disconnected"
STATUS_QUEUE_FULL = "Match queue is full, please retry later"
STATUS_INVALID_ROLE = "Server rejected the requested role"
STATUS_EXHAUSTED = "Cannot connect to server. Reconnect manually to try again"


class SessionDispatcher:
    """
    Maps decoded frames and connection signals onto session state.

    Owns the chat log and the matchmaking status, and publishes every change
    to the UI through the status/message/match subscriptions.
    """

    def __init__(self, connection: ConnectionManager) -> None:
        self.connection = connection
        self.identity = connection.identity
        self.log = ChatLog()
        self.match = MatchStatus()
        self.status_text = ""
        self.can_send = False
        self.can_request_match = False
        self._status_callbacks: List[StatusCallback] = []
        self._message_callbacks: List[MessageCallback] = []
        self._match_callbacks: List[MatchCallback] = []

    # ========================================
    #           SUBSCRIPTIONS
    # ========================================

    def on_status(self, callback: StatusCallback) -> None:
        self._status_callbacks.append(callback)

    def on_message(self, callback: MessageCallback) -> None:
        self._message_callbacks.append(callback)

    def on_match(self, callback: MatchCallback) -> None:
        self._match_callbacks.append(callback)

    # ========================================
    #           INBOUND
    # ========================================

    def on_frame(self, frame: Frame) -> None:
        if isinstance(frame, ControlFrame):
            self._on_control(frame)
        elif isinstance(frame, ChatFrame):
            self._append(ChatMessage(sender=frame.sender, body=frame.body, is_self=frame.sender == self.identity))
        elif isinstance(frame, RawFrame):
            self._append(ChatMessage(sender=frame.sender or "", body=frame.body, is_self=False))
        else:
            log_frame(logger, "warning", "Ignoring unknown frame variant", frame=frame)

    def _on_control(self, frame: ControlFrame) -> None:
        handler = _CONTROL_HANDLERS.get(frame.tag)
        if handler is None:
            log_frame(logger, "warning", "No handler for control frame", frame=frame)
            return
        handler(self, frame)

    def _match_success(self, frame: ControlFrame) -> None:
        room_id = frame.arg(0)
        room_type = frame.arg(1)
        opponent_is_ai = {"0": True, "1": False}.get(room_type)
        self._set_match(MatchStatus.matched(room_id, opponent_is_ai=opponent_is_ai))
        self._set_status(f"Matched! Room ID: {room_id}")

    def _match_timeout(self, frame: ControlFrame) -> None:
        self._set_match(MatchStatus(MatchState.TIMED_OUT))
        self.can_request_match = True
        self._set_status(STATUS_TIMED_OUT)

    def _player_disconnected(self, frame: ControlFrame) -> None:
        self._set_match(MatchStatus(MatchState.PEER_DISCONNECTED))
        self.can_request_match = True
        self._set_status(STATUS_PEER_DISCONNECTED)

    def _match_queued(self, frame: ControlFrame) -> None:
        self._set_match(MatchStatus(MatchState.QUEUED))
        self._set_status(STATUS_QUEUED)

    def _queue_rejected(self, frame: ControlFrame) -> None:
        self._set_match(MatchStatus(MatchState.IDLE))
        self.can_request_match = True
        if frame.tag == FrameTag.MATCH_QUEUE_FULL:
            self._set_status(STATUS_QUEUE_FULL)
        else:
            self._set_status(STATUS_INVALID_ROLE)

    def _pong(self, frame: ControlFrame) -> None:
        log_frame(logger, "debug", "Keepalive reply", frame=frame)

    # ========================================
    #           CONNECTION SIGNALS
    # ========================================

    def on_connection_usable(self) -> None:
        self.can_send = True
        self.can_request_match = True
        self._set_status(STATUS_CONNECTED)

    def on_connection_unusable(self, error: Optional[TransportError]) -> None:
        self.can_send = False
        self.can_request_match = False
        if error is not None:
            self._set_status(f"Connection error: {error}")
        else:
            self._set_status(STATUS_CLOSED)

    def on_reconnect_scheduled(self, attempt: int, max_attempts: int, delay: float) -> None:
        self._set_status(f"Reconnecting in {delay:g}s (attempt {attempt}/{max_attempts})")

    def on_reconnect_exhausted(self, error: ReconnectExhausted) -> None:
        self._set_status(STATUS_EXHAUSTED)

    # ========================================
    #           USER REQUESTS
    # ========================================

    async def request_send(self, text: str) -> None:
        """Echo locally, then send. Blank input does nothing."""
        if not text.strip():
            return
        if not (self.can_send and self.connection.is_open):
            self._set_status(STATUS_NOT_CONNECTED)
            return

        self._append(ChatMessage(sender=self.identity, body=text, is_self=True))
        try:
            await self.connection.send(ChatSend(sender=self.identity, body=text))
        except NotConnectedError as e:
            logger.warning(f"Chat message not delivered: {e}")
            self._set_status(STATUS_NOT_CONNECTED)

    async def request_match(self, role: Optional[str] = None) -> None:
        """Ask to be queued. Status flips to QUEUED before the server confirms."""
        if not self.connection.is_open:
            self._set_status(STATUS_MATCH_NOT_SENT)
            return
        if not self.can_request_match:
            self._set_status(STATUS_MATCH_PENDING)
            return

        previous = self.match
        self.can_request_match = False
        # Set before awaiting the write so a fast reply cannot be overwritten
        self._set_match(MatchStatus(MatchState.QUEUED))
        self._set_status(STATUS_QUEUED)
        try:
            await self.connection.send(RequestMatch(role=role))
        except NotConnectedError as e:
            logger.warning(f"Match request not sent: {e}")
            self._set_match(previous)
            self.can_request_match = self.connection.is_open
            self._set_status(STATUS_MATCH_NOT_SENT)

    # ========================================
    #           STATE UPDATES
    # ========================================

    def _append(self, message: ChatMessage) -> None:
        self.log.append(message)
        for callback in list(self._message_callbacks):
            _safe_call(callback, message)

    def _set_status(self, text: str) -> None:
        self.status_text = text
        logger.debug(f"Status: {text}")
        for callback in list(self._status_callbacks):
            _safe_call(callback, text)

    def _set_match(self, status: MatchStatus) -> None:
        self.match = status
        for callback in list(self._match_callbacks):
            _safe_call(callback, status)


_CONTROL_HANDLERS: Dict[FrameTag, Callable[[SessionDispatcher, ControlFrame], None]] = {
    FrameTag.MATCH_SUCCESS: SessionDispatcher._match_success,
    FrameTag.MATCH_TIMEOUT: SessionDispatcher._match_timeout,
    FrameTag.PLAYER_DISCONNECTED: SessionDispatcher._player_disconnected,
    FrameTag.MATCH_QUEUED: SessionDispatcher._match_queued,
    FrameTag.MATCH_QUEUE_FULL: SessionDispatcher._queue_rejected,
    FrameTag.INVALID_ROLE: SessionDispatcher._queue_rejected,
    FrameTag.PONG: SessionDispatcher._pong,
}


def _safe_call(callback: Callable, *args: object) -> None:
    try:
        callback(*args)
    except Exception as e:
        logger.error(f"Subscriber {getattr(callback, '__name__', callback)!r} failed: {e}")
