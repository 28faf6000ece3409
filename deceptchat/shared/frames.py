from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Set, Tuple, Union

from deceptchat.shared.errors import ProtocolParseError
from deceptchat.shared.log import get_logger, log_frame

logger = get_logger(__name__)

DELIMITER = "|"


class FrameTag(str, Enum):
    """Wire tags. Field 0 of every tagged frame."""

    # Client -> server
    SET_USERNAME = "SET_USERNAME"              # announce identity after connect
    REQUEST_MATCH = "REQUEST_MATCH"            # join matchmaking queue, optional role
    PING = "PING"                              # application keepalive

    # Server -> client
    MATCH_SUCCESS = "MATCH_SUCCESS"            # roomId, optional room type (0 = AI, 1 = player)
    MATCH_TIMEOUT = "MATCH_TIMEOUT"            # matchmaking gave up
    PLAYER_DISCONNECTED = "PLAYER_DISCONNECTED"  # peer left an active match
    MATCH_QUEUED = "MATCH_QUEUED"              # queued, optional role echo
    MATCH_QUEUE_FULL = "MATCH_QUEUE_FULL"      # role queue has no room
    INVALID_ROLE = "INVALID_ROLE"              # role argument rejected
    PONG = "PONG"                              # keepalive reply

    @classmethod
    def from_string(cls, value: str) -> FrameTag:
        """Convert string to FrameTag, raise ValueError if unknown."""
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"Unknown frame tag: {value}")

    @classmethod
    def is_valid(cls, value: str) -> bool:
        try:
            cls(value)
            return True
        except ValueError:
            return False


# Tags that make an inbound frame a control frame rather than chat
CONTROL_TAGS: Set[FrameTag] = {
    FrameTag.MATCH_SUCCESS,
    FrameTag.MATCH_TIMEOUT,
    FrameTag.PLAYER_DISCONNECTED,
    FrameTag.MATCH_QUEUED,
    FrameTag.MATCH_QUEUE_FULL,
    FrameTag.INVALID_ROLE,
    FrameTag.PONG,
}

MATCH_ROLES: Set[str] = {"GUESSER", "MIMIC"}


# ========================================
#           INBOUND FRAMES
# ========================================

@dataclass(frozen=True)
class ControlFrame:
    tag: FrameTag
    args: Tuple[str, ...] = ()

    def arg(self, index: int, default: str = "") -> str:
        return self.args[index] if index < len(self.args) else default


@dataclass(frozen=True)
class ChatFrame:
    sender: str
    body: str


@dataclass(frozen=True)
class RawFrame:
    """Untagged single-field frame. Legacy servers send bare text this way."""
    body: str
    sender: Optional[str] = None


Frame = Union[ControlFrame, ChatFrame, RawFrame]


# ========================================
#           OUTBOUND EVENTS
# ========================================

@dataclass(frozen=True)
class SetUsername:
    name: str


@dataclass(frozen=True)
class ChatSend:
    sender: str
    body: str


@dataclass(frozen=True)
class RequestMatch:
    role: Optional[str] = None


@dataclass(frozen=True)
class Ping:
    pass


OutboundEvent = Union[SetUsername, ChatSend, RequestMatch, Ping]


# ========================================
#           CODEC
# ========================================

def encode(event: OutboundEvent) -> str:
    """
    Encode an outbound event into wire text.

    Chat bodies are written verbatim: a body containing the delimiter is not
    escaped, the receiver rejoins everything after the first delimiter.
    """
    if isinstance(event, SetUsername):
        return f"{FrameTag.SET_USERNAME.value}{DELIMITER}{event.name}"
    if isinstance(event, ChatSend):
        return f"{event.sender}{DELIMITER}{event.body}"
    if isinstance(event, RequestMatch):
        if event.role:
            return f"{FrameTag.REQUEST_MATCH.value}{DELIMITER}{event.role}"
        return FrameTag.REQUEST_MATCH.value
    if isinstance(event, Ping):
        return FrameTag.PING.value
    raise TypeError(f"Cannot encode {type(event).__name__}")


def decode(raw: Union[str, bytes]) -> Optional[Frame]:
    """
    Decode one wire message.

    Returns None for an empty message (keepalive). Raises ProtocolParseError
    for input that is not text.
    """
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = bytes(raw).decode('utf-8')
        except UnicodeDecodeError as e:
            raise ProtocolParseError(f"Frame is not valid UTF-8: {e}", raw=raw) from e
    if not isinstance(raw, str):
        raise ProtocolParseError(f"Unsupported frame type {type(raw).__name__}", raw=raw)

    if not raw:
        return None

    parts = raw.split(DELIMITER)
    head = parts[0]

    if FrameTag.is_valid(head) and FrameTag(head) in CONTROL_TAGS:
        return ControlFrame(tag=FrameTag(head), args=tuple(parts[1:]))

    if len(parts) >= 2:
        return ChatFrame(sender=head, body=DELIMITER.join(parts[1:]))

    frame = RawFrame(body=raw)
    log_frame(logger, "warning", f"Received simple message: {raw!r}", frame=frame)
    return frame
