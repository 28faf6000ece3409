from __future__ import annotations
import random
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterator, List, Optional, Tuple

from deceptchat.shared.frames import DELIMITER


def random_identity(prefix: str = "Player", rng: Optional[random.Random] = None) -> str:
    """Session display name: prefix + 0..999. Not unique across clients."""
    rng = rng or random
    return f"{prefix}{rng.randint(0, 999)}"


def validate_identity(name: str) -> str:
    """Reject names the pipe-delimited wire format cannot carry."""
    if not name.strip():
        raise ValueError("Display name must not be blank")
    if DELIMITER in name:
        raise ValueError(f"Display name must not contain {DELIMITER!r}: {name!r}")
    return name


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    RECONNECT_SCHEDULED = "reconnect_scheduled"
    FAILED = "failed"


class MatchState(str, Enum):
    IDLE = "idle"
    QUEUED = "queued"
    MATCHED = "matched"
    TIMED_OUT = "timed_out"
    PEER_DISCONNECTED = "peer_disconnected"


@dataclass(frozen=True)
class MatchStatus:
    state: MatchState = MatchState.IDLE
    room_id: Optional[str] = None
    opponent_is_ai: Optional[bool] = None

    @classmethod
    def matched(cls, room_id: str, opponent_is_ai: Optional[bool] = None) -> MatchStatus:
        return cls(MatchState.MATCHED, room_id=room_id, opponent_is_ai=opponent_is_ai)


@dataclass(frozen=True)
class ChatMessage:
    sender: str
    body: str
    is_self: bool
    timestamp: datetime = field(default_factory=datetime.now)

    def time_label(self) -> str:
        return f"{self.timestamp.hour}:{self.timestamp.minute:02d}"


@dataclass
class ChatLog:
    """Append-only, in-order record of the session's messages."""
    _messages: List[ChatMessage] = field(default_factory=list)

    def append(self, message: ChatMessage) -> None:
        self._messages.append(message)

    @property
    def messages(self) -> Tuple[ChatMessage, ...]:
        return tuple(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[ChatMessage]:
        return iter(tuple(self._messages))
