from __future__ import annotations
from typing import Optional

from deceptchat.client.config import ClientConfig
from deceptchat.client.connection import ConnectionManager, Connector
from deceptchat.client.dispatcher import MatchCallback, MessageCallback, SessionDispatcher, StatusCallback
from deceptchat.client.state import ChatLog, ConnectionState, MatchStatus, random_identity, validate_identity
from deceptchat.shared.frames import Ping


class ChatClient:
    """
    What a UI adapter talks to: one identity, one connection, one dispatcher.

    Lifecycle: create -> connect -> ... -> dispose. Instances share nothing.
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        identity: Optional[str] = None,
        connector: Optional[Connector] = None,
    ) -> None:
        self.config = config or ClientConfig()
        if identity is None:
            identity = random_identity(self.config.username_prefix)
        self.identity = validate_identity(identity)
        self.connection = ConnectionManager(self.config, self.identity, connector=connector)
        self.dispatcher = SessionDispatcher(self.connection)
        self.connection.listener = self.dispatcher

    async def connect(self) -> None:
        await self.connection.connect()

    async def send_chat(self, text: str) -> None:
        await self.dispatcher.request_send(text)

    async def request_match(self, role: Optional[str] = None) -> None:
        await self.dispatcher.request_match(role)

    async def ping(self) -> None:
        await self.connection.send(Ping())

    async def disconnect(self) -> None:
        await self.connection.disconnect()

    async def dispose(self) -> None:
        await self.connection.dispose()

    def on_status(self, callback: StatusCallback) -> None:
        self.dispatcher.on_status(callback)

    def on_message(self, callback: MessageCallback) -> None:
        self.dispatcher.on_message(callback)

    def on_match(self, callback: MatchCallback) -> None:
        self.dispatcher.on_match(callback)

    @property
    def state(self) -> ConnectionState:
        return self.connection.state

    @property
    def status_text(self) -> str:
        return self.dispatcher.status_text

    @property
    def match(self) -> MatchStatus:
        return self.dispatcher.match

    @property
    def log(self) -> ChatLog:
        return self.dispatcher.log
