import asyncio
import re

import pytest
import websockets

from conftest import DummyConnector, wait_for


class ScriptedServer:
    """Minimal matchmaking peer speaking the pipe protocol."""

    def __init__(self) -> None:
        self.received = []
        self.connections = 0
        self.drop_first = False
        self.peer_messages = []

    async def handler(self, websocket) -> None:
        self.connections += 1
        if self.drop_first and self.connections == 1:
            await websocket.recv()
            # Abort the TCP connection without a close handshake
            websocket.transport.abort()
            return
        async for message in websocket:
            self.received.append(message)
            if message == "REQUEST_MATCH":
                await websocket.send("MATCH_QUEUED")
                await websocket.send("MATCH_SUCCESS|room42")
                for relay in self.peer_messages:
                    await websocket.send(relay)


@pytest.mark.asyncio
async def test_queue_then_match_against_live_server():
    from deceptchat.client.config import ClientConfig
    from deceptchat.client.session import ChatClient
    from deceptchat.client.state import ConnectionState, MatchStatus

    server = ScriptedServer()
    server.peer_messages = ["Player3|hey|you"]
    async with websockets.serve(server.handler, "127.0.0.1", 0) as ws_server:
        port = ws_server.sockets[0].getsockname()[1]
        config = ClientConfig(server_url=f"ws://127.0.0.1:{port}", reconnect_delay=0.05)
        client = ChatClient(config, identity="Player7")
        statuses = []
        client.on_status(statuses.append)

        await client.connect()
        assert await wait_for(lambda: client.state == ConnectionState.OPEN)

        await client.request_match()
        assert await wait_for(lambda: client.match == MatchStatus.matched("room42") and len(client.log) == 1)

        await client.send_chat("hello|world")
        assert await wait_for(lambda: "Player7|hello|world" in server.received)

        assert server.received[:2] == ["SET_USERNAME|Player7", "REQUEST_MATCH"]
        assert [(m.sender, m.body, m.is_self) for m in client.log] == [
            ("Player3", "hey|you", False),
            ("Player7", "hello|world", True),
        ]
        assert statuses[0] == "Connected"
        assert statuses[-1] == "Matched! Room ID: room42"

        await client.disconnect()
        await asyncio.sleep(0.1)
        assert client.state == ConnectionState.DISCONNECTED
        assert server.connections == 1


@pytest.mark.asyncio
async def test_reconnects_after_server_drops_connection():
    from deceptchat.client.config import ClientConfig
    from deceptchat.client.session import ChatClient

    server = ScriptedServer()
    server.drop_first = True
    async with websockets.serve(server.handler, "127.0.0.1", 0) as ws_server:
        port = ws_server.sockets[0].getsockname()[1]
        config = ClientConfig(server_url=f"ws://127.0.0.1:{port}", reconnect_delay=0.05)
        client = ChatClient(config, identity="Player8")

        await client.connect()
        assert await wait_for(lambda: server.connections == 2 and client.connection.is_open, timeout=5.0)
        assert await wait_for(lambda: server.received == ["SET_USERNAME|Player8"])
        assert client.connection.reconnect_attempts == 0

        await client.dispose()


@pytest.mark.asyncio
async def test_unreachable_server_fails_after_retry_budget(fast_config):
    from deceptchat.client.dispatcher import STATUS_EXHAUSTED
    from deceptchat.client.session import ChatClient
    from deceptchat.client.state import ConnectionState

    connector = DummyConnector(failures=100)
    client = ChatClient(fast_config, connector=connector)

    await client.connect()
    await asyncio.wait_for(client.connection.wait_closed(), timeout=2.0)

    assert client.state == ConnectionState.FAILED
    assert client.status_text == STATUS_EXHAUSTED
    assert connector.calls == 6


def test_identity_is_random_player_name():
    from deceptchat.client.session import ChatClient

    client = ChatClient()
    assert re.fullmatch(r"Player\d{1,3}", client.identity)
    assert client.connection.identity == client.identity
    assert client.dispatcher.identity == client.identity


def test_identity_prefix_comes_from_config():
    from deceptchat.client.config import ClientConfig
    from deceptchat.client.session import ChatClient

    client = ChatClient(ClientConfig(username_prefix="Guest"))
    assert client.identity.startswith("Guest")


@pytest.mark.parametrize("name", ["Bob|x", "|", "", "   "])
def test_identity_that_breaks_framing_is_rejected(name):
    from deceptchat.client.session import ChatClient

    with pytest.raises(ValueError, match="Display name"):
        ChatClient(identity=name)


@pytest.mark.asyncio
async def test_ping_requires_open_connection(fast_config):
    from deceptchat.client.session import ChatClient
    from deceptchat.shared.errors import NotConnectedError

    connector = DummyConnector()
    client = ChatClient(fast_config, identity="Player1", connector=connector)
    with pytest.raises(NotConnectedError):
        await client.ping()

    await client.connect()
    assert await wait_for(lambda: client.connection.is_open)
    await client.ping()
    assert connector.sockets[0].sent_messages == ["SET_USERNAME|Player1", "PING"]
    await client.dispose()
