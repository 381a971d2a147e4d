"""Shared fixtures for gateway and client tests."""

import asyncio
import json
import os
import tempfile

# ── Keep gateway log files out of the working tree ───────────────────────
os.environ.setdefault("MINI_DISCORD_LOG_DIR", tempfile.mkdtemp(prefix="mini-discord-logs-"))

import pytest
import pytest_asyncio
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK

from mini_discord.config import DiscordConfig
from mini_discord.gateway import DiscordGateway

_CLOSED = object()
_DROPPED = object()


class FakeSocket:
    """In-memory stand-in for a websockets client connection.

    Frames queued with feed() are yielded by async iteration; close() and
    server_close() end the iteration like a real closing handshake, drop()
    ends it with ConnectionClosedError like a network failure.
    """

    def __init__(self, url: str):
        self.url = url
        self.sent: list[str] = []
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.closed = False
        self.close_code = None
        self.close_reason = None

    @property
    def frames(self) -> list[dict]:
        return [json.loads(text) for text in self.sent]

    @property
    def ops(self) -> list[int]:
        return [frame["op"] for frame in self.frames]

    async def send(self, text: str) -> None:
        if self.closed:
            raise ConnectionClosedOK(None, None)
        self.sent.append(text)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self.closed:
            return
        self.closed = True
        self.close_code = code
        self.close_reason = reason
        self.incoming.put_nowait(_CLOSED)

    def feed(self, frame) -> None:
        """Queue an inbound frame (dict frames are JSON encoded)."""
        self.incoming.put_nowait(frame if isinstance(frame, str) else json.dumps(frame))

    def server_close(self, code: int = 1001, reason: str = "going away") -> None:
        self.closed = True
        self.close_code = code
        self.close_reason = reason
        self.incoming.put_nowait(_CLOSED)

    def drop(self) -> None:
        self.closed = True
        self.close_code = 1006
        self.incoming.put_nowait(_DROPPED)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self.incoming.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        if item is _DROPPED:
            raise ConnectionClosedError(None, None)
        return item


class FakeConnector:
    """Connector recording every socket the gateway opens."""

    def __init__(self):
        self.sockets: list[FakeSocket] = []
        self.urls: list[str] = []
        self.fail_with = None
        self.hang = False

    async def __call__(self, url: str) -> FakeSocket:
        self.urls.append(url)
        if self.fail_with is not None:
            raise self.fail_with
        if self.hang:
            await asyncio.Event().wait()
        socket = FakeSocket(url)
        self.sockets.append(socket)
        return socket

    @property
    def live(self) -> list[FakeSocket]:
        return [s for s in self.sockets if not s.closed]


async def _wait_until(predicate, timeout: float = 1.0) -> None:
    async def _poll():
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout=timeout)


def hello(interval_ms: float = 41250) -> dict:
    return {"op": 10, "d": {"heartbeat_interval": interval_ms}}


def ready(session_id: str = "session-1", seq: int = 1,
          resume_url: str = "wss://resume.discord.gg") -> dict:
    return {
        "op": 0,
        "t": "READY",
        "s": seq,
        "d": {
            "session_id": session_id,
            "resume_gateway_url": resume_url,
            "user": {"username": "bot"},
        },
    }


def dispatch(t: str, seq: int, d=None) -> dict:
    return {"op": 0, "t": t, "s": seq, "d": d if d is not None else {}}


@pytest.fixture
def connector():
    return FakeConnector()


@pytest.fixture
def wait_until():
    """Poll a predicate until it holds (fails the test after the timeout)."""
    return _wait_until


@pytest.fixture
def frames():
    """Builders for common server frames."""
    return {"hello": hello, "ready": ready, "dispatch": dispatch}


def make_config(**overrides) -> DiscordConfig:
    options = {
        "token": "test-token",
        "gateway_reconnect_delay": -1,
        "gateway_connect_timeout": 1.0,
    }
    options.update(overrides)
    return DiscordConfig(**options)


@pytest.fixture
def config_factory():
    return make_config


@pytest_asyncio.fixture
async def make_gateway(connector):
    """Build gateways on the fake connector; all are disconnected afterwards."""
    created: list[DiscordGateway] = []

    def _make(endpoint_provider=None, **overrides) -> DiscordGateway:
        gateway = DiscordGateway(
            make_config(**overrides),
            endpoint_provider=endpoint_provider,
            connector=connector,
        )
        created.append(gateway)
        return gateway

    yield _make

    for gateway in created:
        await gateway.disconnect()
