"""
Shared fixtures for the live tick stream tests.

FakeWebSocket mimics the subset of aiohttp.ClientWebSocketResponse the
ConnectionManager uses; FakeConnector stands in for session.ws_connect.
"""

from __future__ import annotations

import asyncio
import struct
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

import aiohttp
import pytest

from tickstream.live.config import TickerConfig

_HEADER = struct.Struct("<BB25sQQQ")
_QUOTE = struct.Struct("<QQQddQQQQ")
_FULL = struct.Struct("<QQd")
_DEPTH = struct.Struct("<hQQh")
_LIMITS = struct.Struct("<QQQQ")


def build_packet(
    *,
    mode: int = 1,
    segment: int = 1,
    token: str = "22",
    sequence: int = 1,
    exchange_time: int = 0,
    last_price: int = 250050,
    quote: Sequence[Any] = (0, 0, 0, 0.0, 0.0, 0, 0, 0, 0),
    full: Sequence[Any] = (0, 0, 0.0),
    depth: Optional[Sequence[Sequence[int]]] = None,
    limits: Sequence[int] = (0, 0, 0, 0),
) -> bytes:
    """Pack a 51/123/379 byte tick packet for the given mode."""
    buf = _HEADER.pack(mode, segment, token.encode(), sequence, exchange_time, last_price)
    if mode >= 2:
        buf += _QUOTE.pack(*quote)
    if mode >= 3:
        buf += _FULL.pack(*full)
        levels = depth if depth is not None else [(0, 0, 0, 0)] * 10
        buf += b"".join(_DEPTH.pack(*level) for level in levels)
        buf += _LIMITS.pack(*limits)
    return buf


@dataclass
class FakeMessage:
    type: aiohttp.WSMsgType
    data: Any = None


class FakeWebSocket:
    """In-memory WebSocket driven by the test."""

    def __init__(self) -> None:
        self.sent: list[str] = []
        self.pings = 0
        self.closed = False
        self.close_code: Optional[int] = None
        self.close_calls: list[tuple[int, bytes]] = []
        self._incoming: asyncio.Queue[Optional[FakeMessage]] = asyncio.Queue()
        self._error: Optional[BaseException] = None

    # --- Test controls ---

    def feed_binary(self, data: bytes) -> None:
        self._incoming.put_nowait(FakeMessage(aiohttp.WSMsgType.BINARY, data))

    def feed_text(self, data: str) -> None:
        self._incoming.put_nowait(FakeMessage(aiohttp.WSMsgType.TEXT, data))

    def drop(self, error: Optional[BaseException] = None) -> None:
        """Simulate a transport failure."""
        self._error = error or ConnectionResetError("connection reset by peer")
        self.closed = True
        self._incoming.put_nowait(FakeMessage(aiohttp.WSMsgType.ERROR))

    def server_close(self, code: int = 1006) -> None:
        """Simulate the peer closing the socket."""
        self.close_code = code
        self._incoming.put_nowait(None)

    # --- aiohttp surface ---

    def __aiter__(self) -> "FakeWebSocket":
        return self

    async def __anext__(self) -> FakeMessage:
        msg = await self._incoming.get()
        if msg is None:
            self.closed = True
            raise StopAsyncIteration
        return msg

    def exception(self) -> Optional[BaseException]:
        return self._error

    async def send_str(self, data: str) -> None:
        if self.closed:
            raise ConnectionResetError("socket is closed")
        self.sent.append(data)

    async def ping(self, message: bytes = b"") -> None:
        self.pings += 1

    async def close(self, *, code: int = 1000, message: bytes = b"") -> bool:
        if self.closed:
            return False
        self.closed = True
        self.close_code = code
        self.close_calls.append((code, message))
        self._incoming.put_nowait(None)
        return True


class FakeConnector:
    """
    Socket opener handing out FakeWebSockets.

    `plan` holds per-call outcomes (an exception to raise or None to open);
    once empty, `fail_with` decides (None opens). `setup` holds callables
    applied, one per socket, to the next sockets handed out.
    """

    def __init__(self) -> None:
        self.calls = 0
        self.urls: list[str] = []
        self.sockets: list[FakeWebSocket] = []
        self.plan: list[Optional[BaseException]] = []
        self.fail_with: Optional[BaseException] = None
        self.setup: list[Callable[[FakeWebSocket], None]] = []

    async def __call__(self, url: str) -> FakeWebSocket:
        self.calls += 1
        self.urls.append(url)
        outcome = self.plan.pop(0) if self.plan else self.fail_with
        if outcome is not None:
            raise outcome
        ws = FakeWebSocket()
        if self.setup:
            self.setup.pop(0)(ws)
        self.sockets.append(ws)
        return ws

    @property
    def last(self) -> FakeWebSocket:
        return self.sockets[-1]


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Yield to the event loop until predicate() holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def config() -> TickerConfig:
    """Fast config: no reconnect delay, keepalive far in the future."""
    return TickerConfig(
        api_key="key-123",
        access_token="token-abc",
        max_reconnect_attempts=5,
        reconnect_delay_s=0.0,
        ping_interval_s=60.0,
    )


@pytest.fixture
def packet() -> Callable[..., bytes]:
    return build_packet


@pytest.fixture
def wait() -> Callable[..., Any]:
    return wait_until
