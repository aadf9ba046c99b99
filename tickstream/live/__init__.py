"""
Live Tick Stream Module.

This module provides real-time market data from the venue tick feed over a
single WebSocket: binary tick decoding, price normalization, subscription
bookkeeping and automatic reconnection with subscription replay.

Components:
- Ticker: Public client and event surface
- ConnectionManager: WebSocket lifecycle, keepalive, fixed-delay reconnection
- FrameRouter: JSON control vs binary tick classification
- decoder / normalizer: Wire packets -> RawTick -> Tick
- SubscriptionRegistry: (segment, token) -> mode, replayed after reconnect

Usage:
    from tickstream.live import EventType, Mode, Ticker, TickerConfig

    async def on_event(event):
        if event.type == EventType.CONNECT:
            await ticker.send_login()
            await ticker.subscribe("NSE", ["22", "99"], Mode.QUOTE)
        elif event.type == EventType.TICKS:
            ...

    ticker = Ticker(TickerConfig(api_key="...", access_token="..."), on_event)
    await ticker.connect()
"""

from tickstream.live.config import TickerConfig
from tickstream.live.errors import (
    ConfigurationError,
    MalformedFrameError,
    ProtocolError,
    ReconnectExhaustedError,
    SubscriptionError,
    TickerError,
    TransportError,
)
from tickstream.live.ticker import Ticker
from tickstream.live.types import (
    OHLC,
    ConnectionHealth,
    ConnectionState,
    DepthLevel,
    EventType,
    ExchangeSegment,
    MarketDepth,
    Mode,
    Tick,
    TickerEvent,
)

__all__ = [
    # Main entry point
    "Ticker",
    "TickerConfig",
    # Types
    "Mode",
    "ExchangeSegment",
    "ConnectionState",
    "EventType",
    "TickerEvent",
    "Tick",
    "OHLC",
    "DepthLevel",
    "MarketDepth",
    "ConnectionHealth",
    # Errors
    "TickerError",
    "ConfigurationError",
    "MalformedFrameError",
    "TransportError",
    "ProtocolError",
    "ReconnectExhaustedError",
    "SubscriptionError",
]
