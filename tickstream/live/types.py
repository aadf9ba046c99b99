"""
Shared types, enums, and data structures for the streaming tick client.

This module contains types that are used across multiple components
of the client: wire constants, the public tick records, and
connection health snapshots.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Union

from tickstream.live.errors import SubscriptionError


class Mode(int, Enum):
    """Subscription detail level, encoded on the wire as 1/2/3."""

    LTP = 1
    QUOTE = 2
    FULL = 3
    SNAP = 3  # alias of FULL

    @classmethod
    def parse(cls, value: Union["Mode", int, str]) -> "Mode":
        """Resolve a Mode from an enum member, wire code or name ("ltp", "full", ...)."""
        if isinstance(value, Mode):
            return value
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError as e:
                raise SubscriptionError(f"Unknown mode: {value!r}", mode=value) from e
        try:
            return cls(value)
        except ValueError as e:
            raise SubscriptionError(f"Unknown mode: {value!r}", mode=value) from e


class ExchangeSegment(int, Enum):
    """Exchange segment codes used in `exchangeType` and the tick header."""

    NSE_CM = 1  # NSE cash
    NSE_FO = 2  # NSE futures & options
    BSE_CM = 3  # BSE cash
    BSE_FO = 4  # BSE futures & options
    NSE_CD = 13  # NSE currency derivatives

    @classmethod
    def parse(cls, value: Union["ExchangeSegment", int, str]) -> "ExchangeSegment":
        """Resolve a segment from an enum member, wire code or venue alias."""
        if isinstance(value, ExchangeSegment):
            return value
        if isinstance(value, str):
            segment = SEGMENT_ALIASES.get(value.strip().lower())
            if segment is None:
                raise SubscriptionError(f"Unknown exchange segment: {value!r}", segment=value)
            return segment
        try:
            return cls(value)
        except ValueError as e:
            raise SubscriptionError(f"Unknown exchange segment: {value!r}", segment=value) from e


SEGMENT_ALIASES: dict[str, ExchangeSegment] = {
    "nsecm": ExchangeSegment.NSE_CM,
    "nse": ExchangeSegment.NSE_CM,
    "nsefo": ExchangeSegment.NSE_FO,
    "nfo": ExchangeSegment.NSE_FO,
    "bsecm": ExchangeSegment.BSE_CM,
    "bse": ExchangeSegment.BSE_CM,
    "bsefo": ExchangeSegment.BSE_FO,
    "bfo": ExchangeSegment.BSE_FO,
    "nsecd": ExchangeSegment.NSE_CD,
    "cds": ExchangeSegment.NSE_CD,
}


class ConnectionState(str, Enum):
    """State machine for the WebSocket connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"


class MessageType(str, Enum):
    """Classification of an inbound frame after routing."""

    TICKS = "ticks"
    ORDER_UPDATE = "order_update"
    TRADE_UPDATE = "trade_update"
    ERROR = "error"
    UNKNOWN = "unknown"


class EventType(str, Enum):
    """Events delivered to the ticker consumer."""

    CONNECT = "connect"
    TICKS = "ticks"
    ORDER_UPDATE = "order_update"
    TRADE_UPDATE = "trade_update"
    ERROR = "error"
    CLOSE = "close"


# --- Tick records ---


@dataclass(frozen=True, slots=True)
class OHLC:
    """Session open/high/low/close in rupees."""

    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal


@dataclass(frozen=True, slots=True)
class DepthLevel:
    """Single price level of the market depth ladder."""

    side: int  # Venue buy/sell flag
    quantity: int
    price: Decimal
    orders: int


@dataclass(frozen=True, slots=True)
class MarketDepth:
    """Five best bids and five best asks."""

    bids: tuple[DepthLevel, ...]
    asks: tuple[DepthLevel, ...]

    @property
    def best_bid(self) -> Optional[Decimal]:
        """Best bid price, or None if empty."""
        return self.bids[0].price if self.bids else None

    @property
    def best_ask(self) -> Optional[Decimal]:
        """Best ask price, or None if empty."""
        return self.asks[0].price if self.asks else None


@dataclass(frozen=True, slots=True, kw_only=True)
class Tick:
    """
    One normalized market-data observation for one instrument.

    Prices are rupees as Decimal. A price of zero is the venue's
    "not available" sentinel and is never a real quote.
    """

    mode: Mode
    exchange_segment: int
    instrument_token: str
    sequence_number: int
    exchange_timestamp: Optional[datetime]
    last_price: Decimal

    # Quote and Full
    last_traded_quantity: Optional[int] = None
    average_price: Optional[Decimal] = None
    volume: Optional[int] = None
    buy_quantity: Optional[float] = None
    sell_quantity: Optional[float] = None
    ohlc: Optional[OHLC] = None

    # Full only
    last_trade_timestamp: Optional[datetime] = None
    open_interest: Optional[int] = None
    open_interest_change: Optional[float] = None
    depth: Optional[MarketDepth] = None
    upper_circuit_limit: Optional[Decimal] = None
    lower_circuit_limit: Optional[Decimal] = None
    week52_high: Optional[Decimal] = None
    week52_low: Optional[Decimal] = None

    @property
    def key(self) -> tuple[int, str]:
        """(segment, token) identity used by the subscription registry."""
        return (self.exchange_segment, self.instrument_token)


# --- Event surface ---


@dataclass(frozen=True, slots=True)
class TickerEvent:
    """
    Tagged event delivered to the single ticker consumer.

    Only the fields relevant to `type` are populated:
    - TICKS: ticks
    - ORDER_UPDATE / TRADE_UPDATE: data
    - ERROR: error
    - CLOSE: code, reason
    """

    type: EventType
    ticks: tuple[Tick, ...] = ()
    data: Optional[dict[str, Any]] = None
    error: Optional[Exception] = None
    code: Optional[int] = None
    reason: str = ""


# --- Health ---


@dataclass
class ConnectionHealth:
    """Health snapshot for the WebSocket connection."""

    state: ConnectionState
    url: str
    connected_since: Optional[datetime] = None
    last_message_at: Optional[datetime] = None
    reconnect_count: int = 0
    message_count: int = 0
    error_count: int = 0
    last_error: Optional[str] = None
    last_error_at: Optional[datetime] = None

    @property
    def uptime_s(self) -> Optional[float]:
        """Connection uptime in seconds, or None if not connected."""
        if self.connected_since is None:
            return None
        now = datetime.now(timezone.utc)
        return (now - self.connected_since).total_seconds()

    @property
    def is_healthy(self) -> bool:
        """Check if connection is in a healthy state."""
        return self.state == ConnectionState.OPEN


@dataclass
class ConnectionMetrics:
    """Counters for a WebSocket connection."""

    messages_received: int = 0
    bytes_received: int = 0
    frames_sent: int = 0
    pings_sent: int = 0
    reconnections: int = 0
    errors: int = 0

    # monotonic times
    connected_at: Optional[float] = None
    last_message_at: Optional[float] = None
