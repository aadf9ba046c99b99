"""
Binary tick decoder for the venue WebSocket feed.

Decodes one binary frame into raw tick records in wire units (prices in
hundredths, timestamps already resolved from the venue epoch). Pure:
no I/O and no state beyond the buffer it is given.

Binary layout
-------------
All integers are little-endian. The packet shape is selected by the total
frame length; the leading mode byte only confirms it.

=======  =========  ==================================================
Length   Mode       Fields
=======  =========  ==================================================
51       LTP        header (mode, segment, token, seq, time, ltp)
123      Quote      + ltq, avg price, volume, buy/sell qty, OHLC
379      Full/Snap  + last trade time, OI, OI %, depth, circuits, 52wk
=======  =========  ==================================================

Header (51 bytes)::

    0   u8       subscription mode
    1   u8       exchange segment
    2   25s      instrument token (NUL padded text)
    27  u64      sequence number
    35  u64      exchange time, seconds since 1980-01-01T00:00:00Z
    43  u64      last price (hundredths)

Depth block: 10 records of 20 bytes from offset 147
(i16 side, u64 quantity, u64 price, i16 orders); 5 bids then 5 asks.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from tickstream.live.errors import MalformedFrameError
from tickstream.live.types import Mode

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

LTP_PACKET_SIZE: int = 51
QUOTE_PACKET_SIZE: int = 123
FULL_PACKET_SIZE: int = 379

MIN_FRAME_SIZE: int = 2

DEPTH_OFFSET: int = 147
DEPTH_LEVELS: int = 10
DEPTH_RECORD_SIZE: int = 20
DEPTH_SIDE_LEVELS: int = 5

VENUE_EPOCH = datetime(1980, 1, 1, tzinfo=timezone.utc)

PACKET_MODES: dict[int, Mode] = {
    LTP_PACKET_SIZE: Mode.LTP,
    QUOTE_PACKET_SIZE: Mode.QUOTE,
    FULL_PACKET_SIZE: Mode.FULL,
}

# u64 fields are plain unsigned little-endian (high * 2**32 + low)
_HEADER = struct.Struct("<BB25sQQQ")
_QUOTE = struct.Struct("<QQQddQQQQ")
_FULL = struct.Struct("<QQd")
_DEPTH = struct.Struct("<hQQh")
_LIMITS = struct.Struct("<QQQQ")

_QUOTE_OFFSET = _HEADER.size
_FULL_OFFSET = _QUOTE_OFFSET + _QUOTE.size
_LIMITS_OFFSET = DEPTH_OFFSET + DEPTH_LEVELS * DEPTH_RECORD_SIZE


# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RawDepthEntry:
    """One depth record as found on the wire (price in hundredths)."""

    side: int
    quantity: int
    price: int
    orders: int


@dataclass(frozen=True, slots=True, kw_only=True)
class RawTick:
    """Decoded tick in wire units."""

    mode: Mode
    subscription_mode: int
    exchange_segment: int
    instrument_token: str
    sequence_number: int
    exchange_timestamp: Optional[datetime]
    last_price: int

    # Quote and Full
    last_traded_quantity: Optional[int] = None
    average_price: Optional[int] = None
    volume: Optional[int] = None
    buy_quantity: Optional[float] = None
    sell_quantity: Optional[float] = None
    open: Optional[int] = None
    high: Optional[int] = None
    low: Optional[int] = None
    close: Optional[int] = None

    # Full only
    last_trade_timestamp: Optional[datetime] = None
    open_interest: Optional[int] = None
    open_interest_change: Optional[float] = None
    depth: Optional[tuple[RawDepthEntry, ...]] = None
    upper_circuit_limit: Optional[int] = None
    lower_circuit_limit: Optional[int] = None
    week52_high: Optional[int] = None
    week52_low: Optional[int] = None

    @property
    def bids(self) -> tuple[RawDepthEntry, ...]:
        return self.depth[:DEPTH_SIDE_LEVELS] if self.depth else ()

    @property
    def asks(self) -> tuple[RawDepthEntry, ...]:
        return self.depth[DEPTH_SIDE_LEVELS:] if self.depth else ()


# ---------------------------------------------------------------------------
# Decoder
# ---------------------------------------------------------------------------


def from_venue_time(seconds: int) -> Optional[datetime]:
    """Convert seconds since the venue epoch to an aware UTC datetime; 0 is unset."""
    if seconds == 0:
        return None
    try:
        return VENUE_EPOCH + timedelta(seconds=seconds)
    except OverflowError as e:
        raise MalformedFrameError(
            f"Timestamp out of range: {seconds}",
            component="decoder",
        ) from e


def _decode_token(raw: bytes) -> str:
    return raw.replace(b"\x00", b" ").decode("utf-8", errors="replace").strip()


def decode_frame(buffer: bytes | bytearray | memoryview) -> list[RawTick]:
    """
    Decode one binary frame.

    Args:
        buffer: Raw binary WebSocket payload

    Returns:
        Zero or more raw ticks (frames under 2 bytes are noise and yield none)

    Raises:
        MalformedFrameError: If the frame length matches no known packet shape
    """
    length = len(buffer)
    if length < MIN_FRAME_SIZE:
        return []

    mode = PACKET_MODES.get(length)
    if mode is None:
        raise MalformedFrameError(
            f"Unrecognized frame length: {length} bytes",
            length=length,
            component="decoder",
        )

    sub_mode, segment, token, sequence, ex_time, ltp = _HEADER.unpack_from(buffer, 0)
    if sub_mode != mode.value:
        logger.debug(f"Mode byte {sub_mode} disagrees with {length}-byte packet ({mode.name})")

    fields: dict = {
        "mode": mode,
        "subscription_mode": sub_mode,
        "exchange_segment": segment,
        "instrument_token": _decode_token(token),
        "sequence_number": sequence,
        "exchange_timestamp": from_venue_time(ex_time),
        "last_price": ltp,
    }

    if mode is Mode.LTP:
        return [RawTick(**fields)]

    ltq, avg_price, volume, buy_qty, sell_qty, o, h, l, c = _QUOTE.unpack_from(
        buffer, _QUOTE_OFFSET
    )
    fields.update(
        last_traded_quantity=ltq,
        average_price=avg_price,
        volume=volume,
        buy_quantity=buy_qty,
        sell_quantity=sell_qty,
        open=o,
        high=h,
        low=l,
        close=c,
    )

    if mode is Mode.QUOTE:
        return [RawTick(**fields)]

    ltt, oi, oi_change = _FULL.unpack_from(buffer, _FULL_OFFSET)
    depth = tuple(
        RawDepthEntry(*_DEPTH.unpack_from(buffer, DEPTH_OFFSET + i * DEPTH_RECORD_SIZE))
        for i in range(DEPTH_LEVELS)
    )
    upper, lower, wk_high, wk_low = _LIMITS.unpack_from(buffer, _LIMITS_OFFSET)
    fields.update(
        last_trade_timestamp=from_venue_time(ltt),
        open_interest=oi,
        open_interest_change=oi_change,
        depth=depth,
        upper_circuit_limit=upper,
        lower_circuit_limit=lower,
        week52_high=wk_high,
        week52_low=wk_low,
    )
    return [RawTick(**fields)]
