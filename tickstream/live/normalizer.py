"""
Price/field normalization for decoded ticks.

Turns a RawTick (hundredths) into the public Tick (rupees as Decimal).
Only strictly positive prices are divided: zero is the venue's
"not applicable" sentinel and must survive unchanged.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable, Optional

from tickstream.live.decoder import RawDepthEntry, RawTick
from tickstream.live.types import OHLC, DepthLevel, MarketDepth, Tick

PRICE_DIVISOR = Decimal(100)
ZERO = Decimal(0)


def to_price(raw: Optional[int]) -> Optional[Decimal]:
    """Convert a wire price in hundredths; None stays None, <= 0 is kept as is."""
    if raw is None:
        return None
    if raw > 0:
        return Decimal(raw) / PRICE_DIVISOR
    return Decimal(raw)


def _depth_level(entry: RawDepthEntry) -> DepthLevel:
    return DepthLevel(
        side=entry.side,
        quantity=entry.quantity,
        price=to_price(entry.price) or ZERO,
        orders=entry.orders,
    )


def normalize_tick(raw: RawTick) -> Tick:
    """Build the public tick record from a raw decoded tick."""
    ohlc = None
    if raw.open is not None:
        ohlc = OHLC(
            open=to_price(raw.open) or ZERO,
            high=to_price(raw.high) or ZERO,
            low=to_price(raw.low) or ZERO,
            close=to_price(raw.close) or ZERO,
        )

    depth = None
    if raw.depth is not None:
        depth = MarketDepth(
            bids=tuple(_depth_level(e) for e in raw.bids),
            asks=tuple(_depth_level(e) for e in raw.asks),
        )

    return Tick(
        mode=raw.mode,
        exchange_segment=raw.exchange_segment,
        instrument_token=raw.instrument_token,
        sequence_number=raw.sequence_number,
        exchange_timestamp=raw.exchange_timestamp,
        last_price=to_price(raw.last_price) or ZERO,
        last_traded_quantity=raw.last_traded_quantity,
        average_price=to_price(raw.average_price),
        volume=raw.volume,
        buy_quantity=raw.buy_quantity,
        sell_quantity=raw.sell_quantity,
        ohlc=ohlc,
        last_trade_timestamp=raw.last_trade_timestamp,
        open_interest=raw.open_interest,
        open_interest_change=raw.open_interest_change,
        depth=depth,
        upper_circuit_limit=to_price(raw.upper_circuit_limit),
        lower_circuit_limit=to_price(raw.lower_circuit_limit),
        week52_high=to_price(raw.week52_high),
        week52_low=to_price(raw.week52_low),
    )


def normalize_ticks(raws: Iterable[RawTick]) -> list[Tick]:
    return [normalize_tick(raw) for raw in raws]
