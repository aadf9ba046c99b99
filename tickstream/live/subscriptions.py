"""
Subscription Registry.

In-memory mapping (exchange segment, instrument token) -> mode. It is the
source of truth used to rebuild subscribe frames after a reconnect, so it
keeps the segment of every token (resubscribe stays segment-correct).
"""

from __future__ import annotations

import logging
from typing import Iterable, Iterator, Optional

from tickstream.live.errors import SubscriptionError
from tickstream.live.types import ExchangeSegment, Mode

logger = logging.getLogger(__name__)

SubscriptionKey = tuple[ExchangeSegment, str]


class SubscriptionRegistry:
    """
    Tracks the requested mode per instrument.

    Invariants:
    - at most one mode per (segment, token); the latest add() wins
    - enumeration order is insertion order of the (segment, token) pair,
      stable for the lifetime of the registry (a mode change keeps the slot)

    The registry does no I/O. Callers send the frames and serialize access
    (the Ticker holds a lock around registry updates and frame sends).
    """

    def __init__(self) -> None:
        self._entries: dict[SubscriptionKey, Mode] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, tuple) or len(key) != 2:
            return False
        segment, token = key
        try:
            segment = ExchangeSegment.parse(segment)
        except SubscriptionError:
            return False
        return (segment, str(token)) in self._entries

    def __iter__(self) -> Iterator[SubscriptionKey]:
        return iter(list(self._entries))

    def add(
        self,
        segment: ExchangeSegment,
        tokens: Iterable[str],
        mode: Mode,
    ) -> list[str]:
        """Record tokens at a mode. Returns the tokens (as strings) recorded."""
        recorded = []
        for token in tokens:
            token = str(token)
            self._entries[(segment, token)] = mode
            recorded.append(token)
        logger.debug(f"Registered {len(recorded)} token(s) on {segment.name} at {mode.name}")
        return recorded

    def remove(self, segment: ExchangeSegment, tokens: Iterable[str]) -> list[str]:
        """Forget tokens. Returns the tokens that were actually registered."""
        removed = []
        for token in tokens:
            token = str(token)
            if self._entries.pop((segment, token), None) is not None:
                removed.append(token)
        logger.debug(f"Removed {len(removed)} token(s) from {segment.name}")
        return removed

    def mode_of(self, segment: ExchangeSegment, token: str) -> Optional[Mode]:
        return self._entries.get((segment, str(token)))

    def entries(self) -> list[tuple[ExchangeSegment, str, Mode]]:
        """Snapshot of (segment, token, mode) in enumeration order."""
        return [(segment, token, mode) for (segment, token), mode in self._entries.items()]

    def group_by_mode(self) -> dict[Mode, dict[ExchangeSegment, list[str]]]:
        """
        Group registered tokens for resubscription.

        One entry per mode; each holds one token list per segment, in
        registry enumeration order.
        """
        groups: dict[Mode, dict[ExchangeSegment, list[str]]] = {}
        for (segment, token), mode in self._entries.items():
            groups.setdefault(mode, {}).setdefault(segment, []).append(token)
        return groups

    def clear(self) -> None:
        self._entries.clear()
