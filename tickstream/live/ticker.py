"""
Ticker - the streaming tick client.

Coordinates all components:
- ConnectionManager for the WebSocket lifecycle
- FrameRouter for frame classification, decoding and normalization
- SubscriptionRegistry for the instrument -> mode bookkeeping that is
  replayed after every reconnect

Everything the caller observes is delivered as a TickerEvent to a single
async consumer.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional, Union

from tickstream.live.config import TickerConfig
from tickstream.live.connection import NORMAL_CLOSURE, ConnectionManager, WsConnect
from tickstream.live.errors import SubscriptionError
from tickstream.live.messages import Action, SubscriptionRequest, login_frame
from tickstream.live.router import FrameRouter, RoutedMessage
from tickstream.live.subscriptions import SubscriptionRegistry
from tickstream.live.types import (
    ConnectionHealth,
    ConnectionState,
    EventType,
    ExchangeSegment,
    MessageType,
    Mode,
    Tick,
    TickerEvent,
)

logger = logging.getLogger(__name__)

SegmentLike = Union[ExchangeSegment, int, str]
ModeLike = Union[Mode, int, str]
Token = Union[str, int]


class Ticker:
    """
    Real-time market data client for the venue tick feed.

    Login is explicit: handle the CONNECT event by calling send_login()
    and then subscribing. After a reconnect the ticker replays all
    registered subscriptions itself, right after the CONNECT event has
    been handled, so a login sent from the handler goes out first. The
    same replay sends anything subscribed before the first connect.

    Usage:
        async def on_event(event: TickerEvent) -> None:
            if event.type == EventType.CONNECT:
                await ticker.send_login()
                await ticker.subscribe("NSE", ["22"], Mode.QUOTE)
            elif event.type == EventType.TICKS:
                for tick in event.ticks:
                    print(tick.instrument_token, tick.last_price)

        ticker = Ticker(TickerConfig(api_key="...", access_token="..."), on_event)
        await ticker.connect()
        # ... later ...
        await ticker.close()
    """

    def __init__(
        self,
        config: TickerConfig,
        on_event: Callable[[TickerEvent], Awaitable[None]],
        name: str = "ticker",
        ws_connect: Optional[WsConnect] = None,
    ) -> None:
        """
        Initialize the ticker.

        Args:
            config: Ticker configuration
            on_event: Async consumer for every event
            name: Name for logging purposes
            ws_connect: Optional socket opener (tests, custom transports)
        """
        self._config = config
        self._on_event = on_event
        self._name = name

        self._registry = SubscriptionRegistry()
        # Guards registry updates together with the frames they produce
        self._lock = asyncio.Lock()

        self._router = FrameRouter()
        self._router.register_handler(MessageType.TICKS, self._on_ticks)
        self._router.register_handler(MessageType.ORDER_UPDATE, self._on_order_update)
        self._router.register_handler(MessageType.TRADE_UPDATE, self._on_trade_update)
        self._router.register_handler(MessageType.ERROR, self._on_routed_error)

        self._connection = ConnectionManager(
            url=config.ws_url,
            config=config,
            on_message=self._router.route,
            on_open=self._on_open,
            on_close=self._on_close,
            on_error=self._on_error,
            on_state_change=self._on_state_change,
            name=f"{name}_ws",
            ws_connect=ws_connect,
        )

        # Set when subscribe() records tokens while the socket is not open
        self._replay_pending = False

        # Gap detection; ticks are never reordered or dropped
        self._last_sequence: dict[tuple[int, str], int] = {}
        self._sequence_regressions = 0

        # Statistics
        self._events_emitted = 0
        self._consumer_errors = 0

    @property
    def config(self) -> TickerConfig:
        return self._config

    @property
    def state(self) -> ConnectionState:
        """Current connection state."""
        return self._connection.state

    @property
    def is_connected(self) -> bool:
        return self._connection.is_connected

    @property
    def subscriptions(self) -> SubscriptionRegistry:
        """The registry replayed on reconnect (read it, do not mutate it)."""
        return self._registry

    # --- Lifecycle ---

    async def connect(self) -> None:
        """Open the socket. A no-op (logged) if already open or connecting."""
        await self._connection.connect()

    async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        """Close for good; never retried. Safe to call more than once."""
        await self._connection.close(code, reason)

    async def disconnect(self) -> None:
        await self.close()

    async def send_login(self) -> bool:
        """Send the LOGIN:{access_token} frame. Returns False if not open."""
        if not self.is_connected:
            logger.warning(f"[{self._name}] Cannot log in, socket is {self.state.value}")
            return False
        sent = await self._connection.send_text(login_frame(self._config.access_token))
        if sent:
            logger.info(f"[{self._name}] Login frame sent")
        return sent

    # --- Subscriptions ---

    async def subscribe(
        self,
        segment: SegmentLike,
        tokens: Iterable[Token],
        mode: Optional[ModeLike] = None,
    ) -> None:
        """
        Subscribe tokens at a mode (config.default_mode if omitted).

        The registry is always updated; the frame is sent only while open,
        otherwise it goes out with the replay after the next connect.
        """
        exchange = ExchangeSegment.parse(segment)
        subscription_mode = Mode.parse(mode) if mode is not None else self._config.default_mode
        token_list = self._token_list(tokens, exchange)

        async with self._lock:
            self._registry.add(exchange, token_list, subscription_mode)
            if self.is_connected:
                await self._send_request(
                    Action.SUBSCRIBE, subscription_mode, {exchange: token_list}
                )
            else:
                self._replay_pending = True
                logger.debug(
                    f"[{self._name}] Recorded {len(token_list)} token(s), sent on next connect"
                )

    async def unsubscribe(self, segment: SegmentLike, tokens: Iterable[Token]) -> None:
        """Remove tokens; sends an unsubscribe frame while open."""
        exchange = ExchangeSegment.parse(segment)
        token_list = self._token_list(tokens, exchange)

        async with self._lock:
            self._registry.remove(exchange, token_list)
            if self.is_connected:
                await self._send_request(
                    Action.UNSUBSCRIBE, self._config.default_mode, {exchange: token_list}
                )

    async def set_mode(
        self,
        segment: SegmentLike,
        tokens: Iterable[Token],
        mode: ModeLike,
    ) -> None:
        """Change the mode of tokens (subscribing them if they were not)."""
        await self.subscribe(segment, tokens, Mode.parse(mode))

    async def resubscribe(self) -> int:
        """
        Send one subscribe frame per registered mode.

        Returns the number of frames sent.
        """
        sent = 0
        async with self._lock:
            groups = self._registry.group_by_mode()
            for mode, token_lists in groups.items():
                logger.debug(
                    f"[{self._name}] Resubscribe mode {mode.name}: "
                    f"{sum(len(t) for t in token_lists.values())} token(s)"
                )
                if await self._send_request(Action.SUBSCRIBE, mode, token_lists):
                    sent += 1
        return sent

    @staticmethod
    def _token_list(tokens: Iterable[Token], segment: ExchangeSegment) -> list[str]:
        if isinstance(tokens, (str, int)):
            tokens = [tokens]
        token_list = [str(t) for t in tokens]
        if not token_list:
            raise SubscriptionError("No instrument tokens given", segment=segment)
        return token_list

    async def _send_request(
        self,
        action: Action,
        mode: Mode,
        token_lists: Mapping[ExchangeSegment, list[str]],
    ) -> bool:
        request = SubscriptionRequest.build(action, mode, token_lists)
        return await self._connection.send_json(request.to_wire())

    # --- Connection callbacks ---

    async def _on_open(self, is_reconnect: bool) -> None:
        replay = is_reconnect or self._replay_pending
        self._replay_pending = False
        generation = self._connection.generation
        await self._emit(TickerEvent(EventType.CONNECT))
        if generation != self._connection.generation or not self.is_connected:
            # The handler closed or replaced this socket; the newer open replays
            logger.debug(f"[{self._name}] Socket changed during CONNECT, replay skipped")
            return
        if replay:
            frames = await self.resubscribe()
            logger.info(f"[{self._name}] Replayed subscriptions in {frames} frame(s)")

    async def _on_close(self, code: Optional[int], reason: str) -> None:
        await self._emit(TickerEvent(EventType.CLOSE, code=code, reason=reason))

    async def _on_error(self, error: Exception) -> None:
        await self._emit(TickerEvent(EventType.ERROR, error=error))

    async def _on_state_change(self, state: ConnectionState) -> None:
        logger.info(f"[{self._name}] Connection state: {state.value}")

    # --- Router handlers ---

    async def _on_ticks(self, msg: RoutedMessage) -> None:
        ticks: list[Tick] = msg.data
        for tick in ticks:
            self._check_sequence(tick)
        await self._emit(TickerEvent(EventType.TICKS, ticks=tuple(ticks)))

    async def _on_order_update(self, msg: RoutedMessage) -> None:
        await self._emit(TickerEvent(EventType.ORDER_UPDATE, data=msg.data))

    async def _on_trade_update(self, msg: RoutedMessage) -> None:
        await self._emit(TickerEvent(EventType.TRADE_UPDATE, data=msg.data))

    async def _on_routed_error(self, msg: RoutedMessage) -> None:
        await self._emit(TickerEvent(EventType.ERROR, error=msg.data))

    def _check_sequence(self, tick: Tick) -> None:
        key = tick.key
        last = self._last_sequence.get(key)
        if last is not None and tick.sequence_number < last:
            self._sequence_regressions += 1
            logger.warning(
                f"[{self._name}] Sequence went backwards for {key}: "
                f"{tick.sequence_number} < {last}"
            )
            return
        self._last_sequence[key] = tick.sequence_number

    async def _emit(self, event: TickerEvent) -> None:
        self._events_emitted += 1
        try:
            await self._on_event(event)
        except Exception as e:
            self._consumer_errors += 1
            logger.error(
                f"[{self._name}] Consumer error on {event.type.value}: {e}",
                exc_info=True,
            )

    # --- Public methods ---

    def get_health(self) -> ConnectionHealth:
        """Get current connection health."""
        return self._connection.get_health()

    def get_stats(self) -> dict[str, Any]:
        """Get statistics summary."""
        router_stats = self._router.stats
        return {
            "state": self.state.value,
            "subscriptions": len(self._registry),
            "events_emitted": self._events_emitted,
            "consumer_errors": self._consumer_errors,
            "sequence_regressions": self._sequence_regressions,
            "router": {
                "total_frames": router_stats.total_frames,
                "tick_frames": router_stats.tick_frames,
                "control_frames": router_stats.control_frames,
                "noise_frames": router_stats.noise_frames,
                "decode_errors": router_stats.decode_errors,
                "by_type": dict(router_stats.by_type),
            },
            "connection": {
                "messages_received": self._connection.metrics.messages_received,
                "frames_sent": self._connection.metrics.frames_sent,
                "pings_sent": self._connection.metrics.pings_sent,
                "reconnections": self._connection.metrics.reconnections,
                "errors": self._connection.metrics.errors,
            },
        }
