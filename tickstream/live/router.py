"""
Frame Router for the streaming tick client.

Classifies each inbound WebSocket payload as either a JSON control
message (order/trade update, venue error) or a binary tick frame, and
dispatches the result to registered handlers.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Union

import orjson
from pydantic import ValidationError

from tickstream.live.decoder import MIN_FRAME_SIZE, decode_frame
from tickstream.live.errors import MalformedFrameError, ProtocolError
from tickstream.live.messages import ControlMessage
from tickstream.live.normalizer import normalize_ticks
from tickstream.live.types import MessageType

logger = logging.getLogger(__name__)

Payload = Union[bytes, bytearray, str]


@dataclass(frozen=True, slots=True)
class RoutedMessage:
    """Classified inbound frame."""

    message_type: MessageType
    data: Any  # list[Tick], order dict, or exception for ERROR
    recv_ts: int  # Local receive timestamp (Unix ms)


Handler = Callable[[RoutedMessage], Awaitable[None]]


@dataclass
class RouterStats:
    """Statistics for frame routing."""

    total_frames: int = 0
    tick_frames: int = 0
    control_frames: int = 0
    noise_frames: int = 0
    decode_errors: int = 0
    dropped_messages: int = 0
    by_type: dict[str, int] = field(default_factory=dict)


class FrameRouter:
    """
    Routes inbound frames to handlers by message type.

    Classification order (cheap text sniff before binary decode):
    1. payload shorter than 2 bytes -> ignored as noise
    2. first character "{" and valid JSON object -> control message
    3. anything else -> binary decoder -> normalizer -> TICKS

    Control messages:
        {"order_status": "order", "orderData": {...}}  -> ORDER_UPDATE
        {"order_status": "trade", "orderData": {...}}  -> TRADE_UPDATE
        {"type": "error", "data": "<msg>"}             -> ERROR (ProtocolError)

    Decode failures are routed as ERROR (MalformedFrameError); the frame is
    dropped and nothing else happens to the connection.
    """

    CONTROL_TYPE_MAP: dict[str, MessageType] = {
        "order": MessageType.ORDER_UPDATE,
        "trade": MessageType.TRADE_UPDATE,
        "error": MessageType.ERROR,
    }

    def __init__(self) -> None:
        """Initialize the frame router."""
        self._handlers: dict[MessageType, list[Handler]] = {}
        self._stats = RouterStats()

    @property
    def stats(self) -> RouterStats:
        """Get routing statistics."""
        return self._stats

    def register_handler(self, message_type: MessageType, handler: Handler) -> None:
        """
        Register a handler for a specific message type.

        Multiple handlers can be registered for the same type.
        They will be called in registration order.
        """
        self._handlers.setdefault(message_type, []).append(handler)
        logger.debug(f"Registered handler for {message_type.value}")

    async def route(self, payload: Payload, recv_ts: Optional[int] = None) -> None:
        """
        Classify a frame and dispatch it.

        Args:
            payload: Raw WebSocket payload (TEXT frames arrive as str)
            recv_ts: Receive timestamp in milliseconds
        """
        self._stats.total_frames += 1
        if recv_ts is None:
            recv_ts = int(time.time() * 1000)

        if len(payload) < MIN_FRAME_SIZE:
            self._stats.noise_frames += 1
            return

        routed = self.classify(payload, recv_ts)
        if routed is None:
            self._stats.dropped_messages += 1
            return

        type_key = routed.message_type.value
        self._stats.by_type[type_key] = self._stats.by_type.get(type_key, 0) + 1
        await self._dispatch(routed)

    def classify(self, payload: Payload, recv_ts: int) -> Optional[RoutedMessage]:
        """Turn a payload into a RoutedMessage, or None if it carries nothing to deliver."""
        raw = payload.encode("utf-8") if isinstance(payload, str) else bytes(payload)

        control = self._sniff_json(raw)
        if control is not None:
            self._stats.control_frames += 1
            return self._classify_control(control, recv_ts)

        try:
            ticks = normalize_ticks(decode_frame(raw))
        except MalformedFrameError as e:
            self._stats.decode_errors += 1
            logger.warning(f"Dropping frame: {e}")
            return RoutedMessage(MessageType.ERROR, e, recv_ts)

        if not ticks:
            return None
        self._stats.tick_frames += 1
        return RoutedMessage(MessageType.TICKS, ticks, recv_ts)

    @staticmethod
    def _sniff_json(raw: bytes) -> Optional[dict[str, Any]]:
        """Parse raw as a JSON object if it looks like one; None means binary."""
        if raw.lstrip()[:1] != b"{":
            return None
        try:
            data = orjson.loads(raw)
        except orjson.JSONDecodeError:
            return None
        return data if isinstance(data, dict) else None

    def _classify_control(self, data: dict[str, Any], recv_ts: int) -> Optional[RoutedMessage]:
        try:
            msg = ControlMessage.model_validate(data)
        except ValidationError as e:
            logger.debug(f"Unparseable control message: {e}")
            return None

        message_type = self.CONTROL_TYPE_MAP.get(msg.kind, MessageType.UNKNOWN)
        if message_type == MessageType.ERROR:
            error = ProtocolError(str(msg.data), payload=data, component="venue")
            return RoutedMessage(MessageType.ERROR, error, recv_ts)
        if message_type == MessageType.UNKNOWN:
            logger.debug(f"Unknown control message: {list(data.keys())[:5]}")
            return None
        return RoutedMessage(message_type, msg.order_data, recv_ts)

    async def _dispatch(self, routed: RoutedMessage) -> None:
        handlers = self._handlers.get(routed.message_type, [])
        if not handlers:
            logger.debug(f"No handler for message type: {routed.message_type.value}")
            self._stats.dropped_messages += 1
            return

        for handler in handlers:
            try:
                await handler(routed)
            except Exception as e:
                logger.error(
                    f"Handler error for {routed.message_type.value}: {e}",
                    exc_info=True,
                )

    def reset_stats(self) -> None:
        """Reset routing statistics."""
        self._stats = RouterStats()
