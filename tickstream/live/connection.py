"""
WebSocket Connection Manager for the streaming tick client.

Handles the socket lifecycle:
- Connection establishment with timeout
- Fixed-delay reconnection up to a maximum number of attempts
- Transport-level ping keepalive while open
- Idempotent manual close that is never retried
- Connection-level metrics and health tracking
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Union

import aiohttp
import orjson

from tickstream.live.config import TickerConfig
from tickstream.live.errors import ReconnectExhaustedError, TransportError
from tickstream.live.types import ConnectionHealth, ConnectionMetrics, ConnectionState

logger = logging.getLogger(__name__)

WsConnect = Callable[[str], Awaitable[Any]]

NORMAL_CLOSURE = 1000


class ConnectionManager:
    """
    Owns the single WebSocket of a ticker, its keepalive task and its
    reconnect timer.

    State machine:
        [DISCONNECTED] --connect()--> [CONNECTING] --open--> [OPEN]
        [OPEN] --close/error--> [RECONNECTING] --delay--> [CONNECTING]
        [RECONNECTING] --attempts exhausted--> [CLOSED]
        any --close()--> [CLOSED]

    The ConnectionManager does NOT parse messages - it delivers raw
    bytes/text to the registered callback. Frame classification is
    handled by FrameRouter.

    Usage:
        async def on_message(payload: bytes | str) -> None:
            print(len(payload))

        manager = ConnectionManager(
            url=config.ws_url,
            config=config,
            on_message=on_message,
        )
        await manager.connect()
        # ... later ...
        await manager.close()
    """

    def __init__(
        self,
        url: str,
        config: TickerConfig,
        on_message: Callable[[Union[bytes, str]], Awaitable[None]],
        on_open: Optional[Callable[[bool], Awaitable[None]]] = None,
        on_close: Optional[Callable[[Optional[int], str], Awaitable[None]]] = None,
        on_error: Optional[Callable[[Exception], Awaitable[None]]] = None,
        on_state_change: Optional[Callable[[ConnectionState], Awaitable[None]]] = None,
        name: str = "connection",
        ws_connect: Optional[WsConnect] = None,
    ) -> None:
        """
        Initialize the connection manager.

        Args:
            url: WebSocket URL to connect to (may carry credentials)
            config: Ticker configuration (reconnect and keepalive settings)
            on_message: Async callback for every TEXT/BINARY payload
            on_open: Callback on each successful open; True if not the first
            on_close: Callback when an open socket closes (code, reason)
            on_error: Callback for errors, called once per failure path
            on_state_change: Optional callback for state changes
            name: Name for logging purposes
            ws_connect: Optional socket opener, defaults to an aiohttp session
        """
        self._url = url
        self._config = config
        self._on_message = on_message
        self._on_open = on_open
        self._on_close = on_close
        self._on_error = on_error
        self._on_state_change = on_state_change
        self._name = name
        self._ws_connect = ws_connect

        # State
        self._state = ConnectionState.DISCONNECTED
        self._session: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[Any] = None

        # Tasks
        self._receive_task: Optional[asyncio.Task[None]] = None
        self._ping_task: Optional[asyncio.Task[None]] = None
        self._reconnect_task: Optional[asyncio.Task[None]] = None

        # Reconnection state
        self._reconnect_attempt = 0
        self._manual_close = False
        self._has_connected = False
        # Incremented on every successful open
        self._generation = 0

        # Metrics
        self._metrics = ConnectionMetrics()
        self._connected_at: Optional[datetime] = None
        self._last_message_at: Optional[datetime] = None
        self._last_error: Optional[str] = None
        self._last_error_at: Optional[datetime] = None

    @property
    def state(self) -> ConnectionState:
        """Current connection state."""
        return self._state

    @property
    def is_connected(self) -> bool:
        """Check if the socket is open."""
        return self._state == ConnectionState.OPEN and self._ws is not None

    @property
    def reconnect_attempt(self) -> int:
        """Reconnect attempts made since the last successful open."""
        return self._reconnect_attempt

    @property
    def generation(self) -> int:
        """Number of successful opens; identifies the current socket."""
        return self._generation

    @property
    def metrics(self) -> ConnectionMetrics:
        """Connection metrics."""
        return self._metrics

    async def _set_state(self, new_state: ConnectionState) -> None:
        """Update state and notify listener."""
        old_state = self._state
        self._state = new_state

        if old_state != new_state:
            logger.debug(f"[{self._name}] State: {old_state.value} -> {new_state.value}")
            if self._on_state_change:
                try:
                    await self._on_state_change(new_state)
                except Exception as e:
                    logger.warning(f"[{self._name}] State change callback error: {e}")

    # --- Lifecycle ---

    async def connect(self) -> None:
        """
        Start connecting. Returns after the first attempt; a failed attempt
        is retried in the background like any other transport failure.
        """
        if self._state in (
            ConnectionState.OPEN,
            ConnectionState.CONNECTING,
            ConnectionState.RECONNECTING,
        ):
            logger.info(f"[{self._name}] connect() ignored, already {self._state.value}")
            return

        self._manual_close = False
        self._reconnect_attempt = 0
        await self._open()

    async def _open(self) -> None:
        """Make one connection attempt."""
        await self._set_state(ConnectionState.CONNECTING)
        logger.info(f"[{self._name}] Connecting to {self._config.redacted_url}")

        try:
            ws = await self._open_socket()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"[{self._name}] Connection attempt failed: {e}")
            await self._on_transport_failure(e)
            return

        if self._manual_close:
            await ws.close()
            return

        self._ws = ws
        is_reconnect = self._has_connected
        self._has_connected = True
        self._generation += 1
        self._reconnect_attempt = 0
        self._connected_at = datetime.now(timezone.utc)
        self._metrics.connected_at = time.monotonic()
        await self._set_state(ConnectionState.OPEN)
        logger.info(f"[{self._name}] Connected")

        self._ping_task = asyncio.create_task(
            self._keepalive_loop(ws), name=f"{self._name}_ping"
        )
        if self._on_open:
            try:
                await self._on_open(is_reconnect)
            except Exception as e:
                logger.error(f"[{self._name}] Open callback error: {e}", exc_info=True)

        # Inbound frames start flowing only once the open callback is done
        if self._manual_close or ws is not self._ws:
            logger.debug(f"[{self._name}] Socket replaced during open callback")
            return
        self._receive_task = asyncio.create_task(
            self._receive_loop(ws), name=f"{self._name}_receive"
        )

    async def _open_socket(self) -> Any:
        """Open the actual WebSocket."""
        if self._ws_connect is not None:
            return await self._ws_connect(self._url)

        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self._config.connect_timeout_s)
            self._session = aiohttp.ClientSession(timeout=timeout)

        # Keepalive pings are sent by _keepalive_loop, not aiohttp heartbeat
        return await self._session.ws_connect(self._url, autoping=True)

    async def _receive_loop(self, ws: Any) -> None:
        """Deliver payloads until the socket closes or fails."""
        error: Optional[BaseException] = None
        try:
            async for msg in ws:
                self._last_message_at = datetime.now(timezone.utc)
                self._metrics.last_message_at = time.monotonic()
                self._metrics.messages_received += 1

                if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                    self._metrics.bytes_received += len(msg.data)
                    try:
                        await self._on_message(msg.data)
                    except Exception as e:
                        logger.error(f"[{self._name}] Message handling error: {e}")
                        self._metrics.errors += 1

                elif msg.type == aiohttp.WSMsgType.ERROR:
                    error = ws.exception() or TransportError(
                        "WebSocket error frame", url=self._config.redacted_url
                    )
                    break

        except asyncio.CancelledError:
            logger.debug(f"[{self._name}] Receive loop cancelled")
            raise
        except Exception as e:
            error = e

        # A newer socket or a manual close owns the state now
        if self._manual_close or ws is not self._ws:
            return

        if error is not None:
            logger.error(f"[{self._name}] Receive loop error: {error}")
            await self._on_transport_failure(error)
        else:
            code = getattr(ws, "close_code", None)
            logger.info(f"[{self._name}] Server closed connection (code={code})")
            await self._on_socket_closed(code, "")

    async def _keepalive_loop(self, ws: Any) -> None:
        """Send a transport ping every ping_interval_s while open."""
        try:
            while True:
                await asyncio.sleep(self._config.ping_interval_s)

                if ws.closed:
                    break

                try:
                    await ws.ping()
                    self._metrics.pings_sent += 1
                    logger.debug(f"[{self._name}] Sent ping")
                except Exception as e:
                    logger.warning(f"[{self._name}] Ping failed: {e}")

        except asyncio.CancelledError:
            pass

    # --- Failure handling ---

    async def _on_socket_closed(self, code: Optional[int], reason: str) -> None:
        """Open socket closed by the peer."""
        await self._teardown_socket()
        if self._on_close:
            try:
                await self._on_close(code, reason)
            except Exception as e:
                logger.warning(f"[{self._name}] Close callback error: {e}")
        await self._schedule_reconnect(cause=None)

    async def _on_transport_failure(self, exc: BaseException) -> None:
        """Socket error or failed connection attempt."""
        self._metrics.errors += 1
        self._last_error = str(exc)
        self._last_error_at = datetime.now(timezone.utc)

        await self._teardown_socket()
        if self._manual_close:
            return

        if self._can_reconnect() or not self._config.auto_reconnect:
            error = TransportError(
                f"Transport failure: {exc}",
                url=self._config.redacted_url,
                reconnect_attempt=self._reconnect_attempt + 1,
                component="ConnectionManager",
            )
            error.__cause__ = exc
            await self._report_error(error)
        await self._schedule_reconnect(cause=exc)

    def _can_reconnect(self) -> bool:
        return self._reconnect_attempt < self._config.max_reconnect_attempts

    async def _schedule_reconnect(self, cause: Optional[BaseException]) -> None:
        """Schedule the next attempt, or give up when attempts are exhausted."""
        if self._manual_close:
            return

        if not self._config.auto_reconnect:
            logger.info(f"[{self._name}] Auto-reconnect disabled, staying closed")
            await self._close_session()
            await self._set_state(ConnectionState.CLOSED)
            return

        if not self._can_reconnect():
            error = ReconnectExhaustedError(
                f"Gave up after {self._reconnect_attempt} reconnect attempts",
                attempts=self._reconnect_attempt,
                url=self._config.redacted_url,
                component="ConnectionManager",
            )
            error.__cause__ = cause
            logger.error(f"[{self._name}] {error}")
            await self._report_error(error)
            self._reconnect_attempt = 0
            await self._close_session()
            await self._set_state(ConnectionState.CLOSED)
            return

        self._reconnect_attempt += 1
        self._metrics.reconnections += 1
        await self._set_state(ConnectionState.RECONNECTING)
        logger.warning(
            f"[{self._name}] Reconnecting in {self._config.reconnect_delay_s:.2f}s "
            f"(attempt {self._reconnect_attempt}/{self._config.max_reconnect_attempts})"
        )
        self._reconnect_task = asyncio.create_task(
            self._reconnect_after_delay(), name=f"{self._name}_reconnect"
        )

    async def _reconnect_after_delay(self) -> None:
        await asyncio.sleep(self._config.reconnect_delay_s)
        self._reconnect_task = None
        if self._manual_close:
            return
        try:
            await self._open()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[{self._name}] Reconnect attempt crashed: {e}", exc_info=True)
            await self._on_transport_failure(e)

    async def _report_error(self, error: Exception) -> None:
        if self._on_error:
            try:
                await self._on_error(error)
            except Exception as cb_err:
                logger.warning(f"[{self._name}] Error callback failed: {cb_err}")

    # --- Cleanup ---

    async def _cancel_task(self, task: Optional[asyncio.Task[None]]) -> None:
        """Cancel and await a task, unless it is the one running this code."""
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _teardown_socket(self) -> None:
        """Stop keepalive and drop the current socket."""
        ping_task, self._ping_task = self._ping_task, None
        await self._cancel_task(ping_task)

        receive_task, self._receive_task = self._receive_task, None
        await self._cancel_task(receive_task)

        ws, self._ws = self._ws, None
        if ws is not None and not ws.closed:
            try:
                await ws.close()
            except Exception as e:
                logger.debug(f"[{self._name}] Error closing socket: {e}")
        self._connected_at = None

    async def _close_session(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        """
        Close the connection for good. Idempotent.

        Order: set the manual-close flag, stop keepalive, cancel any pending
        reconnect, close the socket.
        """
        if self._manual_close and self._state == ConnectionState.CLOSED:
            return

        logger.info(f"[{self._name}] Closing connection")
        self._manual_close = True

        ping_task, self._ping_task = self._ping_task, None
        await self._cancel_task(ping_task)

        reconnect_task, self._reconnect_task = self._reconnect_task, None
        await self._cancel_task(reconnect_task)

        receive_task, self._receive_task = self._receive_task, None
        await self._cancel_task(receive_task)

        ws, self._ws = self._ws, None
        was_open = ws is not None and not ws.closed
        if was_open:
            try:
                await ws.close(code=code, message=reason.encode("utf-8"))
            except Exception as e:
                logger.warning(f"[{self._name}] Error closing socket: {e}")

        self._reconnect_attempt = 0
        self._connected_at = None
        await self._close_session()
        await self._set_state(ConnectionState.CLOSED)

        if was_open and self._on_close:
            try:
                await self._on_close(code, reason)
            except Exception as e:
                logger.warning(f"[{self._name}] Close callback error: {e}")
        logger.info(f"[{self._name}] Connection closed")

    # --- Outbound ---

    async def send_text(self, data: str) -> bool:
        """Send a text frame. Returns False if the socket is not open."""
        ws = self._ws
        if ws is None or self._state != ConnectionState.OPEN:
            logger.debug(f"[{self._name}] Not open, frame not sent")
            return False
        try:
            await ws.send_str(data)
        except (ConnectionError, RuntimeError, aiohttp.ClientError) as e:
            logger.warning(f"[{self._name}] Send failed: {e}")
            self._metrics.errors += 1
            return False
        self._metrics.frames_sent += 1
        return True

    async def send_json(self, payload: dict[str, Any]) -> bool:
        """Send a JSON object as a text frame."""
        return await self.send_text(orjson.dumps(payload).decode("utf-8"))

    def get_health(self) -> ConnectionHealth:
        """Get current connection health snapshot."""
        return ConnectionHealth(
            state=self._state,
            url=self._config.redacted_url,
            connected_since=self._connected_at,
            last_message_at=self._last_message_at,
            reconnect_count=self._metrics.reconnections,
            message_count=self._metrics.messages_received,
            error_count=self._metrics.errors,
            last_error=self._last_error,
            last_error_at=self._last_error_at,
        )
