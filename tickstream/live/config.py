"""
Configuration for the streaming tick client.

Provides an immutable, validated configuration dataclass and the venue
endpoint defaults.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

from tickstream.live.errors import ConfigurationError
from tickstream.live.types import Mode
from tickstream.ports.secrets_provider import SecretsProvider

# Venue endpoints
DEFAULT_SOCKET_URL = "wss://ws.mstock.trade"

# Venue SDK defaults
DEFAULT_MAX_RECONNECT_ATTEMPTS = 5
DEFAULT_RECONNECT_DELAY_S = 5.0
DEFAULT_PING_INTERVAL_S = 2.5

PACKAGE_LOGGER = "tickstream"


@dataclass(frozen=True)
class TickerConfig:
    """
    Immutable configuration for a Ticker.

    Example:
        config = TickerConfig(
            api_key="...",
            access_token="...",
            default_mode=Mode.QUOTE,
            max_reconnect_attempts=50,
        )
    """

    # Credentials
    api_key: str
    access_token: str

    # Endpoint
    socket_url: str = DEFAULT_SOCKET_URL

    # Reconnect behavior (fixed delay between attempts)
    max_reconnect_attempts: int = DEFAULT_MAX_RECONNECT_ATTEMPTS
    reconnect_delay_s: float = DEFAULT_RECONNECT_DELAY_S
    # False: a lost socket goes straight to CLOSED, without retries
    auto_reconnect: bool = True

    # Transport
    ping_interval_s: float = DEFAULT_PING_INTERVAL_S
    connect_timeout_s: float = 30.0

    # Subscriptions
    default_mode: Mode = Mode.LTP

    # Verbose logging for the tickstream package
    debug: bool = False

    def __post_init__(self) -> None:
        if not self.api_key:
            raise ConfigurationError("api_key is required", field="api_key")
        if not self.access_token:
            raise ConfigurationError("access_token is required", field="access_token")
        if not self.socket_url.startswith(("ws://", "wss://")):
            raise ConfigurationError(
                "socket_url must be a ws:// or wss:// URL",
                field="socket_url",
                value=self.socket_url,
            )
        if self.max_reconnect_attempts < 0:
            raise ConfigurationError(
                "max_reconnect_attempts must be non-negative",
                field="max_reconnect_attempts",
                value=self.max_reconnect_attempts,
            )
        if self.reconnect_delay_s < 0:
            raise ConfigurationError(
                "reconnect_delay_s must be non-negative",
                field="reconnect_delay_s",
                value=self.reconnect_delay_s,
            )
        if self.ping_interval_s <= 0:
            raise ConfigurationError(
                "ping_interval_s must be positive",
                field="ping_interval_s",
                value=self.ping_interval_s,
            )
        if self.connect_timeout_s <= 0:
            raise ConfigurationError(
                "connect_timeout_s must be positive",
                field="connect_timeout_s",
                value=self.connect_timeout_s,
            )

        # Accept "quote", 2, Mode.QUOTE ...
        object.__setattr__(self, "default_mode", Mode.parse(self.default_mode))

        if self.debug:
            logging.getLogger(PACKAGE_LOGGER).setLevel(logging.DEBUG)

    @property
    def ws_url(self) -> str:
        """Socket URL with credentials: {socket_url}?ACCESS_TOKEN=..&API_KEY=.."""
        query = urlencode({"ACCESS_TOKEN": self.access_token, "API_KEY": self.api_key})
        return f"{self.socket_url}?{query}"

    @property
    def redacted_url(self) -> str:
        """Socket URL safe for logs."""
        return f"{self.socket_url}?ACCESS_TOKEN=***&API_KEY=***"

    @classmethod
    def from_secrets(
        cls,
        provider: SecretsProvider,
        **overrides: Any,
    ) -> "TickerConfig":
        """Build a config whose credentials come from a SecretsProvider."""
        return cls(
            api_key=provider.get("api_key"),
            access_token=provider.get("access_token"),
            **overrides,
        )
