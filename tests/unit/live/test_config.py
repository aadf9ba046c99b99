"""
Unit tests for ticker configuration.
"""

import logging
from urllib.parse import parse_qs, urlparse

import pytest

from tickstream.adapters.env_provider import EnvSecretsProvider
from tickstream.live.config import DEFAULT_SOCKET_URL, TickerConfig
from tickstream.live.errors import ConfigurationError
from tickstream.live.types import Mode


class TestTickerConfig:
    """Tests for TickerConfig."""

    def test_defaults(self) -> None:
        config = TickerConfig(api_key="k", access_token="t")

        assert config.socket_url == DEFAULT_SOCKET_URL == "wss://ws.mstock.trade"
        assert config.max_reconnect_attempts == 5
        assert config.reconnect_delay_s == 5.0
        assert config.ping_interval_s == 2.5
        assert config.default_mode == Mode.LTP

    def test_immutable(self) -> None:
        config = TickerConfig(api_key="k", access_token="t")
        with pytest.raises(AttributeError):
            config.api_key = "other"  # type: ignore

    def test_ws_url_carries_credentials(self) -> None:
        """Test the {socket_url}?ACCESS_TOKEN=..&API_KEY=.. URL."""
        config = TickerConfig(api_key="key 1", access_token="tok/2")

        parsed = urlparse(config.ws_url)
        assert f"{parsed.scheme}://{parsed.netloc}" == DEFAULT_SOCKET_URL
        assert parse_qs(parsed.query) == {"ACCESS_TOKEN": ["tok/2"], "API_KEY": ["key 1"]}
        assert list(parse_qs(parsed.query)) == ["ACCESS_TOKEN", "API_KEY"]

    def test_redacted_url_hides_credentials(self) -> None:
        config = TickerConfig(api_key="secret-key", access_token="secret-token")

        assert "secret" not in config.redacted_url
        assert config.redacted_url.startswith(DEFAULT_SOCKET_URL)

    def test_default_mode_parsed(self) -> None:
        assert TickerConfig(api_key="k", access_token="t", default_mode="quote").default_mode == Mode.QUOTE
        assert TickerConfig(api_key="k", access_token="t", default_mode=3).default_mode == Mode.FULL

    @pytest.mark.parametrize(
        "overrides,message",
        [
            ({"api_key": ""}, "api_key is required"),
            ({"access_token": ""}, "access_token is required"),
            ({"socket_url": "https://example.com"}, "socket_url must be a ws:// or wss:// URL"),
            ({"max_reconnect_attempts": -1}, "max_reconnect_attempts must be non-negative"),
            ({"reconnect_delay_s": -0.5}, "reconnect_delay_s must be non-negative"),
            ({"ping_interval_s": 0}, "ping_interval_s must be positive"),
            ({"connect_timeout_s": -1.0}, "connect_timeout_s must be positive"),
        ],
    )
    def test_invalid_values(self, overrides: dict, message: str) -> None:
        kwargs = {"api_key": "k", "access_token": "t", **overrides}
        with pytest.raises(ConfigurationError) as exc_info:
            TickerConfig(**kwargs)
        assert message in str(exc_info.value)

    def test_zero_reconnect_delay_allowed(self) -> None:
        assert TickerConfig(api_key="k", access_token="t", reconnect_delay_s=0).reconnect_delay_s == 0

    def test_debug_raises_package_log_level(self) -> None:
        package_logger = logging.getLogger("tickstream")
        previous = package_logger.level
        try:
            TickerConfig(api_key="k", access_token="t", debug=True)
            assert package_logger.level == logging.DEBUG
        finally:
            package_logger.setLevel(previous)

    def test_from_secrets(self, monkeypatch) -> None:
        monkeypatch.setenv("TICKSTREAM_API_KEY", "env-key")
        monkeypatch.setenv("TICKSTREAM_ACCESS_TOKEN", "env-token")

        config = TickerConfig.from_secrets(EnvSecretsProvider(), max_reconnect_attempts=2)

        assert config.api_key == "env-key"
        assert config.access_token == "env-token"
        assert config.max_reconnect_attempts == 2

    def test_auto_reconnect_default(self) -> None:
        assert TickerConfig(api_key="k", access_token="t").auto_reconnect is True
        assert TickerConfig(api_key="k", access_token="t", auto_reconnect=False).auto_reconnect is False
