"""
Custom exceptions for the streaming tick client.

Exception hierarchy:
- TickerError (base)
  - ConfigurationError: Invalid client configuration
  - MalformedFrameError: Binary frame with an unrecognized length/shape
  - TransportError: Socket-level failure (drives the reconnect path)
  - ProtocolError: Venue-reported error in a JSON control frame
  - ReconnectExhaustedError: Reconnect attempts used up (terminal)
  - SubscriptionError: Invalid subscription request
"""

from __future__ import annotations

from typing import Any, Optional


class TickerError(Exception):
    """Base exception for all tick client errors."""

    def __init__(
        self,
        message: str,
        *,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.component = component
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.component:
            parts.append(f"[component={self.component}]")
        if self.details:
            parts.append(f"[details={self.details}]")
        return " ".join(parts)


class ConfigurationError(TickerError):
    """Raised when configuration is invalid."""

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.field = field
        self.value = value
        details = details or {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        super().__init__(message, component=component, details=details)


class MalformedFrameError(TickerError):
    """Raised when a binary frame does not match any known packet shape."""

    def __init__(
        self,
        message: str,
        *,
        length: Optional[int] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.length = length
        details = details or {}
        if length is not None:
            details["length"] = length
        # Raw bytes are kept out of details to avoid log spam
        super().__init__(message, component=component, details=details)


class TransportError(TickerError):
    """Raised when the WebSocket fails to open or is lost."""

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        reconnect_attempt: int = 0,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.url = url
        self.reconnect_attempt = reconnect_attempt
        details = details or {}
        if url:
            details["url"] = url
        details["reconnect_attempt"] = reconnect_attempt
        super().__init__(message, component=component, details=details)


class ProtocolError(TickerError):
    """Raised for a `{"type": "error"}` control frame sent by the venue."""

    def __init__(
        self,
        message: str,
        *,
        payload: Optional[dict[str, Any]] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.payload = payload or {}
        super().__init__(message, component=component, details=details)


class ReconnectExhaustedError(TickerError):
    """Raised when the maximum number of reconnect attempts has been used."""

    def __init__(
        self,
        message: str,
        *,
        attempts: int = 0,
        url: Optional[str] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.attempts = attempts
        self.url = url
        details = details or {}
        details["attempts"] = attempts
        if url:
            details["url"] = url
        super().__init__(message, component=component, details=details)


class SubscriptionError(TickerError):
    """Raised when a subscription request cannot be built."""

    def __init__(
        self,
        message: str,
        *,
        segment: Optional[Any] = None,
        mode: Optional[Any] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.segment = segment
        self.mode = mode
        details = details or {}
        if segment is not None:
            details["segment"] = str(segment)
        if mode is not None:
            details["mode"] = str(mode)
        super().__init__(message, component=component, details=details)
