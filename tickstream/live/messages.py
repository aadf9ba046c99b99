"""
JSON control messages exchanged with the venue.

Outbound: subscribe/unsubscribe requests and the plain-text login frame.
Inbound: order/trade updates and venue error notices.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Any, Iterable, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from tickstream.live.types import ExchangeSegment, Mode

LOGIN_PREFIX = "LOGIN:"


class Action(IntEnum):
    UNSUBSCRIBE = 0
    SUBSCRIBE = 1


def login_frame(access_token: str) -> str:
    """Plain text (not JSON) login frame."""
    return f"{LOGIN_PREFIX}{access_token}"


# --- Outbound ---


class TokenList(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)
    exchange_type: int = Field(alias="exchangeType")
    tokens: list[str]


class SubscriptionParams(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)
    mode: int
    token_list: list[TokenList] = Field(alias="tokenList")


class SubscriptionRequest(BaseModel):
    """
    Subscribe/unsubscribe request.

    Wire format:
    {
        "correlationID": "",
        "action": 1,                     // 1=subscribe, 0=unsubscribe
        "params": {
            "mode": 2,                   // 1=LTP, 2=Quote, 3=Full/Snap
            "tokenList": [{"exchangeType": 1, "tokens": ["22", "99"]}]
        }
    }
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)
    correlation_id: str = Field(default="", alias="correlationID")
    action: Action
    params: SubscriptionParams

    @classmethod
    def build(
        cls,
        action: Action,
        mode: Mode,
        token_lists: Mapping[ExchangeSegment, Iterable[str]],
        correlation_id: str = "",
    ) -> "SubscriptionRequest":
        """Build a request carrying one token list per exchange segment."""
        return cls(
            correlation_id=correlation_id,
            action=action,
            params=SubscriptionParams(
                mode=int(mode),
                token_list=[
                    TokenList(exchange_type=int(segment), tokens=[str(t) for t in tokens])
                    for segment, tokens in token_lists.items()
                ],
            ),
        )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# --- Inbound ---


class ControlMessage(BaseModel):
    """
    Inbound JSON control frame.

    Order/trade update:  {"order_status": "order" | "trade", "orderData": {...}}
    Venue error:         {"type": "error", "data": "<message>"}
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)
    order_status: Optional[str] = None
    order_data: Optional[dict[str, Any]] = Field(default=None, alias="orderData")
    type: Optional[str] = None
    data: Any = None

    @property
    def kind(self) -> Literal["order", "trade", "error", "unknown"]:
        if self.type == "error":
            return "error"
        if self.order_data is not None and self.order_status in ("order", "trade"):
            return self.order_status  # type: ignore[return-value]
        return "unknown"
