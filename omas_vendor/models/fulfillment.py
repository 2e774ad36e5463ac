"""
Fulfillment Schemas
===================

Pydantic models for the Omas vendor REST API (JSON, camelCase on the wire).

The vendor owns fulfillment state; these are transient copies returned by
each call. FulfillmentState tolerates values this agent does not know yet
(they parse as UNKNOWN) so new vendor states never break the poll loop.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class FulfillmentState(str, Enum):
    """Vendor-side fulfillment states, in nominal happy-path order."""
    UNKNOWN = "UNKNOWN"
    PENDING = "PENDING"
    RECEIVED = "RECEIVED"
    ACCEPTED = "ACCEPTED"
    DECLINED = "DECLINED"
    PROCESSING = "PROCESSING"
    DELIVERING = "DELIVERING"
    COMPLETING = "COMPLETING"
    COMPLETED = "COMPLETED"
    SETTLED = "SETTLED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"

    @classmethod
    def _missing_(cls, value: object) -> "FulfillmentState":
        return cls.UNKNOWN

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({
    FulfillmentState.COMPLETED,
    FulfillmentState.SETTLED,
    FulfillmentState.DECLINED,
    FulfillmentState.CANCELLED,
    FulfillmentState.FAILED,
})


class _ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_payload(self) -> Dict[str, Any]:
        """JSON-ready request body (camelCase, unset fields dropped)."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Delivery(_ApiModel):
    time: Optional[datetime] = None


class Fulfillment(_ApiModel):
    """A vendor-side order fulfillment record."""
    name: str = Field(description="Resource name, e.g. vendors/demo-vendor/fulfillments/1")
    state: FulfillmentState = FulfillmentState.UNKNOWN
    create_time: Optional[datetime] = None
    update_time: Optional[datetime] = None
    packaging_time: Optional[datetime] = None
    delivery: Optional[Delivery] = None

    @field_validator("state", mode="before")
    @classmethod
    def _tolerate_new_states(cls, value: Any) -> Any:
        if value is None:
            return FulfillmentState.UNKNOWN
        if isinstance(value, str) and not isinstance(value, FulfillmentState):
            return FulfillmentState(value.upper())
        return value

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal


class User(_ApiModel):
    authenticated: bool = False


class InfoResponse(_ApiModel):
    user: User = Field(default_factory=User)
    motd: Optional[str] = None


class PollOrdersResponse(_ApiModel):
    fulfillments: List[Fulfillment] = Field(default_factory=list)
    next_page_token: str = ""

    @model_validator(mode="before")
    @classmethod
    def _null_lists(cls, data: Any) -> Any:
        # the API sends explicit nulls for empty pages
        if isinstance(data, dict):
            data = dict(data)
            if data.get("fulfillments") is None:
                data["fulfillments"] = []
            for key in ("nextPageToken", "next_page_token"):
                if key in data and data[key] is None:
                    data[key] = ""
        return data


# ---------------------------------------------------------------------------
# Transition requests
# ---------------------------------------------------------------------------

class ConfirmOrderAccept(_ApiModel):
    packaging_time: datetime
    delivery_time: datetime


class ConfirmOrderRequest(_ApiModel):
    """Exactly one of ack / accept / decline is set."""
    ack: Optional[Dict[str, Any]] = None
    accept: Optional[ConfirmOrderAccept] = None
    decline: Optional[str] = None

    @model_validator(mode="after")
    def _one_of(self) -> "ConfirmOrderRequest":
        chosen = [f for f in ("ack", "accept", "decline") if getattr(self, f) is not None]
        if len(chosen) != 1:
            raise ValueError(f"exactly one of ack/accept/decline required, got {chosen or 'none'}")
        return self

    @classmethod
    def acknowledge(cls) -> "ConfirmOrderRequest":
        return cls(ack={})

    @classmethod
    def accept_with(cls, packaging_time: datetime, delivery_time: datetime) -> "ConfirmOrderRequest":
        return cls(accept=ConfirmOrderAccept(packaging_time=packaging_time, delivery_time=delivery_time))

    @classmethod
    def decline_with(cls, reason: str) -> "ConfirmOrderRequest":
        return cls(decline=reason)


class ProcessOrderRequest(_ApiModel):
    completed: bool = False

    def to_payload(self) -> Dict[str, Any]:
        # completed=false must be sent explicitly
        return self.model_dump(mode="json", by_alias=True)


class DeliverOrderRequest(_ApiModel):
    delivery: Delivery
    completed: bool = False

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class Settlement(_ApiModel):
    """Optional settlement override sent when completing an order.

    Only needed when the vendor settles through a different payment channel
    than the one the customer chose.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    payment: Optional[Dict[str, Any]] = None


class CompleteOrderRequest(_ApiModel):
    settlement: Optional[Settlement] = None
