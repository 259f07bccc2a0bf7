"""Internal event types and broker envelope types.

Inbound back-office events arrive as JSON payloads tagged with a ``schema``
property. They are decoded once, at the boundary, into one of the event
models below; everything downstream works on those typed events.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

# Envelope property names
PROPERTY_SCHEMA = "schema"
PROPERTY_KEY = "key"
PROPERTY_EVENT_TIME = "event-time"

# Schema tags
SCHEMA_STOP_ESTIMATE = "StopEstimate"
SCHEMA_TRIP_CANCELLATION = "TripCancellation"
SCHEMA_GTFS_TRIP_UPDATE = "GTFS_TripUpdate"

# Epoch milliseconds that still fit the feed's uint64 second and int64 time fields
MAX_EPOCH_MS = 2**63 - 1


def is_valid_epoch_ms(value: int) -> bool:
    return 0 <= value <= MAX_EPOCH_MS


class EstimateType(str, Enum):
    ARRIVAL = "ARRIVAL"
    DEPARTURE = "DEPARTURE"


class CancellationStatus(str, Enum):
    CANCELED = "CANCELED"
    RUNNING = "RUNNING"


class StopEstimate(BaseModel):
    """Predicted arrival or departure of a trip at one stop."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    trip_id: int = Field(ge=0, lt=2**63)
    type: EstimateType
    stop_id: str = Field(min_length=1)
    # Via-point sequence number, never forwarded to the feed
    stop_sequence: int
    estimated_time_utc_ms: int = Field(ge=0, le=MAX_EPOCH_MS)
    route_id: str = Field(min_length=1)
    direction_id: int


class TripCancellation(BaseModel):
    """Cancellation (or reinstatement) of a whole trip."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    trip_id: int = Field(ge=0, lt=2**63)
    status: CancellationStatus
    route_id: str = Field(min_length=1)
    direction_id: int
    # Scheduled local start of the trip
    start_time: datetime


IncomingEvent = Union[StopEstimate, TripCancellation]


@dataclass(frozen=True)
class Unrecognized:
    """Classifier outcome for input that is not a usable event."""

    reason: str


@dataclass
class InboundMessage:
    """A message consumed from the broker.

    ``ack`` is invoked by the router once the message's effect (publish or
    skip) is complete. It is never called for messages whose handling failed.
    """

    payload: bytes
    event_time_ms: int
    key: Optional[str] = None
    properties: Dict[str, str] = field(default_factory=dict)
    ack: Optional[Callable[[], Awaitable[None]]] = None

    @property
    def schema(self) -> Optional[str]:
        return self.properties.get(PROPERTY_SCHEMA)


@dataclass(frozen=True)
class OutboundMessage:
    """A GTFS-RT FeedMessage ready to publish."""

    payload: bytes
    event_time_ms: int
    key: str
    properties: Dict[str, str] = field(
        default_factory=lambda: {PROPERTY_SCHEMA: SCHEMA_GTFS_TRIP_UPDATE}
    )
