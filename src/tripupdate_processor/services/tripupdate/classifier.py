"""Decode broker envelopes into typed internal events."""

from __future__ import annotations

from typing import Dict, Type, Union

from pydantic import BaseModel, ValidationError

from tripupdate_processor.logging import get_logger
from tripupdate_processor.services.tripupdate.events import (
    SCHEMA_STOP_ESTIMATE,
    SCHEMA_TRIP_CANCELLATION,
    InboundMessage,
    IncomingEvent,
    StopEstimate,
    TripCancellation,
    Unrecognized,
    is_valid_epoch_ms,
)

logger = get_logger(__name__)

EVENT_MODELS: Dict[str, Type[BaseModel]] = {
    SCHEMA_STOP_ESTIMATE: StopEstimate,
    SCHEMA_TRIP_CANCELLATION: TripCancellation,
}


class EventClassifier:
    """Turns an inbound message into a StopEstimate, TripCancellation or Unrecognized.

    Garbage is a normal occurrence on the source subject, so every failure
    mode is a return value, logged at debug level only.
    """

    @staticmethod
    def classify(message: InboundMessage) -> Union[IncomingEvent, Unrecognized]:
        schema = message.schema
        if not schema:
            return _unrecognized("missing schema", message)

        model = EVENT_MODELS.get(schema)
        if model is None:
            return _unrecognized("unknown schema", message)

        if not message.payload:
            return _unrecognized("empty payload", message)

        if not is_valid_epoch_ms(message.event_time_ms):
            return _unrecognized("invalid event time", message, event_time_ms=message.event_time_ms)

        try:
            event = model.model_validate_json(message.payload)
        except ValidationError as exc:
            return _unrecognized("invalid payload", message, errors=exc.error_count())

        if message.key is not None and message.key != str(event.trip_id):
            return _unrecognized("key mismatch", message, trip_id=event.trip_id)

        return event  # type: ignore[return-value]


def _unrecognized(reason: str, message: InboundMessage, **fields: object) -> Unrecognized:
    logger.debug(
        "Discarding unrecognized message",
        reason=reason,
        schema=message.schema,
        key=message.key,
        size_bytes=len(message.payload),
        **fields,
    )
    return Unrecognized(reason=reason)
