"""Per-message orchestration: classify, filter, update state, publish, ack."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

from tripupdate_processor.logging import get_logger, message_context
from tripupdate_processor.services.tripupdate.classifier import EventClassifier
from tripupdate_processor.services.tripupdate.events import (
    InboundMessage,
    OutboundMessage,
    TripCancellation,
    Unrecognized,
)
from tripupdate_processor.services.tripupdate.factory import GtfsRtFactory
from tripupdate_processor.services.tripupdate.routes import (
    jore_to_gtfs_direction,
    normalize_route_id,
)
from tripupdate_processor.services.tripupdate.state import TripStateStore
from tripupdate_processor.services.tripupdate.validator import EventValidator

logger = get_logger(__name__)

# Decision outcomes
OUTCOME_UNRECOGNIZED = "unrecognized"
OUTCOME_FILTERED = "filtered"
OUTCOME_SUPPRESSED = "suppressed"
OUTCOME_PUBLISH = "publish"


class Publisher(Protocol):
    async def publish(self, message: OutboundMessage) -> None: ...


@dataclass(frozen=True)
class Decision:
    """What to do with one inbound message."""

    outcome: str
    output: Optional[OutboundMessage] = None
    trip_id: Optional[int] = None


class MessageRouter:
    """Drives one inbound message through the pipeline.

    Handling is two-phase: ``decide`` classifies, filters and updates trip
    state without side effects on the broker; ``handle`` then publishes the
    decided output (if any) and only afterwards acknowledges the message.
    Any exception raised along the way leaves the message unacknowledged so
    the broker redelivers it.
    """

    def __init__(
        self,
        store: TripStateStore,
        validator: Optional[EventValidator] = None,
        classifier: Optional[EventClassifier] = None,
        factory: Optional[GtfsRtFactory] = None,
    ) -> None:
        self._store = store
        self._validator = validator or EventValidator()
        self._classifier = classifier or EventClassifier()
        self._factory = factory or GtfsRtFactory()
        self._counters: Dict[str, int] = {
            "received": 0,
            "acked": 0,
            OUTCOME_UNRECOGNIZED: 0,
            OUTCOME_FILTERED: 0,
            OUTCOME_SUPPRESSED: 0,
            "published": 0,
        }

    @property
    def store(self) -> TripStateStore:
        return self._store

    @property
    def counters(self) -> Dict[str, int]:
        return dict(self._counters)

    async def decide(self, message: InboundMessage) -> Decision:
        """Classify, filter and apply ``message``; return what to emit."""
        event = self._classifier.classify(message)
        if isinstance(event, Unrecognized):
            return Decision(OUTCOME_UNRECOGNIZED)

        if not self._validator.is_eligible(event):
            return Decision(OUTCOME_FILTERED, trip_id=event.trip_id)

        should_emit, snapshot = await self._store.apply(event, message.event_time_ms)
        if not should_emit:
            logger.debug("Trip is cancelled, caching estimate only", trip_id=event.trip_id)
            return Decision(OUTCOME_SUPPRESSED, trip_id=event.trip_id)

        direction_id, _ = jore_to_gtfs_direction(event.direction_id)
        start_time = event.start_time if isinstance(event, TripCancellation) else None
        feed = self._factory.render(
            snapshot,
            route_id=normalize_route_id(event.route_id),
            direction_id=direction_id,
            event_time_ms=message.event_time_ms,
            start_time=start_time,
        )
        output = OutboundMessage(
            payload=feed.SerializeToString(),
            event_time_ms=message.event_time_ms,
            key=str(event.trip_id),
        )
        return Decision(OUTCOME_PUBLISH, output, trip_id=event.trip_id)

    async def handle(self, message: InboundMessage, publisher: Publisher) -> Decision:
        """Process one message end to end and acknowledge it.

        Raises:
            Exception: Whatever publishing or acknowledging raised. The
                message is not acknowledged in that case.
        """
        self._counters["received"] += 1
        with message_context(message):
            decision = await self.decide(message)

            if decision.output is not None:
                await publisher.publish(decision.output)
                self._counters["published"] += 1
            else:
                self._counters[decision.outcome] += 1

            await self._ack(message)
            logger.debug("Message handled", outcome=decision.outcome, trip_id=decision.trip_id)
            return decision

    async def _ack(self, message: InboundMessage) -> None:
        if message.ack is not None:
            await message.ack()
        self._counters["acked"] += 1

    def get_status(self) -> Dict[str, Any]:
        return {**self._counters, "tracked_trips": len(self._store)}
