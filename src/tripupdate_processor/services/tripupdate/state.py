"""Per-trip cancellation status and stop-time prediction cache."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

from tripupdate_processor.logging import get_logger
from tripupdate_processor.services.tripupdate.events import (
    CancellationStatus,
    EstimateType,
    IncomingEvent,
    StopEstimate,
    TripCancellation,
)

logger = get_logger(__name__)

# Evict at most once per this many seconds
EVICTION_SWEEP_INTERVAL_SEC = 60.0


class TripStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    RUNNING = "RUNNING"
    CANCELED = "CANCELED"


@dataclass
class StopPrediction:
    """Latest predicted arrival/departure at one stop, in epoch milliseconds."""

    stop_id: str
    arrival_time_ms: Optional[int] = None
    departure_time_ms: Optional[int] = None

    def __post_init__(self) -> None:
        if self.arrival_time_ms is None and self.departure_time_ms is None:
            raise ValueError(f"Stop prediction for {self.stop_id} has no arrival or departure")


@dataclass(frozen=True)
class TripSnapshot:
    """Immutable view of a trip's state after an event has been applied."""

    trip_id: int
    status: TripStatus
    predictions: Tuple[StopPrediction, ...]
    last_event_time_ms: int


@dataclass
class TripState:
    status: TripStatus = TripStatus.SCHEDULED
    # Keyed by stop id, in order of first observation
    predictions: Dict[str, StopPrediction] = field(default_factory=dict)
    last_event_time_ms: int = 0
    last_touched: float = 0.0
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def snapshot(self, trip_id: int) -> TripSnapshot:
        predictions = tuple(
            StopPrediction(p.stop_id, p.arrival_time_ms, p.departure_time_ms)
            for p in self.predictions.values()
        )
        return TripSnapshot(
            trip_id=trip_id,
            status=self.status,
            predictions=predictions,
            last_event_time_ms=self.last_event_time_ms,
        )


class TripStateStore:
    """Keyed store of TripState with one writer at a time per trip.

    Transitions:
        TripCancellation(CANCELED): status -> CANCELED, predictions kept, emit.
        TripCancellation(RUNNING):  status -> RUNNING, emit.
        StopEstimate, not CANCELED: upsert prediction, emit.
        StopEstimate, CANCELED:     upsert prediction, do not emit.

    Predictions cached while a trip is cancelled are republished when the
    trip is set running again.
    """

    def __init__(
        self,
        ttl_sec: int = 0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl_sec = ttl_sec
        self._clock = clock
        self._trips: Dict[int, TripState] = {}
        self._last_sweep = clock()

    def __len__(self) -> int:
        return len(self._trips)

    def __contains__(self, trip_id: object) -> bool:
        return trip_id in self._trips

    def get(self, trip_id: int) -> Optional[TripSnapshot]:
        state = self._trips.get(trip_id)
        return state.snapshot(trip_id) if state else None

    async def apply(self, event: IncomingEvent, event_time_ms: int) -> Tuple[bool, TripSnapshot]:
        """Apply ``event`` to its trip's state.

        Returns:
            Tuple of (should_emit, snapshot after the event).
        """
        self._maybe_sweep()

        trip_id = event.trip_id
        state = self._trips.get(trip_id)
        if state is None:
            state = TripState()
            self._trips[trip_id] = state

        async with state.lock:
            state.last_touched = self._clock()
            state.last_event_time_ms = event_time_ms

            if isinstance(event, TripCancellation):
                should_emit = self._apply_cancellation(state, event)
            elif isinstance(event, StopEstimate):
                should_emit = self._apply_estimate(state, event)
            else:
                raise TypeError(f"Unsupported event type: {type(event).__name__}")

            return should_emit, state.snapshot(trip_id)

    def evict_expired(self) -> int:
        """Drop trips idle for longer than the TTL. Returns the eviction count."""
        if not self._ttl_sec:
            return 0

        cutoff = self._clock() - self._ttl_sec
        expired = [
            trip_id
            for trip_id, state in self._trips.items()
            if state.last_touched < cutoff and not state.lock.locked()
        ]
        for trip_id in expired:
            del self._trips[trip_id]

        if expired:
            logger.info("Evicted idle trips", evicted=len(expired), remaining=len(self._trips))
        return len(expired)

    def clear(self) -> None:
        self._trips.clear()

    def _maybe_sweep(self) -> None:
        now = self._clock()
        if self._ttl_sec and now - self._last_sweep >= EVICTION_SWEEP_INTERVAL_SEC:
            self._last_sweep = now
            self.evict_expired()

    @staticmethod
    def _apply_cancellation(state: TripState, event: TripCancellation) -> bool:
        if event.status == CancellationStatus.CANCELED:
            state.status = TripStatus.CANCELED
        else:
            state.status = TripStatus.RUNNING
        return True

    @staticmethod
    def _apply_estimate(state: TripState, event: StopEstimate) -> bool:
        time_ms = event.estimated_time_utc_ms
        is_arrival = event.type == EstimateType.ARRIVAL

        prediction = state.predictions.get(event.stop_id)
        if prediction is None:
            state.predictions[event.stop_id] = StopPrediction(
                stop_id=event.stop_id,
                arrival_time_ms=time_ms if is_arrival else None,
                departure_time_ms=None if is_arrival else time_ms,
            )
        elif is_arrival:
            prediction.arrival_time_ms = time_ms
        else:
            prediction.departure_time_ms = time_ms

        return state.status != TripStatus.CANCELED
