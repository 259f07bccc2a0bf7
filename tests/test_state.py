"""Tests for the trip state store."""

import asyncio

import pytest

from tripupdate_processor.services.tripupdate.events import StopEstimate, TripCancellation
from tripupdate_processor.services.tripupdate.state import (
    EVICTION_SWEEP_INTERVAL_SEC,
    StopPrediction,
    TripStateStore,
    TripStatus,
)

from fixtures.event_fixture import TRIP_ID, cancellation_payload, stop_estimate_payload


def _cancellation(status: str = "CANCELED", **kwargs: object) -> TripCancellation:
    return TripCancellation.model_validate(cancellation_payload(status=status, **kwargs))


def _estimate(**kwargs: object) -> StopEstimate:
    return StopEstimate.model_validate(stop_estimate_payload(**kwargs))


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestTransitions:
    """Unit tests for TripStateStore.apply transitions."""

    @pytest.mark.asyncio
    async def test_first_estimate_creates_scheduled_trip(self) -> None:
        store = TripStateStore()
        emit, snapshot = await store.apply(_estimate(estimated_time_utc_ms=5000), 100)

        assert emit is True
        assert snapshot.status == TripStatus.SCHEDULED
        assert snapshot.trip_id == TRIP_ID
        assert snapshot.last_event_time_ms == 100
        assert len(snapshot.predictions) == 1
        assert snapshot.predictions[0].arrival_time_ms == 5000
        assert snapshot.predictions[0].departure_time_ms is None
        assert TRIP_ID in store

    @pytest.mark.asyncio
    async def test_cancel_keeps_predictions(self) -> None:
        store = TripStateStore()
        await store.apply(_estimate(), 1)
        emit, snapshot = await store.apply(_cancellation("CANCELED"), 2)

        assert emit is True
        assert snapshot.status == TripStatus.CANCELED
        assert len(snapshot.predictions) == 1

    @pytest.mark.asyncio
    async def test_estimate_while_cancelled_is_cached_only(self) -> None:
        store = TripStateStore()
        await store.apply(_cancellation("CANCELED"), 1)
        emit, snapshot = await store.apply(_estimate(), 2)

        assert emit is False
        assert snapshot.status == TripStatus.CANCELED
        assert len(snapshot.predictions) == 1

    @pytest.mark.asyncio
    async def test_running_restores_cached_predictions(self) -> None:
        store = TripStateStore()
        await store.apply(_cancellation("CANCELED"), 1)
        await store.apply(_estimate(stop_id="A"), 2)
        emit, snapshot = await store.apply(_cancellation("RUNNING"), 3)

        assert emit is True
        assert snapshot.status == TripStatus.RUNNING
        assert [p.stop_id for p in snapshot.predictions] == ["A"]

    @pytest.mark.asyncio
    async def test_estimate_while_running_emits(self) -> None:
        store = TripStateStore()
        await store.apply(_cancellation("RUNNING"), 1)
        emit, snapshot = await store.apply(_estimate(), 2)

        assert emit is True
        assert snapshot.status == TripStatus.RUNNING

    @pytest.mark.asyncio
    async def test_arrival_and_departure_merge_per_stop(self) -> None:
        store = TripStateStore()
        await store.apply(_estimate(estimate_type="ARRIVAL", estimated_time_utc_ms=1000), 1)
        _, snapshot = await store.apply(
            _estimate(estimate_type="DEPARTURE", estimated_time_utc_ms=2000), 2
        )

        assert len(snapshot.predictions) == 1
        assert snapshot.predictions[0].arrival_time_ms == 1000
        assert snapshot.predictions[0].departure_time_ms == 2000

    @pytest.mark.asyncio
    async def test_departure_first_creates_departure_only(self) -> None:
        store = TripStateStore()
        _, snapshot = await store.apply(
            _estimate(estimate_type="DEPARTURE", estimated_time_utc_ms=2000), 1
        )

        assert snapshot.predictions[0].arrival_time_ms is None
        assert snapshot.predictions[0].departure_time_ms == 2000

    @pytest.mark.asyncio
    async def test_latest_estimate_wins(self) -> None:
        store = TripStateStore()
        await store.apply(_estimate(estimated_time_utc_ms=1000), 1)
        _, snapshot = await store.apply(_estimate(estimated_time_utc_ms=3000), 2)

        assert snapshot.predictions[0].arrival_time_ms == 3000

    @pytest.mark.asyncio
    async def test_predictions_in_first_observed_order(self) -> None:
        store = TripStateStore()
        for stop_id in ["C", "A", "B"]:
            await store.apply(_estimate(stop_id=stop_id), 1)
        _, snapshot = await store.apply(_estimate(stop_id="A", estimated_time_utc_ms=9), 2)

        assert [p.stop_id for p in snapshot.predictions] == ["C", "A", "B"]

    @pytest.mark.asyncio
    async def test_snapshot_is_detached_from_state(self) -> None:
        store = TripStateStore()
        _, first = await store.apply(_estimate(estimated_time_utc_ms=1000), 1)
        await store.apply(_estimate(estimated_time_utc_ms=2000), 2)

        assert first.predictions[0].arrival_time_ms == 1000

    @pytest.mark.asyncio
    async def test_trips_are_independent(self) -> None:
        store = TripStateStore()
        await store.apply(_cancellation("CANCELED", trip_id=1), 1)
        emit, snapshot = await store.apply(_estimate(trip_id=2), 2)

        assert emit is True
        assert snapshot.status == TripStatus.SCHEDULED
        assert len(store) == 2

    @pytest.mark.asyncio
    async def test_concurrent_updates_to_one_trip(self) -> None:
        store = TripStateStore()
        await asyncio.gather(
            *(store.apply(_estimate(stop_id=f"S{i}"), i) for i in range(50))
        )
        snapshot = store.get(TRIP_ID)

        assert snapshot is not None
        assert len(snapshot.predictions) == 50

    def test_get_unknown_trip(self) -> None:
        assert TripStateStore().get(99) is None


class TestEviction:
    """Unit tests for idle trip eviction."""

    @pytest.mark.asyncio
    async def test_ttl_zero_keeps_trips(self) -> None:
        clock = FakeClock()
        store = TripStateStore(ttl_sec=0, clock=clock)
        await store.apply(_estimate(), 1)
        clock.now += 10**9

        assert store.evict_expired() == 0
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_idle_trip_is_evicted(self) -> None:
        clock = FakeClock()
        store = TripStateStore(ttl_sec=100, clock=clock)
        await store.apply(_estimate(trip_id=1), 1)
        clock.now += 50
        await store.apply(_estimate(trip_id=2), 2)
        clock.now += 60

        assert store.evict_expired() == 1
        assert 1 not in store
        assert 2 in store

    @pytest.mark.asyncio
    async def test_sweep_runs_on_apply(self) -> None:
        clock = FakeClock()
        store = TripStateStore(ttl_sec=10, clock=clock)
        await store.apply(_estimate(trip_id=1), 1)
        clock.now += EVICTION_SWEEP_INTERVAL_SEC + 1
        await store.apply(_estimate(trip_id=2), 2)

        assert 1 not in store
        assert 2 in store

    @pytest.mark.asyncio
    async def test_clear(self) -> None:
        store = TripStateStore()
        await store.apply(_estimate(), 1)
        store.clear()
        assert len(store) == 0


def test_prediction_needs_a_time() -> None:
    with pytest.raises(ValueError):
        StopPrediction("S1")
