"""GTFS-RT FeedMessage construction for a single trip."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from google.transit import gtfs_realtime_pb2

from tripupdate_processor.services.tripupdate.state import StopPrediction, TripSnapshot, TripStatus

GTFS_RT_VERSION = "2.0"
GTFS_DATE_FORMAT = "%Y%m%d"
GTFS_TIME_FORMAT = "%H:%M:%S"


def ms_to_seconds(epoch_ms: int) -> int:
    """Epoch milliseconds to whole GTFS-RT seconds."""
    return epoch_ms // 1000 if epoch_ms >= 0 else -((-epoch_ms) // 1000)


class GtfsRtFactory:
    """Builds differential FeedMessages holding exactly one TripUpdate entity."""

    @staticmethod
    def new_trip_update(
        snapshot: TripSnapshot,
        route_id: str,
        direction_id: int,
        event_time_ms: int,
        start_time: Optional[datetime] = None,
    ) -> gtfs_realtime_pb2.TripUpdate:
        """Render a trip snapshot as a TripUpdate.

        Args:
            snapshot: Trip state after the triggering event.
            route_id: Public (normalized) route id.
            direction_id: GTFS-RT direction (0 or 1).
            event_time_ms: Event time of the triggering message.
            start_time: Scheduled local start of the trip, known only for
                cancellation-originated updates.
        """
        trip_update = gtfs_realtime_pb2.TripUpdate()
        trip_update.timestamp = ms_to_seconds(event_time_ms)

        trip = trip_update.trip
        trip.route_id = route_id
        trip.direction_id = direction_id
        if snapshot.status == TripStatus.CANCELED:
            trip.schedule_relationship = gtfs_realtime_pb2.TripDescriptor.CANCELED
        else:
            trip.schedule_relationship = gtfs_realtime_pb2.TripDescriptor.SCHEDULED

        if start_time is not None:
            trip.start_date = start_time.strftime(GTFS_DATE_FORMAT)
            trip.start_time = start_time.strftime(GTFS_TIME_FORMAT)

        # A cancelled trip carries no stop-time updates; the cache is kept
        # so the predictions come back if the trip runs again.
        if snapshot.status != TripStatus.CANCELED:
            for prediction in snapshot.predictions:
                GtfsRtFactory._add_stop_time_update(trip_update, prediction)

        return trip_update

    @staticmethod
    def new_feed_message(
        entity_id: str,
        trip_update: gtfs_realtime_pb2.TripUpdate,
        timestamp_sec: int,
    ) -> gtfs_realtime_pb2.FeedMessage:
        """Wrap a TripUpdate in a differential FeedMessage with a single entity."""
        feed = gtfs_realtime_pb2.FeedMessage()
        feed.header.gtfs_realtime_version = GTFS_RT_VERSION
        feed.header.incrementality = gtfs_realtime_pb2.FeedHeader.DIFFERENTIAL
        feed.header.timestamp = timestamp_sec

        entity = feed.entity.add()
        entity.id = entity_id
        entity.trip_update.CopyFrom(trip_update)
        return feed

    @staticmethod
    def render(
        snapshot: TripSnapshot,
        route_id: str,
        direction_id: int,
        event_time_ms: int,
        start_time: Optional[datetime] = None,
    ) -> gtfs_realtime_pb2.FeedMessage:
        """Render a snapshot straight into a single-entity FeedMessage."""
        trip_update = GtfsRtFactory.new_trip_update(
            snapshot, route_id, direction_id, event_time_ms, start_time
        )
        return GtfsRtFactory.new_feed_message(
            str(snapshot.trip_id), trip_update, ms_to_seconds(event_time_ms)
        )

    @staticmethod
    def _add_stop_time_update(
        trip_update: gtfs_realtime_pb2.TripUpdate,
        prediction: StopPrediction,
    ) -> None:
        arrival_ms = prediction.arrival_time_ms
        departure_ms = prediction.departure_time_ms

        # Consumers such as OpenTripPlanner expect both events; mirror the
        # one we have into the missing field.
        if arrival_ms is None:
            arrival_ms = departure_ms
        if departure_ms is None:
            departure_ms = arrival_ms

        stu = trip_update.stop_time_update.add()
        stu.stop_id = prediction.stop_id
        stu.arrival.time = ms_to_seconds(arrival_ms)  # type: ignore[arg-type]
        stu.departure.time = ms_to_seconds(departure_ms)  # type: ignore[arg-type]
