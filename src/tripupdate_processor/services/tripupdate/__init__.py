"""Back-office events to GTFS-RT TripUpdate conversion pipeline."""

from tripupdate_processor.services.tripupdate.classifier import EventClassifier
from tripupdate_processor.services.tripupdate.factory import GtfsRtFactory
from tripupdate_processor.services.tripupdate.router import MessageRouter
from tripupdate_processor.services.tripupdate.state import TripStateStore
from tripupdate_processor.services.tripupdate.validator import EventValidator

__all__ = [
    "EventClassifier",
    "EventValidator",
    "GtfsRtFactory",
    "MessageRouter",
    "TripStateStore",
]
