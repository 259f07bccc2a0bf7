"""GTFS-RT TripUpdate processor for transit back-office events."""

__version__ = "0.1.0"
