"""Message broker binding for the TripUpdate processor."""

from tripupdate_processor.services.broker.nats_client import BrokerError, NatsBroker, PublishError
from tripupdate_processor.services.broker.worker import ProcessorWorker

__all__ = [
    "BrokerError",
    "NatsBroker",
    "ProcessorWorker",
    "PublishError",
]
