"""NATS JetStream binding: pull consumer for events, publisher for TripUpdates."""

from __future__ import annotations

import asyncio
import time
from typing import Any, Dict, List, Optional

import nats
from nats.errors import Error as NatsError
from nats.errors import TimeoutError as NatsTimeoutError

from tripupdate_processor.logging import get_logger
from tripupdate_processor.services.tripupdate.events import (
    PROPERTY_EVENT_TIME,
    PROPERTY_KEY,
    InboundMessage,
    OutboundMessage,
    is_valid_epoch_ms,
)

logger = get_logger(__name__)


class BrokerError(Exception):
    """Raised when the broker connection is unusable."""


class PublishError(BrokerError):
    """Raised when a TripUpdate could not be stored by JetStream."""


def to_inbound(msg: Any) -> InboundMessage:
    """Convert a JetStream message into an InboundMessage.

    Headers carry the envelope properties. The event time falls back to the
    JetStream storage timestamp, then to the wall clock.
    """
    headers: Dict[str, str] = dict(msg.headers or {})
    key = headers.pop(PROPERTY_KEY, None)

    event_time_ms: Optional[int] = None
    raw_event_time = headers.pop(PROPERTY_EVENT_TIME, None)
    if raw_event_time:
        try:
            event_time_ms = int(raw_event_time)
        except ValueError:
            logger.debug("Ignoring malformed event-time header", value=raw_event_time)
        else:
            if not is_valid_epoch_ms(event_time_ms):
                logger.debug("Ignoring out-of-range event-time header", value=raw_event_time)
                event_time_ms = None

    if event_time_ms is None:
        try:
            event_time_ms = int(msg.metadata.timestamp.timestamp() * 1000)
        except (AttributeError, ValueError, TypeError):
            event_time_ms = int(time.time() * 1000)

    return InboundMessage(
        payload=msg.data or b"",
        event_time_ms=event_time_ms,
        key=key,
        properties=headers,
        ack=msg.ack,
    )


class NatsBroker:
    """Owns the NATS connection, the durable pull subscription and publishing."""

    def __init__(
        self,
        url: str,
        stream: str,
        source_subject: str,
        durable_name: str,
        sink_subject: str,
    ) -> None:
        self.url = url
        self.stream = stream
        self.source_subject = source_subject
        self.durable_name = durable_name
        self.sink_subject = sink_subject
        self._nc: Any = None
        self._js: Any = None
        self._sub: Any = None

    @property
    def is_connected(self) -> bool:
        return self._nc is not None and self._nc.is_connected

    async def connect(self) -> None:
        """Connect and bind the durable pull consumer."""
        if self.is_connected:
            return

        try:
            self._nc = await nats.connect(servers=[self.url])
            self._js = self._nc.jetstream()
            self._sub = await self._js.pull_subscribe(
                self.source_subject,
                durable=self.durable_name,
                stream=self.stream,
            )
        except NatsError as exc:
            msg = f"Failed to connect to NATS at {self.url}"
            logger.error(msg, error=str(exc))
            raise BrokerError(msg) from exc

        logger.info(
            "Connected to NATS JetStream",
            url=self.url,
            stream=self.stream,
            source_subject=self.source_subject,
            durable=self.durable_name,
            sink_subject=self.sink_subject,
        )

    async def disconnect(self) -> None:
        if self._nc is not None:
            try:
                await self._nc.drain()
            except NatsError as exc:
                logger.warning("Error draining NATS connection", error=str(exc))
            self._nc = None
            self._js = None
            self._sub = None
            logger.info("Disconnected from NATS")

    async def fetch(self, batch_size: int, timeout_sec: float) -> List[InboundMessage]:
        """Pull up to ``batch_size`` messages; empty list when none arrive in time."""
        if self._sub is None:
            raise BrokerError("Not connected to NATS. Call connect() first.")

        try:
            msgs = await self._sub.fetch(batch_size, timeout=timeout_sec)
        except (NatsTimeoutError, asyncio.TimeoutError):
            return []
        except NatsError as exc:
            raise BrokerError(f"Fetch from {self.source_subject} failed") from exc

        return [to_inbound(m) for m in msgs]

    async def publish(self, message: OutboundMessage) -> None:
        """Publish and wait for the JetStream ack, so the output is durable."""
        if self._js is None:
            raise PublishError("Not connected to NATS. Call connect() first.")

        headers = {
            **message.properties,
            PROPERTY_KEY: message.key,
            PROPERTY_EVENT_TIME: str(message.event_time_ms),
        }
        try:
            await self._js.publish(self.sink_subject, message.payload, headers=headers)
        except NatsError as exc:
            msg = f"Failed to publish TripUpdate for {message.key}"
            logger.error(msg, subject=self.sink_subject, error=str(exc))
            raise PublishError(msg) from exc
