"""Consumer loop feeding broker messages through the MessageRouter."""

from __future__ import annotations

import asyncio
import uuid
from contextlib import suppress
from datetime import datetime, timezone
from typing import Any, Optional

from tripupdate_processor.config import get_settings
from tripupdate_processor.logging import get_logger
from tripupdate_processor.services.broker.nats_client import BrokerError, NatsBroker
from tripupdate_processor.services.tripupdate.router import MessageRouter
from tripupdate_processor.services.tripupdate.state import TripStateStore
from tripupdate_processor.services.tripupdate.validator import EventValidator

logger = get_logger(__name__)

# Pause after a failed fetch cycle before trying again
ERROR_BACKOFF_SEC = 5.0


class ProcessorWorker:
    """Pulls source events, routes them and publishes TripUpdates.

    Messages are processed one at a time in arrival order; a message is
    acknowledged only after its TripUpdate (if any) has been stored by the
    broker.

    Usage:
        worker = ProcessorWorker()
        await worker.start()   # launches background task
        await worker.stop()    # cancels background task

        # Or process a single fetched batch:
        report = await worker.run_once()
    """

    def __init__(
        self,
        broker: Optional[NatsBroker] = None,
        router: Optional[MessageRouter] = None,
    ) -> None:
        settings = get_settings()
        self._batch_size = settings.fetch_batch_size
        self._fetch_timeout = settings.fetch_timeout_sec
        self._broker = broker or NatsBroker(
            url=settings.nats_url,
            stream=settings.source_stream,
            source_subject=settings.source_subject,
            durable_name=settings.consumer_durable_name,
            sink_subject=settings.sink_subject,
        )
        self._router = router or MessageRouter(
            store=TripStateStore(ttl_sec=settings.trip_state_ttl_sec),
            validator=EventValidator(settings.excluded_route_patterns),
        )

        self._task: asyncio.Task[None] | None = None
        self._running = False
        self._batch_count = 0
        self._failed_count = 0
        self._last_batch_at: datetime | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def broker(self) -> NatsBroker:
        return self._broker

    @property
    def router(self) -> MessageRouter:
        return self._router

    async def start(self) -> None:
        """Connect to the broker and start the background consume loop."""
        if self._running:
            logger.warning("Worker already running, ignoring start request")
            return

        await self._broker.connect()
        self._running = True
        self._task = asyncio.create_task(self._consume_loop())
        logger.info(
            "TripUpdate processor started",
            batch_size=self._batch_size,
            fetch_timeout_sec=self._fetch_timeout,
        )

    async def stop(self) -> None:
        """Stop the consume loop and close the broker connection."""
        if not self._running:
            return

        self._running = False
        if self._task and not self._task.done():
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
        self._task = None
        await self._broker.disconnect()
        logger.info("TripUpdate processor stopped")

    async def run_once(self) -> dict[str, Any]:
        """Fetch one batch and handle every message in it.

        A failure handling one message is logged and leaves that message
        unacknowledged for redelivery; the rest of the batch still runs.

        Returns:
            Report dict with per-batch counts.
        """
        batch_id = str(uuid.uuid4())[:8]
        messages = await self._broker.fetch(self._batch_size, self._fetch_timeout)
        self._batch_count += 1
        self._last_batch_at = datetime.now(timezone.utc)

        report: dict[str, Any] = {
            "batch_id": batch_id,
            "fetched": len(messages),
            "published": 0,
            "failed": 0,
            "outcomes": {},
        }

        for message in messages:
            try:
                decision = await self._router.handle(message, self._broker)
            except Exception as exc:
                self._failed_count += 1
                report["failed"] += 1
                logger.error(
                    "Message handling failed, leaving unacknowledged",
                    batch_id=batch_id,
                    key=message.key,
                    schema=message.schema,
                    exc_info=exc,
                )
                continue

            outcomes = report["outcomes"]
            outcomes[decision.outcome] = outcomes.get(decision.outcome, 0) + 1
            if decision.output is not None:
                report["published"] += 1

        if messages:
            logger.info("Batch processed", **report)
        return report

    async def get_status(self) -> dict[str, Any]:
        """Get current worker status for health/meta endpoints."""
        return {
            "running": self._running,
            "broker_connected": self._broker.is_connected,
            "batch_count": self._batch_count,
            "failed": self._failed_count,
            "last_batch_at": self._last_batch_at.isoformat() if self._last_batch_at else None,
            **self._router.get_status(),
        }

    async def _consume_loop(self) -> None:
        """Main loop that runs until stopped."""
        while self._running:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                break
            except BrokerError as exc:
                logger.error("Fetch cycle failed", error=str(exc))
                await asyncio.sleep(ERROR_BACKOFF_SEC)
            except Exception as exc:
                logger.error("Fetch cycle failed unexpectedly", exc_info=exc)
                await asyncio.sleep(ERROR_BACKOFF_SEC)


# Singleton instance for the app lifecycle
_worker_instance: ProcessorWorker | None = None


def get_worker() -> ProcessorWorker:
    """Get or create the singleton worker instance."""
    global _worker_instance
    if _worker_instance is None:
        _worker_instance = ProcessorWorker()
    return _worker_instance


def reset_worker() -> None:
    """Reset the singleton (for testing)."""
    global _worker_instance
    _worker_instance = None
