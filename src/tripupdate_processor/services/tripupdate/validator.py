"""Business-rule filtering of decoded events."""

from __future__ import annotations

from typing import Iterable, Optional

from tripupdate_processor.logging import get_logger
from tripupdate_processor.services.tripupdate.events import IncomingEvent
from tripupdate_processor.services.tripupdate.routes import (
    DEFAULT_EXCLUDED_ROUTE_PATTERNS,
    compile_route_patterns,
    jore_to_gtfs_direction,
    matching_route_pattern,
)

logger = get_logger(__name__)


class EventValidator:
    """Decides whether an event may appear in the TripUpdate feed.

    Rejections are expected outcomes: the caller acknowledges the message
    and moves on.
    """

    def __init__(self, excluded_route_patterns: Optional[Iterable[str]] = None) -> None:
        if excluded_route_patterns is None:
            excluded_route_patterns = DEFAULT_EXCLUDED_ROUTE_PATTERNS
        self._excluded = compile_route_patterns(excluded_route_patterns)

    def rejection_reason(self, event: IncomingEvent) -> Optional[str]:
        """Return why ``event`` is rejected, or None when it is eligible."""
        _, direction_ok = jore_to_gtfs_direction(event.direction_id)
        if not direction_ok:
            return "invalid direction"

        if matching_route_pattern(event.route_id, self._excluded):
            return "excluded route"

        return None

    def is_eligible(self, event: IncomingEvent) -> bool:
        reason = self.rejection_reason(event)
        if reason is None:
            return True

        logger.debug(
            "Filtering event",
            reason=reason,
            trip_id=event.trip_id,
            route_id=event.route_id,
            direction_id=event.direction_id,
        )
        return False
