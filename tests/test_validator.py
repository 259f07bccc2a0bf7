"""Tests for the event eligibility filter."""

import pytest

from tripupdate_processor.services.tripupdate.events import StopEstimate, TripCancellation
from tripupdate_processor.services.tripupdate.validator import EventValidator

from fixtures.event_fixture import cancellation_payload, stop_estimate_payload


def _cancellation(**kwargs: object) -> TripCancellation:
    return TripCancellation.model_validate(cancellation_payload(**kwargs))


def _estimate(**kwargs: object) -> StopEstimate:
    return StopEstimate.model_validate(stop_estimate_payload(**kwargs))


class TestEventValidator:
    """Unit tests for EventValidator."""

    @pytest.mark.parametrize("direction", [1, 2])
    def test_valid_direction_is_eligible(self, direction: int) -> None:
        validator = EventValidator()
        assert validator.is_eligible(_cancellation(direction_id=direction))
        assert validator.is_eligible(_estimate(direction_id=direction))

    @pytest.mark.parametrize("direction", [0, 10])
    def test_invalid_direction_is_rejected(self, direction: int) -> None:
        validator = EventValidator()
        event = _cancellation(direction_id=direction)
        assert not validator.is_eligible(event)
        assert validator.rejection_reason(event) == "invalid direction"

    def test_train_route_is_rejected(self) -> None:
        validator = EventValidator()
        event = _cancellation(route_id="3001")
        assert not validator.is_eligible(event)
        assert validator.rejection_reason(event) == "excluded route"

    def test_custom_patterns_replace_defaults(self) -> None:
        validator = EventValidator(excluded_route_patterns=[r"^31M"])
        assert validator.is_eligible(_estimate(route_id="3001"))
        assert not validator.is_eligible(_estimate(route_id="31M1"))

    def test_empty_patterns_disable_route_filter(self) -> None:
        validator = EventValidator(excluded_route_patterns=[])
        assert validator.is_eligible(_cancellation(route_id="3002"))
