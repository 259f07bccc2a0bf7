"""Tests for settings loading."""

import pytest

from tripupdate_processor.config import Settings


class TestSettings:
    def test_defaults(self) -> None:
        settings = Settings(_env_file=None)

        assert settings.excluded_route_patterns == [r"^300[12]"]
        assert settings.trip_state_ttl_sec == 86400
        assert settings.log_json is None
        assert settings.missing_required_env() == []

    def test_env_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("NATS_URL", "nats://broker:4222")
        monkeypatch.setenv("EXCLUDED_ROUTE_PATTERNS", '["^300[12]", "^31M"]')
        monkeypatch.setenv("TRIP_STATE_TTL_SEC", "0")

        settings = Settings(_env_file=None)

        assert settings.nats_url == "nats://broker:4222"
        assert settings.excluded_route_patterns == ["^300[12]", "^31M"]
        assert settings.trip_state_ttl_sec == 0

    def test_missing_required(self) -> None:
        settings = Settings(_env_file=None, sink_subject="")
        assert settings.missing_required_env() == ["SINK_SUBJECT"]
