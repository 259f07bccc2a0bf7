"""Application configuration via environment variables."""

from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "TripUpdate Processor"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    log_level: str = "INFO"
    # None: JSON everywhere except development
    log_json: Optional[bool] = None

    # NATS JetStream
    nats_url: str = Field(
        default="nats://localhost:4222",
        validation_alias=AliasChoices("NATS_URL", "BROKER_URL"),
    )
    source_stream: str = "transitdata"
    source_subject: str = "transitdata.pubtrans.events"
    consumer_durable_name: str = "tripupdate-processor"
    sink_subject: str = "transitdata.gtfsrt.tripupdates"

    # Consumer loop
    fetch_batch_size: int = Field(default=100, ge=1, le=10000)
    fetch_timeout_sec: float = 5.0
    processor_auto_start: bool = False

    # Filtering: route id patterns of transport modes this feed does not carry
    excluded_route_patterns: List[str] = Field(default_factory=lambda: [r"^300[12]"])

    # Trip state: idle lifetime before eviction, 0 keeps trips forever
    trip_state_ttl_sec: int = Field(default=24 * 60 * 60, ge=0)

    def missing_required_env(self) -> list[str]:
        """Return required environment variables that are missing or empty."""
        missing: list[str] = []

        if not self.nats_url:
            missing.append("NATS_URL")
        if not self.source_subject:
            missing.append("SOURCE_SUBJECT")
        if not self.sink_subject:
            missing.append("SINK_SUBJECT")

        return missing


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
