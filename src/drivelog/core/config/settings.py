"""Application settings loaded from environment variables."""

from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings

from drivelog.domains.driving.domain_logic.tracking_models import TrackingConfig


class Settings(BaseSettings):
    """drivelog server configuration."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Server
    # Default to loopback: trip data is a location history of the driver.
    # Opt into `0.0.0.0` explicitly when you intend remote access.
    drivelog_host: str = "127.0.0.1"
    drivelog_port: int = 8011
    drivelog_log_level: str = "info"
    # Additional explicit guard: if binding to non-loopback, refuse to start unless
    # this is set true (there is currently no auth layer).
    drivelog_allow_insecure_bind: bool = False

    # Storage
    db_path: str = "~/.drivelog/trips.db"

    # Encryption
    encryption_key: str = ""

    # Reverse geocoding of trip endpoints
    geocoder: Literal["nominatim", "mock", "none"] = "none"
    nominatim_url: str = "https://nominatim.openstreetmap.org/reverse"
    nominatim_user_agent: str = "drivelog/0.1 (trip journal)"
    nominatim_min_interval_seconds: float = 1.0

    # Tracking (see TrackingConfig for semantics)
    tracking_speed_threshold: float = 2.2352
    tracking_trip_separator_seconds: float = 210.0
    tracking_sample_rate_seconds: float = 5.0
    tracking_trip_entries_min: int = 12
    tracking_journal_limit: int = 1000
    tracking_trip_history_limit: int = 20
    tracking_trip_confirm_samples: int = 2
    tracking_persist_max_retries: int = 3
    tracking_persist_backoff_seconds: float = 0.5
    tracking_persist_backoff_max_seconds: float = 5.0
    tracking_motion_history_limit: int = 100
    tracking_period_timezone: str = "UTC"

    # Arm a wall-clock separation timer. Disable when replaying recorded
    # streams, whose trips are closed by sample time instead.
    live_separation_timer: bool = True

    def tracking_config(self) -> TrackingConfig:
        """Build the engine configuration.

        Raises:
            ConfigurationInvalid: If any tracking value is out of range.
        """
        config = TrackingConfig(
            speed_threshold=self.tracking_speed_threshold,
            trip_separator_seconds=self.tracking_trip_separator_seconds,
            sample_rate_seconds=self.tracking_sample_rate_seconds,
            trip_entries_min=self.tracking_trip_entries_min,
            journal_limit=self.tracking_journal_limit,
            trip_history_limit=self.tracking_trip_history_limit,
            trip_confirm_samples=self.tracking_trip_confirm_samples,
            persist_max_retries=self.tracking_persist_max_retries,
            persist_backoff_seconds=self.tracking_persist_backoff_seconds,
            persist_backoff_max_seconds=self.tracking_persist_backoff_max_seconds,
            motion_history_limit=self.tracking_motion_history_limit,
            period_timezone=self.tracking_period_timezone,
        )
        config.validate()
        return config


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()
