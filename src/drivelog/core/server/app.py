"""drivelog MCP Server — application factory.

This module provides:
- create_app() for testability (integration tests create fresh server instances)
- Module-level `mcp` variable for FastMCP discovery (fastmcp.json points here)
"""

from __future__ import annotations

import logging

from fastmcp import FastMCP

from drivelog.core.audit.logger import AuditLogger
from drivelog.core.config.settings import Settings, get_settings
from drivelog.core.storage.database import TripDatabase
from drivelog.core.storage.encryption import EncryptionError, FieldEncryptor
from drivelog.core.storage.repository import TripRepository
from drivelog.domains.driving.connectors import GeocodingProvider
from drivelog.domains.driving.domain_logic.tracking_models import (
    ConfigurationInvalid,
    TrackingConfig,
)
from drivelog.domains.driving.domain_logic.trip_engine import TripEngine
from drivelog.domains.driving.tools.audit_tools import register_audit_tools
from drivelog.domains.driving.tools.data_management_tools import (
    register_data_management_tools,
)
from drivelog.domains.driving.tools.sensor_tools import register_sensor_tools
from drivelog.domains.driving.tools.trip_tools import register_trip_tools

logger = logging.getLogger(__name__)

SERVER_NAME = "drivelog"
SERVER_VERSION = "0.1.0"


def _create_repository(settings: Settings) -> tuple[TripRepository, bool]:
    """Open the trip store. Returns the repository and whether it persists."""
    if settings.encryption_key:
        try:
            encryptor = FieldEncryptor(settings.encryption_key)
            trip_db = TripDatabase(settings.db_path)
            trip_db.initialize()
            logger.info(
                "Trip store initialized: %s (schema v%d)",
                settings.db_path,
                trip_db.get_schema_version(),
            )
            return TripRepository(trip_db, encryptor), True
        except EncryptionError as exc:
            logger.error("Failed to initialize storage: %s", exc)
    else:
        logger.info("No ENCRYPTION_KEY configured. Set ENCRYPTION_KEY to keep trips on disk.")

    logger.warning("Using an in-memory trip store — trips will not survive a restart")
    trip_db = TripDatabase(":memory:")
    trip_db.initialize()
    return TripRepository(trip_db, FieldEncryptor(FieldEncryptor.generate_key())), False


def _create_geocoder(settings: Settings) -> GeocodingProvider | None:
    if settings.geocoder == "nominatim":
        from drivelog.domains.driving.connectors.nominatim import (
            NominatimConfig,
            NominatimGeocoder,
        )

        logger.info("Reverse geocoding via %s", settings.nominatim_url)
        return NominatimGeocoder(NominatimConfig(
            base_url=settings.nominatim_url,
            user_agent=settings.nominatim_user_agent,
            min_interval_seconds=settings.nominatim_min_interval_seconds,
        ))
    if settings.geocoder == "mock":
        from drivelog.domains.driving.connectors.mock import MockGeocoder

        return MockGeocoder()
    return None


def _tracking_config(settings: Settings) -> TrackingConfig:
    try:
        return settings.tracking_config()
    except ConfigurationInvalid as exc:
        logger.error("Invalid tracking settings (%s); using defaults", exc)
        return TrackingConfig()


def create_app(
    *,
    repository_override: TripRepository | None = None,
    geocoder_override: GeocodingProvider | None = None,
    engine_override: TripEngine | None = None,
) -> FastMCP:
    """Create and configure the drivelog MCP server.

    This is the main application factory. It:
    1. Creates the FastMCP server instance
    2. Opens the encrypted trip store (in-memory without ENCRYPTION_KEY)
    3. Creates the audit logger on the same database
    4. Builds the trip engine with the configured geocoder
    5. Registers all tools
    """
    settings = get_settings()

    # --- Server instance ---
    server = FastMCP(
        "drivelog",
        instructions=(
            "Trip detection and journaling server. Feed location and motion "
            "samples from the device; trips are detected, journaled, scored, "
            "and rolled into monthly history."
        ),
    )

    # --- Storage ---
    if repository_override is not None:
        repository = repository_override
        persistent = repository.database.path != ":memory:"
    else:
        repository, persistent = _create_repository(settings)

    audit_logger = AuditLogger(repository.database)

    # --- Trip engine ---
    if engine_override is not None:
        engine = engine_override
    else:
        geocoder = geocoder_override or _create_geocoder(settings)
        engine = TripEngine(
            repository,
            config=_tracking_config(settings),
            audit=audit_logger,
            geocoder=geocoder,
            live_timer=settings.live_separation_timer,
        )

    # --- Register tools ---
    @server.tool
    def health_check() -> dict:
        """Check server health and return basic status information."""
        return {
            "status": "ok",
            "server": SERVER_NAME,
            "version": SERVER_VERSION,
            "storage_persistent": persistent,
            "trips_stored": repository.count_trip_summaries(),
            "tracking_state": engine.state.value,
        }

    register_sensor_tools(server, engine, audit_logger)
    register_trip_tools(server, repository, engine, audit_logger)
    register_data_management_tools(server, repository, engine, audit_logger)
    register_audit_tools(server, audit_logger)
    logger.info("Trip tools registered")

    return server


# Module-level instance for FastMCP discovery (fastmcp.json: "server": "...app.py:mcp").
# Lazy: only created when this module is loaded directly (not when tests import create_app).
def __getattr__(name: str):
    if name == "mcp":
        global mcp  # noqa: PLW0603
        mcp = create_app()
        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
