"""MCP tools that feed the trip engine and control tracking.

The host app forwards its platform location and motion callbacks to
``record_location_sample`` / ``record_motion_sample``. Per-sample calls are
not audited; the trip-level events they cause are.
"""

from __future__ import annotations

import json
import logging
import time
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

if TYPE_CHECKING:
    from drivelog.core.audit.logger import AuditLogger
    from drivelog.domains.driving.domain_logic.trip_engine import TripEngine

logger = logging.getLogger(__name__)


def register_sensor_tools(
    mcp: FastMCP,
    engine: TripEngine,
    audit_logger: AuditLogger | None = None,
) -> None:
    """Register sensor input and tracking control tools on the MCP server."""

    @mcp.tool
    async def record_location_sample(
        ctx: Context,
        timestamp: str,
        latitude: float,
        longitude: float,
        speed: float,
    ) -> str:
        """Record one GPS reading from the device's location service.

        Args:
            timestamp: ISO 8601 time of the reading (e.g. '2024-05-01T08:00:05Z').
            latitude: Latitude in degrees.
            longitude: Longitude in degrees.
            speed: Speed in meters per second; a negative value means unknown.
        """
        result = await engine.on_location_sample(timestamp, latitude, longitude, speed)
        return json.dumps({
            "status": "accepted" if result["accepted"] else "rejected",
            **result,
        })

    @mcp.tool
    async def record_motion_sample(
        ctx: Context,
        timestamp: str,
        acceleration: list[float],
        rotation_rate: list[float] | None = None,
        attitude: list[float] | None = None,
    ) -> str:
        """Record one motion reading (user acceleration in g, gravity removed).

        Args:
            timestamp: ISO 8601 time of the reading.
            acceleration: [x, y, z] user acceleration in g.
            rotation_rate: [x, y, z] rotation rate in rad/s.
            attitude: [pitch, yaw, roll] in radians.
        """
        activity = await engine.on_motion_sample(
            timestamp,
            acceleration,
            rotation_rate or (0.0, 0.0, 0.0),
            attitude or (0.0, 0.0, 0.0),
        )
        return json.dumps({"status": "ok", "activity": activity.value})

    @mcp.tool
    async def location_permission_revoked(ctx: Context) -> str:
        """Report that location access was revoked.

        Any trip in progress is ended immediately with the samples received so far.
        """
        start_time = time.monotonic()
        trip_id = engine.status()["trip_id"]
        await engine.on_permission_revoked()
        await engine.flush()
        elapsed_ms = (time.monotonic() - start_time) * 1000

        if audit_logger is not None:
            audit_logger.log_tool_call(
                tool_name="location_permission_revoked",
                trip_id=trip_id,
                duration_ms=elapsed_ms,
            )
        return json.dumps({
            "status": "ok",
            "ended_trip_id": trip_id,
            "state": engine.state.value,
        })

    @mcp.tool
    async def tracking_status(
        ctx: Context,
        events: int = 10,
    ) -> str:
        """Show the trip engine's current state and its most recent events.

        Args:
            events: Number of recent events to include (default: 10).
        """
        return json.dumps({
            "status": "ok",
            "engine": engine.status(),
            "config": engine.config.as_dict(),
            "recent_events": [e.as_dict() for e in engine.recent_events(events)],
        }, default=str)

    @mcp.tool
    async def update_tracking_settings(
        ctx: Context,
        speed_threshold: float | None = None,
        trip_separator_seconds: float | None = None,
        sample_rate_seconds: float | None = None,
        trip_entries_min: int | None = None,
        journal_limit: int | None = None,
        trip_history_limit: int | None = None,
    ) -> str:
        """Change trip detection settings. Applies to subsequent samples only.

        Invalid values are rejected and the current settings stay in force.

        Args:
            speed_threshold: Minimum trip speed in m/s (default 2.2352, i.e. 5 mph).
            trip_separator_seconds: Slow period that ends a trip (default 210).
            sample_rate_seconds: Minimum spacing of journaled samples (default 5).
            trip_entries_min: Samples a trip needs to be kept (default 12).
            journal_limit: Journal rows kept before consumed rows are pruned (default 1000).
            trip_history_limit: Trips kept in the live list (default 20).
        """
        changes = {
            name: value
            for name, value in {
                "speed_threshold": speed_threshold,
                "trip_separator_seconds": trip_separator_seconds,
                "sample_rate_seconds": sample_rate_seconds,
                "trip_entries_min": trip_entries_min,
                "journal_limit": journal_limit,
                "trip_history_limit": trip_history_limit,
            }.items()
            if value is not None
        }
        if not changes:
            return json.dumps({
                "status": "unchanged",
                "config": engine.config.as_dict(),
            })

        applied = await engine.update_config(**changes)
        if audit_logger is not None:
            audit_logger.log_tool_call(
                tool_name="update_tracking_settings",
                tool_input=changes,
                status="success" if applied else "failure",
                error_type=None if applied else "ConfigurationInvalid",
            )

        if not applied:
            rejected = engine.recent_events(1)
            return json.dumps({
                "status": "rejected",
                "message": rejected[0].detail.get("error") if rejected else "Invalid settings",
                "config": engine.config.as_dict(),
            })
        return json.dumps({"status": "updated", "config": engine.config.as_dict()})
