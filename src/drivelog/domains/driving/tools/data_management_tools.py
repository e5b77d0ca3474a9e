"""MCP tools for trip data management (deletion, purge, retention).

These tools implement the user's right to delete their location history.
History periods touched by a deletion are recomputed from the remaining
trips. All deletions are audit-logged.
"""

from __future__ import annotations

import json
import logging
import time
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

if TYPE_CHECKING:
    from drivelog.core.audit.logger import AuditLogger
    from drivelog.core.storage.repository import TripRepository
    from drivelog.domains.driving.domain_logic.trip_engine import TripEngine

logger = logging.getLogger(__name__)


def register_data_management_tools(
    mcp: FastMCP,
    repository: TripRepository,
    engine: TripEngine,
    audit_logger: AuditLogger | None = None,
) -> None:
    """Register data management tools on the MCP server."""

    @mcp.tool
    async def delete_trip(
        ctx: Context,
        trip_id: str,
    ) -> str:
        """Delete a specific trip with its route points and journal rows.

        The trip's monthly history totals are recomputed without it.

        Args:
            trip_id: The id of the trip to delete.
        """
        start_time = time.monotonic()
        period = repository.get_history_period(trip_id)
        deleted = repository.delete_trip(trip_id)
        if deleted and period is not None:
            engine.aggregator.recompute(period)

        elapsed_ms = (time.monotonic() - start_time) * 1000

        if deleted:
            if audit_logger is not None:
                audit_logger.log_data_delete(
                    tool_name="delete_trip",
                    trip_id=trip_id,
                    count=1,
                )
            return json.dumps({
                "status": "deleted",
                "trip_id": trip_id,
                "history_period": period,
                "duration_ms": round(elapsed_ms, 1),
            })
        else:
            return json.dumps({
                "status": "not_found",
                "trip_id": trip_id,
                "message": "No trip found with that ID.",
            })

    @mcp.tool
    async def purge_old_trips(
        ctx: Context,
        older_than_days: int = 365,
    ) -> str:
        """Delete all trips that started more than a number of days ago.

        Args:
            older_than_days: Delete trips older than this many days (default: 365).
        """
        if older_than_days < 1:
            return json.dumps({
                "status": "error",
                "message": "older_than_days must be at least 1.",
            })

        start_time = time.monotonic()
        before = repository.count_trip_summaries()
        periods = repository.purge_trips_before_days(older_than_days)
        for period in periods:
            engine.aggregator.recompute(period)
        count = before - repository.count_trip_summaries()
        elapsed_ms = (time.monotonic() - start_time) * 1000

        if audit_logger is not None and count > 0:
            audit_logger.log_data_delete(
                tool_name="purge_old_trips",
                count=count,
                metadata={"older_than_days": older_than_days, "periods": len(periods)},
            )

        return json.dumps({
            "status": "purged",
            "trips_deleted": count,
            "periods_recomputed": periods,
            "older_than_days": older_than_days,
            "duration_ms": round(elapsed_ms, 1),
        })

    @mcp.tool
    async def delete_all_trip_data(
        ctx: Context,
        confirm: str = "",
    ) -> str:
        """Permanently delete ALL stored trip data.

        Removes every journal row, trip, route point, and monthly history
        record. It cannot be undone.

        Args:
            confirm: Must be exactly 'DELETE_ALL' to proceed. Safety gate.
        """
        if confirm != "DELETE_ALL":
            return json.dumps({
                "status": "cancelled",
                "message": (
                    "To delete all trip data, call this tool with "
                    "confirm='DELETE_ALL'. This action cannot be undone."
                ),
            })

        start_time = time.monotonic()
        await engine.on_permission_revoked()
        await engine.flush()
        count = repository.delete_all_data()
        elapsed_ms = (time.monotonic() - start_time) * 1000

        if audit_logger is not None:
            audit_logger.log_data_delete(
                tool_name="delete_all_trip_data",
                count=count,
                metadata={"confirmed": True},
            )

        return json.dumps({
            "status": "all_deleted",
            "trips_deleted": count,
            "duration_ms": round(elapsed_ms, 1),
            "message": "All trip data has been permanently deleted.",
        })
