"""MCP tools for browsing trips and history, and for trip file export/import."""

from __future__ import annotations

import json
import logging
import time
from datetime import timedelta
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from drivelog.core.storage.repository import PersistenceReadFailed
from drivelog.domains.driving.connectors.trip_files import (
    TripFileError,
    export_trip_items,
    load_trip_items,
)
from drivelog.domains.driving.domain_logic.history_aggregator import history_payload
from drivelog.domains.driving.domain_logic.trip_summarizer import summary_payload

if TYPE_CHECKING:
    from drivelog.core.audit.logger import AuditLogger
    from drivelog.core.storage.repository import TripRepository
    from drivelog.domains.driving.domain_logic.trip_engine import TripEngine

logger = logging.getLogger(__name__)


def register_trip_tools(
    mcp: FastMCP,
    repository: TripRepository,
    engine: TripEngine,
    audit_logger: AuditLogger | None = None,
) -> None:
    """Register trip browsing and export/import tools on the MCP server."""

    @mcp.tool
    async def list_trips(
        ctx: Context,
        limit: int = 20,
        include_archived: bool = False,
    ) -> str:
        """List recorded trips, newest first.

        Args:
            limit: Maximum trips to return (default: 20).
            include_archived: Also list trips retired into monthly history.
        """
        try:
            trips = repository.query_trip_summaries(
                limit=limit, order="desc", include_archived=include_archived
            )
        except PersistenceReadFailed as exc:
            return json.dumps({"status": "error", "message": str(exc)})

        return json.dumps({
            "status": "ok",
            "count": len(trips),
            "trips": [summary_payload(t) for t in trips],
        })

    @mcp.tool
    async def get_trip(
        ctx: Context,
        trip_id: str,
        include_points: bool = False,
    ) -> str:
        """Show one trip's summary, optionally with its route points.

        Args:
            trip_id: The trip id from list_trips.
            include_points: Include every recorded GPS point of the trip.
        """
        summary = repository.get_trip_summary(trip_id)
        if summary is None:
            return json.dumps({
                "status": "not_found",
                "trip_id": trip_id,
                "message": "No trip found with that ID.",
            })

        payload = {"status": "ok", "trip": summary_payload(summary)}
        payload["trip"]["history_period"] = repository.get_history_period(trip_id)
        if include_points:
            payload["points"] = export_trip_items(repository.get_trip_points(trip_id))
        return json.dumps(payload)

    @mcp.tool
    async def trip_history(
        ctx: Context,
        period: str = "",
        limit: int = 12,
    ) -> str:
        """Show monthly driving totals and average scores.

        Args:
            period: A month as 'YYYY-MM'; omit to list recent months.
            limit: Number of months to list when no period is given (default: 12).
        """
        if period:
            history = engine.aggregator.get_period(period)
            if history is None:
                return json.dumps({
                    "status": "not_found",
                    "period": period,
                    "message": "No trips recorded in that period.",
                })
            return json.dumps({"status": "ok", "history": history_payload(history)})

        periods = engine.aggregator.list_periods(limit=limit)
        return json.dumps({
            "status": "ok",
            "count": len(periods),
            "periods": [history_payload(h) for h in periods],
        })

    @mcp.tool
    async def export_trip_gps(
        ctx: Context,
        trip_id: str,
    ) -> str:
        """Export a trip's GPS points as trip-item JSON, suitable for re-import.

        Args:
            trip_id: The trip id from list_trips.
        """
        start_time = time.monotonic()
        points = repository.get_trip_points(trip_id)
        if not points:
            return json.dumps({
                "status": "not_found",
                "trip_id": trip_id,
                "message": "No route points stored for that trip.",
            })
        items = export_trip_items(points)
        elapsed_ms = (time.monotonic() - start_time) * 1000

        if audit_logger is not None:
            audit_logger.log_tool_call(
                tool_name="export_trip_gps",
                tool_input={"trip_id": trip_id},
                trip_id=trip_id,
                duration_ms=elapsed_ms,
                metadata={"items": len(items)},
            )
        return json.dumps({"status": "ok", "trip_id": trip_id, "items": items})

    @mcp.tool
    async def import_trip_samples(
        ctx: Context,
        items_json: str,
    ) -> str:
        """Replay recorded trip items through the trip engine.

        The items are fed as location samples in timestamp order, then engine
        time is advanced past the trip separator so the replayed trip closes.

        Args:
            items_json: A JSON array of trip items as produced by export_trip_gps.
        """
        start_time = time.monotonic()
        try:
            samples = load_trip_items(items_json)
        except TripFileError as exc:
            return json.dumps({"status": "error", "message": str(exc)})
        if not samples:
            return json.dumps({"status": "error", "message": "No trip items supplied."})

        before = engine.status()["stats"]
        accepted = 0
        rejected = 0
        for sample in samples:
            result = await engine.on_location_sample(
                sample.timestamp, sample.latitude, sample.longitude, sample.speed
            )
            if result["accepted"]:
                accepted += 1
            else:
                rejected += 1

        close_at = samples[-1].timestamp + timedelta(
            seconds=engine.config.trip_separator_seconds
        )
        await engine.advance_clock(close_at)
        await engine.flush()
        after = engine.status()["stats"]
        elapsed_ms = (time.monotonic() - start_time) * 1000

        trips_created = after["trips_finalized"] - before["trips_finalized"]
        trips_discarded = after["trips_discarded"] - before["trips_discarded"]
        if audit_logger is not None:
            audit_logger.log_tool_call(
                tool_name="import_trip_samples",
                tool_input={"items": len(samples)},
                duration_ms=elapsed_ms,
                metadata={"accepted": accepted, "trips_created": trips_created},
            )
        logger.info("Imported %d trip items (%d rejected)", accepted, rejected)
        return json.dumps({
            "status": "imported",
            "samples_accepted": accepted,
            "samples_rejected": rejected,
            "trips_created": trips_created,
            "trips_discarded": trips_discarded,
            "duration_ms": round(elapsed_ms, 1),
        })

    @mcp.tool
    async def export_gps_journal(
        ctx: Context,
        unprocessed_only: bool = False,
    ) -> str:
        """Export the whole GPS journal as trip-item JSON, oldest first.

        Args:
            unprocessed_only: Only rows not yet consumed by a trip summary.
        """
        start_time = time.monotonic()
        try:
            rows = repository.query_journal_range(unprocessed_only=unprocessed_only)
        except PersistenceReadFailed as exc:
            return json.dumps({"status": "error", "message": str(exc)})
        items = export_trip_items(rows)
        elapsed_ms = (time.monotonic() - start_time) * 1000

        if audit_logger is not None:
            audit_logger.log_tool_call(
                tool_name="export_gps_journal",
                tool_input={"unprocessed_only": unprocessed_only},
                duration_ms=elapsed_ms,
                metadata={"items": len(items)},
            )
        return json.dumps({"status": "ok", "count": len(items), "items": items})

    @mcp.tool
    async def reprocess_trip(
        ctx: Context,
        trip_id: str,
    ) -> str:
        """Rebuild a trip's summary and scores from its journal rows.

        Uses the current tracking settings. Only possible while the trip's
        journal rows have not been pruned.

        Args:
            trip_id: The trip id from list_trips.
        """
        start_time = time.monotonic()
        try:
            existing = repository.get_trip_summary(trip_id)
            rows = repository.count_journal(trip_id=trip_id)
        except PersistenceReadFailed as exc:
            return json.dumps({"status": "error", "message": str(exc)})
        if existing is None:
            return json.dumps({
                "status": "not_found",
                "trip_id": trip_id,
                "message": "No trip found with that ID.",
            })
        if rows < existing.sample_count:
            return json.dumps({
                "status": "incomplete",
                "trip_id": trip_id,
                "message": (
                    f"Only {rows} of {existing.sample_count} journal rows remain; "
                    "the trip cannot be rebuilt."
                ),
            })

        summary = await engine.reprocess_trip(trip_id)
        await engine.flush()
        elapsed_ms = (time.monotonic() - start_time) * 1000

        if audit_logger is not None:
            audit_logger.log_tool_call(
                tool_name="reprocess_trip",
                tool_input={"trip_id": trip_id},
                trip_id=trip_id,
                duration_ms=elapsed_ms,
                status="success" if summary is not None else "failure",
            )
        if summary is None:
            if repository.get_trip_summary(trip_id) is not None:
                return json.dumps({
                    "status": "error",
                    "trip_id": trip_id,
                    "message": "The trip could not be reprocessed; see tracking_status events.",
                })
            return json.dumps({
                "status": "discarded",
                "trip_id": trip_id,
                "message": "The trip no longer qualifies under the current settings.",
            })
        return json.dumps({
            "status": "reprocessed",
            "trip": summary_payload(summary),
            "duration_ms": round(elapsed_ms, 1),
        })
