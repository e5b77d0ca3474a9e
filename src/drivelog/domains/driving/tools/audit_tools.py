"""MCP tools for viewing the audit trail.

The audit log holds no coordinates or addresses: tool inputs are hashed
and engine events carry only trip ids and counts.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

if TYPE_CHECKING:
    from drivelog.core.audit.logger import AuditLogger

logger = logging.getLogger(__name__)


def register_audit_tools(
    mcp: FastMCP,
    audit_logger: AuditLogger,
) -> None:
    """Register audit trail tools on the MCP server."""

    @mcp.tool
    async def audit_summary(
        ctx: Context,
        days: int = 30,
    ) -> str:
        """View recent trip engine events, tool usage, and deletions.

        Args:
            days: Number of days to look back (default: 30).
        """
        since = (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()

        total_events = audit_logger.count_events(since=since)
        failures = audit_logger.count_events(action="persistence_failure", since=since)
        recent_events = audit_logger.get_events(since=since, limit=20)

        display_events = []
        for event in recent_events:
            display_events.append({
                "timestamp": event.get("timestamp"),
                "action": event.get("action"),
                "tool_name": event.get("tool_name"),
                "trip_id": event.get("trip_id"),
                "status": event.get("status"),
                "duration_ms": event.get("duration_ms"),
            })

        return json.dumps({
            "status": "ok",
            "period_days": days,
            "total_events": total_events,
            "persistence_failures": failures,
            "recent_events": display_events,
            "note": "This audit trail contains no coordinates or addresses.",
        }, indent=2)
