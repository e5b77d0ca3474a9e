"""Roll trip summaries into calendar-month history and cap the live trip list."""

from __future__ import annotations

import logging
from typing import Any

from drivelog.core.storage.models import HistorySummary, TripSummary
from drivelog.core.storage.repository import TripRepository
from drivelog.domains.driving.domain_logic.tracking_models import TrackingConfig
from drivelog.domains.driving.domain_logic.trip_summarizer import meters_to_miles, mps_to_mph

logger = logging.getLogger(__name__)


class HistoryAggregator:
    """Maintains one HistorySummary per period.

    Usage::

        aggregator = HistoryAggregator(repository, config)
        aggregator.absorb(summary)          # safe to repeat
        archived = aggregator.enforce_retention()
    """

    def __init__(self, repository: TripRepository, config: TrackingConfig | None = None) -> None:
        self._repo = repository
        self._config = config or TrackingConfig()

    def reconfigure(self, config: TrackingConfig) -> None:
        self._config = config

    def period_key(self, summary: TripSummary) -> str:
        """``YYYY-MM`` of the trip's origin in the configured timezone."""
        local = summary.origin_timestamp.astimezone(self._config.tzinfo)
        return local.strftime("%Y-%m")

    def absorb(self, summary: TripSummary) -> bool:
        """Add a summary to its period, exactly once.

        Returns:
            True if totals changed, False if the summary was already absorbed.

        Raises:
            PersistenceWriteFailed: If the transaction could not be applied.
        """
        key = self.period_key(summary)
        absorbed = self._repo.absorb_into_history(key, summary)
        if absorbed:
            logger.info("Absorbed trip %s into history period %s", summary.id, key)
        else:
            logger.debug("Trip %s already absorbed into %s", summary.id, key)
        return absorbed

    def enforce_retention(self) -> list[str]:
        """Archive the oldest live summaries beyond ``trip_history_limit``.

        Archived summaries stay reachable through their history period.

        Returns:
            Ids of the summaries archived by this call.
        """
        limit = self._config.trip_history_limit
        live = self._repo.count_trip_summaries(include_archived=False)
        excess = live - limit
        if excess <= 0:
            return []

        oldest = self._repo.query_trip_summaries(limit=excess, order="asc")
        archived = []
        for summary in oldest:
            # Absorb first so an archived trip is never missing from history.
            self.absorb(summary)
            if self._repo.mark_archived(summary.id):
                archived.append(summary.id)
        if archived:
            logger.info("Archived %d trip summaries (limit %d)", len(archived), limit)
        return archived

    def recompute(self, period_key: str) -> HistorySummary | None:
        """Rebuild a period from its remaining member trips."""
        return self._repo.recompute_history(period_key)

    def get_period(self, period_key: str) -> HistorySummary | None:
        return self._repo.get_history_summary(period_key)

    def list_periods(self, limit: int = 24) -> list[HistorySummary]:
        return self._repo.list_history_summaries(limit=limit)


def history_payload(history: HistorySummary) -> dict[str, Any]:
    """Tool-facing representation of a history period."""
    return {
        "period": history.period_key,
        "total_trips": history.total_trips,
        "total_distance_meters": round(history.total_distance, 1),
        "total_distance_miles": round(meters_to_miles(history.total_distance), 2),
        "total_duration_seconds": round(history.total_duration, 1),
        "highest_speed_mps": round(history.highest_speed, 2),
        "highest_speed_mph": round(mps_to_mph(history.highest_speed), 1),
        "average_scores": history.averages(),
        "trip_ids": history.trip_ids,
    }
