"""Trip summary computation from a finalized journal range.

Distance is the haversine sum over consecutive points. The three driving
scores start at 100 and lose 5 points per offending pair of consecutive
samples:

* acceleration — speed rose faster than 10 mph per second
* deceleration — speed fell faster than 20 mph per second
* smoothness   — speed changed by more than 10 m/s between samples;
  the standard deviation of acceleration rates is also subtracted

Trips with fewer than ``MIN_SCORED_ENTRIES`` points keep a perfect score.
"""

from __future__ import annotations

import logging
import math
import statistics
import uuid
from collections.abc import Sequence
from typing import Any

from drivelog.core.storage.models import JournalEntry, TripSummary
from drivelog.domains.driving.connectors import GeocodingFailed, GeocodingProvider
from drivelog.domains.driving.domain_logic.tracking_models import MPH_10

logger = logging.getLogger(__name__)

EARTH_RADIUS_METERS = 6_371_000.0
MIN_SCORED_ENTRIES = 6
SCORE_PENALTY = 5.0
ACCEL_LIMIT = MPH_10                # m/s gained per second
DECEL_LIMIT = -8.94                 # m/s lost per second (20 mph/s)
SPEED_JUMP_LIMIT = 10.0             # m/s between consecutive samples
SPREAD_WEIGHT = 10.0                # smoothness points per (m/s²) of rate stdev

METERS_PER_MILE = 1609.344
MPS_TO_MPH = 2.2369362920544


# ---------------------------------------------------------------------------
# Geometry and units
# ---------------------------------------------------------------------------

def haversine_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in meters between two coordinates."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_METERS * c


def mps_to_mph(speed: float) -> float:
    return speed * MPS_TO_MPH


def meters_to_miles(distance: float) -> float:
    return distance / METERS_PER_MILE


def score_band(score: float) -> str:
    """Display band for a 0-100 driving score."""
    if score >= 90:
        return "excellent"
    if score >= 80:
        return "good"
    if score >= 70:
        return "fair"
    return "poor"


# ---------------------------------------------------------------------------
# Scores
# ---------------------------------------------------------------------------

def _pairs(entries: Sequence[JournalEntry]) -> list[tuple[float, float, float]]:
    """(previous speed, next speed, seconds between) for each consecutive pair."""
    pairs = []
    for prev, cur in zip(entries, entries[1:]):
        dt = (cur.timestamp - prev.timestamp).total_seconds()
        if dt <= 0:
            continue
        pairs.append((prev.speed, cur.speed, dt))
    return pairs


def _clamp(score: float) -> float:
    return round(min(100.0, max(0.0, score)), 2)


def score_acceleration(entries: Sequence[JournalEntry]) -> float:
    if len(entries) < MIN_SCORED_ENTRIES:
        return 100.0
    score = 100.0
    for s1, s2, dt in _pairs(entries):
        if s2 > s1 + ACCEL_LIMIT * dt:
            score -= SCORE_PENALTY
    return _clamp(score)


def score_deceleration(entries: Sequence[JournalEntry]) -> float:
    if len(entries) < MIN_SCORED_ENTRIES:
        return 100.0
    score = 100.0
    for s1, s2, dt in _pairs(entries):
        if s2 < s1 + DECEL_LIMIT * dt:
            score -= SCORE_PENALTY
    return _clamp(score)


def score_smoothness(entries: Sequence[JournalEntry]) -> float:
    if len(entries) < MIN_SCORED_ENTRIES:
        return 100.0
    pairs = _pairs(entries)
    score = 100.0
    for s1, s2, _ in pairs:
        if abs(s2 - s1) > SPEED_JUMP_LIMIT:
            score -= SCORE_PENALTY
    rates = [(s2 - s1) / dt for s1, s2, dt in pairs]
    if len(rates) > 1:
        score -= SPREAD_WEIGHT * statistics.pstdev(rates)
    return _clamp(score)


# ---------------------------------------------------------------------------
# Summaries
# ---------------------------------------------------------------------------

def summarize(entries: Sequence[JournalEntry], *, trip_id: str | None = None) -> TripSummary:
    """Compute the summary of one finalized trip.

    Args:
        entries: Journal rows of the trip in ascending timestamp order.
        trip_id: Summary id to assign; a new UUID when omitted.

    Raises:
        ValueError: If ``entries`` is empty. Callers only summarize trips
            that reached the minimum length, so this is a defect.
    """
    if not entries:
        logger.error("summarize() called with an empty journal range")
        raise ValueError("Cannot summarize an empty journal range")

    ordered = sorted(entries, key=lambda e: e.timestamp)
    first, last = ordered[0], ordered[-1]

    distance = 0.0
    for prev, cur in zip(ordered, ordered[1:]):
        distance += haversine_meters(prev.latitude, prev.longitude, cur.latitude, cur.longitude)

    return TripSummary(
        id=trip_id or str(uuid.uuid4()),
        origin_timestamp=first.timestamp,
        origin_latitude=first.latitude,
        origin_longitude=first.longitude,
        destination_timestamp=last.timestamp,
        destination_latitude=last.latitude,
        destination_longitude=last.longitude,
        max_speed=max(e.speed for e in ordered),
        duration_seconds=(last.timestamp - first.timestamp).total_seconds(),
        distance_meters=distance,
        score_acceleration=score_acceleration(ordered),
        score_deceleration=score_deceleration(ordered),
        score_smoothness=score_smoothness(ordered),
        sample_count=len(ordered),
    )


async def resolve_addresses(
    summary: TripSummary,
    geocoder: GeocodingProvider,
) -> tuple[str, str]:
    """Second pass: reverse geocode both endpoints.

    A failed lookup yields an empty string for that endpoint.
    """
    addresses = []
    for lat, lon in (
        (summary.origin_latitude, summary.origin_longitude),
        (summary.destination_latitude, summary.destination_longitude),
    ):
        try:
            addresses.append(await geocoder.reverse_geocode(lat, lon))
        except GeocodingFailed as exc:
            logger.warning("Reverse geocoding failed for trip %s: %s", summary.id, exc)
            addresses.append("")
    return addresses[0], addresses[1]


def summary_payload(summary: TripSummary) -> dict[str, Any]:
    """Tool-facing representation of a trip summary."""
    scores = summary.scores()
    return {
        "id": summary.id,
        "origin": {
            "timestamp": summary.origin_timestamp.isoformat(),
            "latitude": summary.origin_latitude,
            "longitude": summary.origin_longitude,
            "address": summary.origin_address,
        },
        "destination": {
            "timestamp": summary.destination_timestamp.isoformat(),
            "latitude": summary.destination_latitude,
            "longitude": summary.destination_longitude,
            "address": summary.destination_address,
        },
        "duration_seconds": round(summary.duration_seconds, 1),
        "distance_meters": round(summary.distance_meters, 1),
        "distance_miles": round(meters_to_miles(summary.distance_meters), 2),
        "max_speed_mps": round(summary.max_speed, 2),
        "max_speed_mph": round(mps_to_mph(summary.max_speed), 1),
        "scores": scores,
        "score_bands": {name: score_band(value) for name, value in scores.items()},
        "sample_count": summary.sample_count,
        "archived": summary.archived,
    }
