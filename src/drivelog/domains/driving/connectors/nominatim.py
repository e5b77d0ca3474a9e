"""Reverse geocoding against OpenStreetMap Nominatim.

Public Nominatim allows at most one request per second and requires a
descriptive User-Agent. Requests run in a worker thread so the event loop
is never blocked, and are spaced by ``min_interval_seconds``.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from typing import Any

from drivelog.domains.driving.connectors import GeocodingFailed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NominatimConfig:
    """Configuration for the Nominatim reverse API."""

    base_url: str = "https://nominatim.openstreetmap.org/reverse"
    user_agent: str = "drivelog/0.1 (trip journal)"
    accept_language: str = "en"
    zoom: int = 18
    timeout_seconds: float = 10.0
    min_interval_seconds: float = 1.0


def nominatim_reverse_raw(latitude: float, longitude: float, cfg: NominatimConfig) -> dict[str, Any]:
    """Call the reverse API and return the parsed JSON body.

    Raises:
        GeocodingFailed: On transport errors or an unparseable response.
    """
    params = {
        "format": "jsonv2",
        "lat": f"{latitude:.7f}",
        "lon": f"{longitude:.7f}",
        "zoom": str(cfg.zoom),
        "accept-language": cfg.accept_language,
    }
    url = f"{cfg.base_url}?{urllib.parse.urlencode(params)}"
    req = urllib.request.Request(
        url,
        headers={"User-Agent": cfg.user_agent, "Accept": "application/json"},
        method="GET",
    )
    try:
        with urllib.request.urlopen(req, timeout=cfg.timeout_seconds) as resp:  # noqa: S310
            body = resp.read().decode("utf-8", errors="replace")
        raw = json.loads(body)
    except (urllib.error.URLError, TimeoutError, OSError) as exc:
        raise GeocodingFailed(f"Nominatim request failed: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise GeocodingFailed(f"Nominatim returned invalid JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise GeocodingFailed("Nominatim returned an unexpected payload")
    return raw


class NominatimGeocoder:
    """GeocodingProvider backed by Nominatim."""

    def __init__(self, config: NominatimConfig | None = None) -> None:
        self._cfg = config or NominatimConfig()
        self._last_request_at = 0.0
        self._throttle = asyncio.Lock()

    @property
    def provider_name(self) -> str:
        return "nominatim"

    async def reverse_geocode(self, latitude: float, longitude: float) -> str:
        async with self._throttle:
            await self._sleep_if_needed()
            raw = await asyncio.to_thread(nominatim_reverse_raw, latitude, longitude, self._cfg)

        if "error" in raw:
            raise GeocodingFailed(f"Nominatim: {raw['error']}")
        place = str(raw.get("display_name") or "").strip()
        if not place:
            raise GeocodingFailed("Nominatim returned no display_name")
        return place

    async def _sleep_if_needed(self) -> None:
        wait = self._cfg.min_interval_seconds - (time.monotonic() - self._last_request_at)
        if wait > 0:
            await asyncio.sleep(wait)
        self._last_request_at = time.monotonic()
