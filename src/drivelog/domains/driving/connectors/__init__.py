"""Trip data connectors — reverse geocoding of trip endpoints."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


class GeocodingFailed(Exception):
    """Raised when a coordinate could not be resolved to an address."""


@runtime_checkable
class GeocodingProvider(Protocol):
    """Abstract interface for reverse geocoding.

    The trip summarizer calls this after a summary is stored; a failure
    leaves the address blank and never affects the trip itself.
    """

    async def reverse_geocode(self, latitude: float, longitude: float) -> str:
        """Return a human-readable address for the coordinate.

        Raises:
            GeocodingFailed: If no address could be resolved.
        """
        ...

    @property
    def provider_name(self) -> str:
        """Label for the active provider: 'nominatim' or 'mock'."""
        ...
