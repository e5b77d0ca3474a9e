"""Deterministic geocoder for development and tests."""

from __future__ import annotations

from drivelog.domains.driving.connectors import GeocodingFailed


class MockGeocoder:
    """Returns a synthetic address derived from the rounded coordinate.

    ``fail=True`` makes every lookup raise GeocodingFailed.
    """

    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[tuple[float, float]] = []

    @property
    def provider_name(self) -> str:
        return "mock"

    async def reverse_geocode(self, latitude: float, longitude: float) -> str:
        self.calls.append((latitude, longitude))
        if self.fail:
            raise GeocodingFailed("Mock geocoder configured to fail")
        return f"Mock Address {latitude:.4f}, {longitude:.4f}"
