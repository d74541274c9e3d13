"""Shared fixtures for ephemeris computation tests."""

from __future__ import annotations

from datetime import UTC, date, datetime

import pytest
from lunary.schemas.chart import NatalChart, PlanetPlacement, TransitSnapshot

EPOCH = datetime(2000, 1, 1, 12, 0, tzinfo=UTC)


class LinearProvider:
    """Planets moving at constant speed from fixed longitudes at EPOCH."""

    def __init__(self, start: dict[str, float], speeds: dict[str, float]) -> None:
        self.start = start
        self.speeds = speeds
        self.calls = 0

    def longitude_at(self, body: str, when: datetime) -> float:
        self.calls += 1
        days = (when - EPOCH).total_seconds() / 86400.0
        return (self.start[body] + self.speeds[body] * days) % 360.0

    def position(self, target_date: date) -> TransitSnapshot:
        noon = datetime(target_date.year, target_date.month, target_date.day, 12, tzinfo=UTC)
        placements = [
            PlanetPlacement(
                body=body,
                longitude=self.longitude_at(body, noon),
                speed_deg_day=self.speeds[body],
            )
            for body in self.start
        ]
        return TransitSnapshot(date_context=target_date, placements=placements)


@pytest.fixture
def make_chart():
    """Build a NatalChart from ``{body: longitude}``."""

    def _make(
        longitudes: dict[str, float],
        houses: dict[str, int] | None = None,
        speeds: dict[str, float] | None = None,
        birth_instant: datetime | None = None,
    ) -> NatalChart:
        houses = houses or {}
        speeds = speeds or {}
        placements = [
            PlanetPlacement(
                body=body,
                longitude=longitude,
                house=houses.get(body),
                speed_deg_day=speeds.get(body, 0.0),
            )
            for body, longitude in longitudes.items()
        ]
        return NatalChart(placements=placements, birth_instant=birth_instant)

    return _make


@pytest.fixture
def make_transits():
    """Build a TransitSnapshot from ``{body: (longitude, speed)}``."""

    def _make(positions: dict[str, tuple[float, float]], on: date = date(2026, 2, 13)) -> TransitSnapshot:
        placements = [
            PlanetPlacement(body=body, longitude=longitude, speed_deg_day=speed)
            for body, (longitude, speed) in positions.items()
        ]
        return TransitSnapshot(date_context=on, placements=placements)

    return _make


@pytest.fixture
def solar_provider():
    """The Sun moving exactly 360 degrees per 365.25 days."""
    return LinearProvider({"sun": 280.0}, {"sun": 360.0 / 365.25})
