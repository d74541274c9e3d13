"""Shared service test configuration."""

import threading
import time
import uuid
from datetime import UTC, date, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from lunary.config import reset_settings_cache
from lunary.errors import AstronomyProviderError
from lunary.schemas.chart import PlanetPlacement, TransitSnapshot

NOW = datetime(2026, 2, 13, 5, 1, 12, tzinfo=UTC)
USER_ID = "5f0c3a52-3f58-4a8b-9c61-0d2b6f5f7e11"

# Noon UTC 2026-02-13 (Sun in Aquarius, waning Moon in Scorpio)
SKY = {
    "sun": (324.73, 1.01),
    "moon": (228.41, 13.2),
    "mercury": (331.2, 1.6),
    "venus": (330.5, 1.24),
    "mars": (318.9, 0.78),
    "jupiter": (105.6, -0.08),
    "saturn": (357.4, 0.09),
}


class CountingProvider:
    """Fixed sky with call counting, optional delay and scripted failures."""

    def __init__(self, delay: float = 0.0, failures: int = 0) -> None:
        self.delay = delay
        self.failures = failures
        self.calls = 0
        self._lock = threading.Lock()

    def longitude_at(self, body: str, when: datetime) -> float:
        longitude, speed = SKY[body]
        days = (when - datetime(2026, 2, 13, 12, tzinfo=UTC)).total_seconds() / 86400.0
        return (longitude + speed * days) % 360.0

    def position(self, target_date: date) -> TransitSnapshot:
        with self._lock:
            self.calls += 1
            fail = self.failures > 0
            if fail:
                self.failures -= 1
        if self.delay:
            time.sleep(self.delay)
        if fail:
            raise AstronomyProviderError("ephemeris backend unavailable")
        return TransitSnapshot(
            date_context=target_date,
            placements=[
                PlanetPlacement(body=body, longitude=longitude, speed_deg_day=speed)
                for body, (longitude, speed) in SKY.items()
            ],
        )


@pytest.fixture(autouse=True)
def _fresh_settings():
    reset_settings_cache()
    yield
    reset_settings_cache()


@pytest.fixture
def provider():
    return CountingProvider()


@pytest.fixture
def make_provider():
    return CountingProvider


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def mock_session():
    """AsyncSession double whose execute() yields the given rows."""

    def _make(rows=None):
        mock_result = MagicMock()
        mock_result.scalars.return_value.all.return_value = list(rows or [])
        mock_result.scalars.return_value.first.return_value = rows[0] if rows else None
        session = AsyncMock()
        session.execute.return_value = mock_result
        return session

    return _make


@pytest.fixture
def stored_chart():
    """Natal chart payload as the profile service stores it."""
    return {
        "positions": [
            {"body": "sun", "sign": "Taurus", "degree": 5.0, "longitude": 35.0, "speed_deg_day": 0.97, "retrograde": False, "house": None},
            {"body": "moon", "sign": "Leo", "degree": 0.0, "longitude": 120.0, "speed_deg_day": 12.8, "retrograde": False, "house": None},
            {"body": "mercury", "sign": "Taurus", "degree": 10.0, "longitude": 40.0, "speed_deg_day": 1.2, "retrograde": False, "house": None},
            {"body": "venus", "sign": "Taurus", "degree": 20.0, "longitude": 50.0, "speed_deg_day": 1.1, "retrograde": False, "house": None},
            {"body": "mars", "sign": "Sagittarius", "degree": 0.0, "longitude": 240.0, "speed_deg_day": 0.6, "retrograde": False, "house": None},
            {"body": "saturn", "sign": "Pisces", "degree": 27.0, "longitude": 357.0, "speed_deg_day": -0.02, "retrograde": True, "house": None},
            {"body": "lilith", "sign": "Aries", "degree": 3.0, "longitude": 3.0, "speed_deg_day": 0.1, "retrograde": False, "house": None},
            {"body": "part_of_fortune", "sign": "Leo", "degree": 1.0, "longitude": 121.0, "speed_deg_day": 0.0, "retrograde": False, "house": None},
        ],
        "house_cusps": [i * 30.0 for i in range(12)],
        "house_system": "equal",
    }


@pytest.fixture
def make_profile(stored_chart):
    def _make(**overrides):
        profile = MagicMock()
        profile.user_id = uuid.UUID(USER_ID)
        profile.birth_date = date(1990, 5, 15)
        profile.birth_time = None
        profile.birth_time_known = False
        profile.birth_timezone = "UTC"
        profile.natal_chart_json = stored_chart
        for key, value in overrides.items():
            setattr(profile, key, value)
        return profile

    return _make


@pytest.fixture
def user_id():
    return USER_ID
