"""Planetary return tracking: solar, Jupiter and Saturn returns."""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from datetime import UTC, date, datetime, time, timedelta
from typing import TYPE_CHECKING

from lunary.schemas.chart import NatalChart
from lunary.schemas.ephemeris import PlanetaryReturn
from lunary.services.astro_settings import AstroSettings, default_astro_settings

if TYPE_CHECKING:
    from ephemeris.calculator import AstronomyProvider

logger = logging.getLogger(__name__)

# Planet -> return type
TRACKED_RETURNS: dict[str, str] = {
    "sun": "solar",
    "jupiter": "jupiter",
    "saturn": "saturn",
}

RETURN_LABELS: dict[str, str] = {
    "solar": "Solar Return",
    "jupiter": "Jupiter Return",
    "saturn": "Saturn Return",
}

# Mean sidereal periods in days
RETURN_PERIODS_DAYS: dict[str, float] = {
    "sun": 365.25,
    "jupiter": 11.86 * 365.25,
    "saturn": 29.46 * 365.25,
}

# (half-width, step) in days of the longitude scan around each estimate.
# Wide enough for the retrograde loop of the slow planets.
SCAN_WINDOWS: dict[str, tuple[float, float]] = {
    "sun": (5.0, 1.0),
    "jupiter": (150.0, 4.0),
    "saturn": (240.0, 4.0),
}

_BISECT_RESOLUTION = timedelta(minutes=1)


def _as_utc(value: datetime | date) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    return datetime.combine(value, time(12, 0), tzinfo=UTC)


def compute_returns(
    chart: NatalChart,
    birth_instant: datetime | None,
    as_of: datetime | date,
    provider: AstronomyProvider | None = None,
    settings: AstroSettings | None = None,
) -> list[PlanetaryReturn]:
    """Report the nearest return of each tracked planet relative to ``as_of``.

    Closed-form period estimates seed the search. With a provider, the
    provider's longitudes around each estimate are scanned for crossings of
    the natal longitude, so every pass of a retrograde loop is a candidate.

    Args:
        chart: Natal chart holding the natal longitudes.
        birth_instant: Exact birth moment; returns cannot be timed without it.
        as_of: Reference moment. A bare date means noon UTC.
        provider: Optional astronomy provider used to refine the estimates.
        settings: Calibration table, defaults to the built-in one.

    Returns:
        One entry per tracked planet present in the chart, in tracking order.
    """
    settings = settings or default_astro_settings()
    if birth_instant is None:
        logger.info("No birth instant on chart, skipping planetary returns")
        return []

    birth = _as_utc(birth_instant)
    now = _as_utc(as_of)
    refine = provider if settings.returns.refine_with_ephemeris else None

    results = []
    for planet, return_type in TRACKED_RETURNS.items():
        natal = chart.placement(planet)
        if natal is None:
            continue
        if now < birth:
            logger.debug("Reference %s precedes birth, no %s return", now.isoformat(), planet)
            continue

        moment, number = _nearest_return(planet, natal.longitude, birth, now, refine)
        proximity = (moment.date() - now.date()).days
        window = settings.returns.activity_windows[return_type]

        if abs(proximity) <= settings.returns.exact_days:
            phase = "exact"
        elif proximity > 0:
            phase = "approaching"
        else:
            phase = "waning"

        results.append(
            PlanetaryReturn(
                planet=planet,
                return_type=return_type,
                label=RETURN_LABELS[return_type],
                return_number=number,
                return_date=moment.date(),
                proximity_days=proximity,
                phase=phase,
                is_active=abs(proximity) <= window,
            )
        )

    return results


def _nearest_return(
    planet: str,
    natal_longitude: float,
    birth: datetime,
    now: datetime,
    provider: AstronomyProvider | None,
) -> tuple[datetime, int]:
    period = RETURN_PERIODS_DAYS[planet]
    elapsed = (now - birth).total_seconds() / 86400.0
    previous = math.floor(elapsed / period)

    candidates: list[tuple[datetime, int]] = []
    for number in (previous, previous + 1):
        if number < 1:
            continue
        estimate = birth + timedelta(days=number * period)
        crossings = []
        if provider is not None:
            crossings = _scan_crossings(provider, planet, natal_longitude, estimate)
            if not crossings:
                logger.debug("No %s crossing found near %s, using estimate", planet, estimate.date())
        candidates.extend((moment, number) for moment in crossings or [estimate])

    return min(candidates, key=lambda c: (abs((c[0] - now).total_seconds()), c[0]))


def _scan_crossings(
    provider: AstronomyProvider,
    planet: str,
    natal_longitude: float,
    estimate: datetime,
) -> list[datetime]:
    """Find every moment near ``estimate`` where the planet crosses its natal longitude."""
    half_width, step = SCAN_WINDOWS[planet]

    def offset(when: datetime) -> float:
        # Signed difference in (-180, 180]; zero at the return
        return ((provider.longitude_at(planet, when) - natal_longitude + 180.0) % 360.0) - 180.0

    start = estimate - timedelta(days=half_width)
    steps = int(round(2 * half_width / step))

    crossings = []
    prev_when, prev_offset = start, offset(start)
    if prev_offset == 0.0:
        crossings.append(start)
    for i in range(1, steps + 1):
        when = start + timedelta(days=i * step)
        current = offset(when)
        if current == 0.0:
            crossings.append(when)
        elif prev_offset * current < 0 and abs(prev_offset) < 90.0 and abs(current) < 90.0:
            crossings.append(_bisect(offset, prev_when, prev_offset, when))
        prev_when, prev_offset = when, current

    return crossings


def _bisect(
    offset: Callable[[datetime], float],
    low: datetime,
    low_offset: float,
    high: datetime,
) -> datetime:
    while high - low > _BISECT_RESOLUTION:
        mid = low + (high - low) / 2
        mid_offset = offset(mid)
        if mid_offset == 0.0:
            return mid
        if (mid_offset < 0) == (low_offset < 0):
            low, low_offset = mid, mid_offset
        else:
            high = mid
    return low + (high - low) / 2
