"""Swiss Ephemeris access: daily transit positions and the cosmic day summary."""

from __future__ import annotations

import logging
from datetime import UTC, date, datetime
from typing import Protocol

import swisseph as swe
from lunary.config import get_settings
from lunary.errors import AstronomyProviderError
from lunary.schemas.chart import PlanetPlacement, TransitSnapshot
from lunary.schemas.ephemeris import CosmicSnapshot
from lunary.services.astro_settings import AstroSettings

from ephemeris.aspects import find_aspects
from ephemeris.bodies import ALL_BODIES, BODY_IDS, DERIVED_BODIES
from ephemeris.lunar import describe_moon

logger = logging.getLogger(__name__)


class AstronomyProvider(Protocol):
    """Source of planetary longitudes. Calls may block."""

    def longitude_at(self, body: str, when: datetime) -> float: ...

    def position(self, target_date: date) -> TransitSnapshot: ...


def _datetime_to_jd(dt: datetime) -> float:
    """Convert datetime to Julian Day number."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    utc = dt.astimezone(UTC)
    return swe.julday(utc.year, utc.month, utc.day, utc.hour + utc.minute / 60.0 + utc.second / 3600.0)


def _calculate_position(body_name: str, jd: float) -> tuple[float, float] | None:
    """Longitude and daily speed for one body at a Julian Day.

    Returns None when the body is unavailable with Swiss + Moshier.
    """
    if body_name in DERIVED_BODIES:
        source, offset = DERIVED_BODIES[body_name]
        base = _calculate_position(source, jd)
        if base is None:
            return None
        return (base[0] + offset) % 360.0, base[1]

    body_id = BODY_IDS[body_name]
    try:
        result, _ = swe.calc_ut(jd, body_id, swe.FLG_SWIEPH | swe.FLG_SPEED)
    except Exception:
        # Fallback to Moshier (no external files needed)
        try:
            result, _ = swe.calc_ut(jd, body_id, swe.FLG_MOSEPH | swe.FLG_SPEED)
        except Exception as exc:
            logger.warning("swisseph failed for %s: %s", body_name, exc)
            return None
    return result[0] % 360.0, result[3]


class SwissEphemerisProvider:
    """Tropical geocentric positions from pyswisseph."""

    def __init__(self, ephe_path: str | None = None) -> None:
        if ephe_path is None:
            ephe_path = get_settings().swisseph_ephe_path
        ephe_path = ephe_path.strip()
        swe.set_ephe_path(ephe_path if ephe_path else None)

    def longitude_at(self, body: str, when: datetime) -> float:
        position = _calculate_position(body, _datetime_to_jd(when))
        if position is None:
            raise AstronomyProviderError(f"{body} position unavailable at {when.isoformat()}")
        return position[0]

    def position(self, target_date: date) -> TransitSnapshot:
        """Positions of every body at noon UTC on ``target_date``."""
        dt = datetime(target_date.year, target_date.month, target_date.day, 12, 0, 0, tzinfo=UTC)
        jd = _datetime_to_jd(dt)

        placements = []
        for body_name in ALL_BODIES:
            position = _calculate_position(body_name, jd)
            if position is None:
                continue
            longitude, speed = position
            placements.append(
                PlanetPlacement(
                    body=body_name,
                    longitude=round(longitude, 4),
                    speed_deg_day=round(speed, 4),
                )
            )

        found = {p.body for p in placements}
        if "sun" not in found or "moon" not in found:
            raise AstronomyProviderError(
                f"Sun and Moon positions are required for {target_date.isoformat()}"
            )
        return TransitSnapshot(date_context=target_date, placements=placements)


def summarize_day(
    transits: TransitSnapshot,
    computed_at: datetime,
    settings: AstroSettings | None = None,
) -> CosmicSnapshot:
    """Build the shared cosmic snapshot: moon phase plus sky-wide aspects."""
    sun = transits.placement("sun")
    moon = transits.placement("moon")
    if sun is None or moon is None:
        raise AstronomyProviderError("Sun and Moon positions are required for the moon phase")

    return CosmicSnapshot(
        date_context=transits.date_context,
        transits=transits,
        moon=describe_moon(sun.longitude, moon.longitude),
        general_transits=find_aspects(transits.placements, settings),
        computed_at=computed_at,
    )
