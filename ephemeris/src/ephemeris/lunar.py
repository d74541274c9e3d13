"""Lunar phase calculations."""

from __future__ import annotations

import logging
import math

from lunary.schemas.ephemeris import MoonPhase

from ephemeris.bodies import longitude_to_sign

logger = logging.getLogger(__name__)

# Named lunar phases with their synodic percentage ranges
PHASE_NAMES = [
    (0.000, 0.0625, "new_moon"),
    (0.0625, 0.1875, "waxing_crescent"),
    (0.1875, 0.3125, "first_quarter"),
    (0.3125, 0.4375, "waxing_gibbous"),
    (0.4375, 0.5625, "full_moon"),
    (0.5625, 0.6875, "waning_gibbous"),
    (0.6875, 0.8125, "last_quarter"),
    (0.8125, 0.9375, "waning_crescent"),
    (0.9375, 1.000, "new_moon"),
]

SIGNIFICANT_PHASES = {"new_moon", "first_quarter", "full_moon", "last_quarter"}


def calculate_lunar_phase(sun_longitude: float, moon_longitude: float) -> tuple[str, float]:
    """Calculate lunar phase from Sun and Moon longitudes.

    Returns:
        Tuple of (phase_name, phase_pct) where phase_pct is synodic progress
        0.0 = new moon, 0.5 = full moon, 1.0 = next new moon.
    """
    # Phase angle: Moon's elongation from Sun
    elongation = (moon_longitude - sun_longitude) % 360.0
    phase_pct = elongation / 360.0

    phase_name = "new_moon"
    for low, high, name in PHASE_NAMES:
        if low <= phase_pct < high:
            phase_name = name
            break

    return phase_name, round(phase_pct, 4)


def moon_illumination(phase_pct: float) -> int:
    """Illuminated fraction of the disc as a whole percent."""
    return int(round((1.0 - math.cos(2.0 * math.pi * phase_pct)) / 2.0 * 100.0))


def describe_moon(sun_longitude: float, moon_longitude: float) -> MoonPhase:
    phase_name, phase_pct = calculate_lunar_phase(sun_longitude, moon_longitude)
    sign, _ = longitude_to_sign(moon_longitude)
    return MoonPhase(
        name=phase_name,
        phase_pct=phase_pct,
        illumination=moon_illumination(phase_pct),
        sign=sign,
        is_significant=phase_name in SIGNIFICANT_PHASES,
    )
