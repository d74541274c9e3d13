"""Aspect detection and orb calculations."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from lunary.schemas.chart import PlanetPlacement
from lunary.schemas.ephemeris import AspectHit
from lunary.services.astro_settings import AstroSettings, default_astro_settings

from ephemeris.bodies import (
    ASPECTS,
    BODY_ORDER,
    aspect_significance,
    get_effective_orb,
)

logger = logging.getLogger(__name__)

# Tie-break order when two aspects match with the same orb
_ASPECT_ORDER = {name: index for index, name in enumerate(ASPECTS)}


def angular_distance(lon1: float, lon2: float) -> float:
    """Calculate the shortest angular distance between two longitudes."""
    diff = abs(lon1 - lon2) % 360.0
    if diff > 180.0:
        diff = 360.0 - diff
    return diff


def orb_limit(
    aspect_name: str,
    body1: str | None = None,
    body2: str | None = None,
    orb_factor: float = 1.0,
    settings: AstroSettings | None = None,
) -> float:
    """Effective orb for an aspect, scaled for the bodies involved."""
    aspects = (settings or default_astro_settings()).aspects
    base_orb = aspects.orbs[aspect_name]
    if aspects.use_body_modifiers:
        base_orb = get_effective_orb(base_orb, body1, body2, aspects.body_orb_modifiers)
    return base_orb * orb_factor


def classify(
    lon_a: float,
    lon_b: float,
    *,
    body_a: str | None = None,
    body_b: str | None = None,
    orb_factor: float = 1.0,
    settings: AstroSettings | None = None,
) -> AspectHit | None:
    """Classify the separation of two longitudes into the tightest aspect in orb.

    Symmetric in its longitudes; ``is_applying`` is left False because bare
    longitudes carry no motion.
    """
    settings = settings or default_astro_settings()
    dist = angular_distance(lon_a, lon_b)

    best: tuple[float, int, str] | None = None
    for aspect_name in settings.aspects.orbs:
        orb = abs(dist - ASPECTS[aspect_name])
        if orb > orb_limit(aspect_name, body_a, body_b, orb_factor, settings):
            continue
        candidate = (orb, _ASPECT_ORDER[aspect_name], aspect_name)
        if best is None or candidate < best:
            best = candidate

    if best is None:
        return None

    orb, _, aspect_name = best
    return AspectHit(
        body_a=body_a,
        body_b=body_b,
        aspect_type=aspect_name,
        exact_angle=ASPECTS[aspect_name],
        separation=round(dist, 4),
        orb=round(orb, 4),
        significance=aspect_significance(aspect_name),
    )


def find_aspects(
    placements: Sequence[PlanetPlacement],
    settings: AstroSettings | None = None,
) -> list[AspectHit]:
    """Find all aspects within one set of placements.

    Applying/separating is taken from the bodies' daily speeds.

    Returns:
        Aspect hits sorted by significance then orb.
    """
    aspects_found = []
    bodies = sorted(placements, key=lambda p: BODY_ORDER[p.body])

    for i, first in enumerate(bodies):
        for second in bodies[i + 1:]:
            hit = classify(
                first.longitude,
                second.longitude,
                body_a=first.body,
                body_b=second.body,
                settings=settings,
            )
            if hit is None:
                continue
            applying = _is_applying(
                first.longitude,
                second.longitude,
                first.speed_deg_day,
                second.speed_deg_day,
                hit.exact_angle,
            )
            aspects_found.append(hit.model_copy(update={"is_applying": applying}))

    # Sort by significance then orb
    sig_order = {"major": 0, "moderate": 1, "minor": 2}
    aspects_found.sort(key=lambda a: (sig_order.get(a.significance, 3), a.orb))

    return aspects_found


def _is_applying(
    lon1: float, lon2: float, speed1: float, speed2: float, aspect_angle: float
) -> bool:
    """Determine if an aspect is applying (getting tighter) or separating."""
    dist_now = angular_distance(lon1, lon2)

    # Project positions forward slightly
    lon1_future = (lon1 + speed1 * 0.1) % 360.0
    lon2_future = (lon2 + speed2 * 0.1) % 360.0
    dist_future = angular_distance(lon1_future, lon2_future)

    orb_now = abs(dist_now - aspect_angle)
    orb_future = abs(dist_future - aspect_angle)

    return orb_future < orb_now
