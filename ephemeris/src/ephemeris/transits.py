"""Transit-to-natal aspect personalization."""

from __future__ import annotations

import logging

from lunary.schemas.chart import NatalChart, PlanetPlacement, TransitSnapshot
from lunary.schemas.ephemeris import AspectHit
from lunary.services.astro_settings import AstroSettings, default_astro_settings

from ephemeris.aspects import angular_distance, classify
from ephemeris.bodies import BODY_ORDER

logger = logging.getLogger(__name__)


def personalize(
    chart: NatalChart,
    transits: TransitSnapshot,
    *,
    limit: int | None = None,
    full: bool = False,
    settings: AstroSettings | None = None,
) -> list[AspectHit]:
    """Find aspects from the day's transiting bodies to the natal placements.

    ``body_a`` is always the transiting body. Results are sorted by orb, then
    transiting body, then natal body, and capped at ``limit`` (the configured
    top N when None) unless ``full`` is set.
    """
    settings = settings or default_astro_settings()
    orb_factor = settings.aspects.transit_orb_factor

    hits = []
    for transit in transits.placements:
        for natal in chart.placements:
            hit = classify(
                transit.longitude,
                natal.longitude,
                body_a=transit.body,
                body_b=natal.body,
                orb_factor=orb_factor,
                settings=settings,
            )
            if hit is None:
                continue
            applying = _is_applying(transit, natal, hit.exact_angle)
            hits.append(hit.model_copy(update={"is_applying": applying}))

    hits.sort(key=lambda h: (h.orb, BODY_ORDER[h.body_a], BODY_ORDER[h.body_b]))
    logger.debug("Found %d transit hits for %s", len(hits), transits.date_context)

    if full:
        return hits
    cap = settings.transits.top_n if limit is None else limit
    return hits[:cap]


def _is_applying(transit: PlanetPlacement, natal: PlanetPlacement, exact_angle: float) -> bool:
    """Applying when the orb shrinks as the transiting body moves one day on."""
    orb_now = abs(angular_distance(transit.longitude, natal.longitude) - exact_angle)
    tomorrow = (transit.longitude + transit.speed_deg_day) % 360.0
    orb_next = abs(angular_distance(tomorrow, natal.longitude) - exact_angle)
    return orb_next < orb_now
