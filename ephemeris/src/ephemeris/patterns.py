"""Natal pattern detection: stelliums and multi-planet aspect configurations.

The chart holds at most ten planets, so every search is a nested index loop
over one fixed list with a precomputed pairwise aspect grid. Worst case is
the grand cross search at O(n^4) with n <= 10.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence

from lunary.schemas.chart import NatalChart, PlanetPlacement
from lunary.schemas.ephemeris import AspectHit, NatalPattern
from lunary.services.astro_settings import AstroSettings, default_astro_settings

from ephemeris.aspects import classify
from ephemeris.bodies import BODY_ORDER, PERSONAL_PLANETS, PLANETS, sign_element

logger = logging.getLogger(__name__)

# Tie-break between configurations with the same orb: bigger shapes first
PATTERN_WEIGHTS: dict[str, int] = {
    "grand_cross": 5,
    "kite": 4,
    "grand_trine": 3,
    "t_square": 2,
    "yod": 1,
}

_PLANET_SET = set(PLANETS)

AspectGrid = list[list[AspectHit | None]]


def detect_patterns(chart: NatalChart, settings: AstroSettings | None = None) -> list[NatalPattern]:
    """Detect stelliums and aspect configurations in a natal chart.

    A body may appear in several patterns of different types. Within one
    pattern type the same body set is reported once.

    Returns:
        Patterns ordered by significance: stelliums first (size, then personal
        planets), then configurations by orb tightness.
    """
    settings = settings or default_astro_settings()
    planets = [p for p in chart.placements if p.body in _PLANET_SET]
    grid = _aspect_grid(planets, settings)

    searches = [
        _stelliums(planets, settings),
        _grand_trines(planets, grid, kites=settings.patterns.minor_configurations),
        _t_squares(planets, grid),
        _grand_crosses(planets, grid),
    ]
    if settings.patterns.minor_configurations:
        searches.append(_yods(planets, grid))

    found: dict[tuple[str, frozenset[str]], NatalPattern] = {}
    for search in searches:
        for pattern in search:
            found.setdefault((pattern.pattern_type, frozenset(pattern.bodies)), pattern)

    patterns = sorted(found.values(), key=_significance_key)
    logger.debug("Detected %d natal patterns across %d planets", len(patterns), len(planets))
    return patterns


def _significance_key(pattern: NatalPattern) -> tuple:
    order = tuple(BODY_ORDER[b] for b in pattern.bodies)
    if pattern.pattern_type == "stellium":
        personal = sum(1 for b in pattern.bodies if b in PERSONAL_PLANETS)
        return (0, -len(pattern.placements), -personal, 0.0, 0, order)
    return (1, 0, 0, pattern.orb or 0.0, -PATTERN_WEIGHTS[pattern.pattern_type], order)


def _aspect_grid(planets: Sequence[PlanetPlacement], settings: AstroSettings) -> AspectGrid:
    n = len(planets)
    grid: AspectGrid = [[None] * n for _ in range(n)]
    for i in range(n):
        for j in range(i + 1, n):
            hit = classify(
                planets[i].longitude,
                planets[j].longitude,
                body_a=planets[i].body,
                body_b=planets[j].body,
                settings=settings,
            )
            grid[i][j] = grid[j][i] = hit
    return grid


def _is(grid: AspectGrid, i: int, j: int, aspect_type: str) -> bool:
    hit = grid[i][j]
    return hit is not None and hit.aspect_type == aspect_type


def _houses(members: Sequence[PlanetPlacement]) -> list[int]:
    return sorted({p.house for p in members if p.house is not None})


def _configuration(
    pattern_type: str,
    planets: Sequence[PlanetPlacement],
    grid: AspectGrid,
    indexes: tuple[int, ...],
    legs: Sequence[tuple[int, int]],
    apex: int | None = None,
) -> NatalPattern:
    members = [planets[i] for i in sorted(indexes)]
    elements = {sign_element(p.sign) for p in members}
    signs = {p.sign for p in members}
    # The loosest leg bounds how tight the whole shape is
    orb = max(grid[i][j].orb for i, j in legs)
    return NatalPattern(
        pattern_type=pattern_type,
        placements=members,
        sign=signs.pop() if len(signs) == 1 else None,
        element=elements.pop() if len(elements) == 1 else None,
        houses=_houses(members),
        orb=round(orb, 4),
        apex=planets[apex].body if apex is not None else None,
    )


def _stelliums(planets: Sequence[PlanetPlacement], settings: AstroSettings) -> Iterator[NatalPattern]:
    minimum = settings.patterns.stellium_min_bodies

    by_sign: dict[str, list[PlanetPlacement]] = {}
    for placement in planets:
        by_sign.setdefault(placement.sign, []).append(placement)
    for sign, members in by_sign.items():
        if len(members) >= minimum:
            yield NatalPattern(
                pattern_type="stellium",
                placements=members,
                sign=sign,
                element=sign_element(sign),
                houses=_houses(members),
                basis="sign",
            )

    if not settings.patterns.house_stelliums:
        return

    by_house: dict[int, list[PlanetPlacement]] = {}
    for placement in planets:
        if placement.house is not None:
            by_house.setdefault(placement.house, []).append(placement)
    for house, members in sorted(by_house.items()):
        if len(members) < minimum:
            continue
        signs = {p.sign for p in members}
        sign = signs.pop() if len(signs) == 1 else None
        yield NatalPattern(
            pattern_type="stellium",
            placements=members,
            sign=sign,
            element=sign_element(sign) if sign else None,
            houses=[house],
            basis="house",
        )


def _grand_trines(
    planets: Sequence[PlanetPlacement], grid: AspectGrid, kites: bool
) -> Iterator[NatalPattern]:
    n = len(planets)
    for i in range(n):
        for j in range(i + 1, n):
            if not _is(grid, i, j, "trine"):
                continue
            for k in range(j + 1, n):
                if not (_is(grid, i, k, "trine") and _is(grid, j, k, "trine")):
                    continue
                legs = [(i, j), (i, k), (j, k)]
                yield _configuration("grand_trine", planets, grid, (i, j, k), legs)
                if kites:
                    yield from _kites(planets, grid, (i, j, k), legs)


def _kites(
    planets: Sequence[PlanetPlacement],
    grid: AspectGrid,
    trine: tuple[int, int, int],
    trine_legs: list[tuple[int, int]],
) -> Iterator[NatalPattern]:
    i, j, k = trine
    corners = ((i, j, k), (j, i, k), (k, i, j))
    for tail in range(len(planets)):
        if tail in trine:
            continue
        for head, left, right in corners:
            if (
                _is(grid, tail, head, "opposition")
                and _is(grid, tail, left, "sextile")
                and _is(grid, tail, right, "sextile")
            ):
                legs = [*trine_legs, (tail, head), (tail, left), (tail, right)]
                yield _configuration("kite", planets, grid, (i, j, k, tail), legs, apex=head)
                break


def _t_squares(planets: Sequence[PlanetPlacement], grid: AspectGrid) -> Iterator[NatalPattern]:
    n = len(planets)
    for i in range(n):
        for j in range(i + 1, n):
            if not _is(grid, i, j, "opposition"):
                continue
            for k in range(n):
                if k == i or k == j:
                    continue
                if _is(grid, i, k, "square") and _is(grid, j, k, "square"):
                    legs = [(i, j), (i, k), (j, k)]
                    yield _configuration("t_square", planets, grid, (i, j, k), legs, apex=k)


def _grand_crosses(planets: Sequence[PlanetPlacement], grid: AspectGrid) -> Iterator[NatalPattern]:
    # i is the lowest index of the cross, so each cross is visited once
    n = len(planets)
    for i in range(n):
        for j in range(i + 1, n):
            if not _is(grid, i, j, "opposition"):
                continue
            for k in range(i + 1, n):
                if k == j or not (_is(grid, i, k, "square") and _is(grid, j, k, "square")):
                    continue
                for m in range(k + 1, n):
                    if m == j or not _is(grid, k, m, "opposition"):
                        continue
                    if _is(grid, i, m, "square") and _is(grid, j, m, "square"):
                        legs = [(i, j), (k, m), (i, k), (i, m), (j, k), (j, m)]
                        yield _configuration("grand_cross", planets, grid, (i, j, k, m), legs)


def _yods(planets: Sequence[PlanetPlacement], grid: AspectGrid) -> Iterator[NatalPattern]:
    n = len(planets)
    for i in range(n):
        for j in range(i + 1, n):
            if not _is(grid, i, j, "sextile"):
                continue
            for k in range(n):
                if k == i or k == j:
                    continue
                if _is(grid, i, k, "quincunx") and _is(grid, j, k, "quincunx"):
                    legs = [(i, j), (i, k), (j, k)]
                    yield _configuration("yod", planets, grid, (i, j, k), legs, apex=k)
