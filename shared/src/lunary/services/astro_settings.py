"""Astrology calibration settings -- typed Pydantic models backed by site_settings table.

Every orb width, return activity window and token weight lives here so call
sites never hard-code their own copies.
"""
from __future__ import annotations

import logging
import math
from functools import lru_cache
from typing import Any

from pydantic import BaseModel, Field, ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ephemeris.bodies import ASPECTS, DEFAULT_ORBS, ORB_MODIFIERS
from lunary.errors import ConfigurationError
from lunary.models.site_setting import SiteSetting
from lunary.schemas.context import CONTEXT_COMPONENTS

logger = logging.getLogger(__name__)

RETURN_TYPES = ("solar", "jupiter", "saturn")


class AspectSettings(BaseModel):
    orbs: dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_ORBS))
    body_orb_modifiers: dict[str, float] = Field(default_factory=lambda: dict(ORB_MODIFIERS))
    use_body_modifiers: bool = True
    transit_orb_factor: float = Field(default=0.8, gt=0.0, le=1.0)


class PatternSettings(BaseModel):
    stellium_min_bodies: int = Field(default=3, ge=2)
    house_stelliums: bool = True
    minor_configurations: bool = True


class ReturnSettings(BaseModel):
    activity_windows: dict[str, int] = Field(
        default={"solar": 3, "jupiter": 14, "saturn": 30}
    )
    exact_days: int = Field(default=1, ge=0)
    refine_with_ephemeris: bool = True


class TransitSettings(BaseModel):
    top_n: int = Field(default=3, ge=1)


class ContextSettings(BaseModel):
    token_weights: dict[str, int] = Field(
        default={
            "basic_cosmic": 150,
            "personal_transits": 300,
            "natal_patterns": 200,
            "planetary_returns": 100,
            "progressed_chart": 250,
            "eclipses": 200,
            "tarot_patterns": 150,
            "journal_history": 400,
        }
    )
    token_budget: int | None = Field(default=None, ge=0)


class AstroSettings(BaseModel):
    aspects: AspectSettings = Field(default_factory=AspectSettings)
    patterns: PatternSettings = Field(default_factory=PatternSettings)
    returns: ReturnSettings = Field(default_factory=ReturnSettings)
    transits: TransitSettings = Field(default_factory=TransitSettings)
    context: ContextSettings = Field(default_factory=ContextSettings)


def orb_overlaps(orbs: dict[str, float]) -> list[tuple[str, str]]:
    """Return aspect pairs whose orb ranges share any separation."""
    ranges = []
    for name, orb in orbs.items():
        angle = ASPECTS[name]
        ranges.append((name, max(0.0, angle - orb), min(180.0, angle + orb)))

    overlaps = []
    for i, (name_a, low_a, high_a) in enumerate(ranges):
        for name_b, low_b, high_b in ranges[i + 1:]:
            if low_a <= high_b and low_b <= high_a:
                overlaps.append((name_a, name_b))
    return overlaps


def validate_astro_settings(settings: AstroSettings) -> AstroSettings:
    """Check cross-field invariants. Raises ConfigurationError listing every problem."""
    problems: list[str] = []

    orbs = settings.aspects.orbs
    unknown = sorted(set(orbs) - set(ASPECTS))
    if unknown:
        problems.append(f"unknown aspects in orb table: {', '.join(unknown)}")
    known_orbs = {name: orb for name, orb in orbs.items() if name in ASPECTS}
    for name, orb in known_orbs.items():
        if not math.isfinite(orb) or orb <= 0:
            problems.append(f"orb for {name} must be a positive finite number, got {orb}")
    if not problems:
        for name_a, name_b in orb_overlaps(known_orbs):
            problems.append(f"orb ranges overlap: {name_a} / {name_b}")

    for body, modifier in settings.aspects.body_orb_modifiers.items():
        if not math.isfinite(modifier) or modifier <= 0:
            problems.append(f"orb modifier for {body} must be a positive finite number")

    windows = settings.returns.activity_windows
    for return_type in RETURN_TYPES:
        if return_type not in windows:
            problems.append(f"missing activity window for {return_type} return")
        elif windows[return_type] < 0:
            problems.append(f"activity window for {return_type} return must be >= 0")

    weights = settings.context.token_weights
    for component in CONTEXT_COMPONENTS:
        if component not in weights:
            problems.append(f"missing token weight for {component}")
        elif weights[component] < 0:
            problems.append(f"token weight for {component} must be >= 0")
    extra = sorted(set(weights) - set(CONTEXT_COMPONENTS))
    if extra:
        problems.append(f"unknown token weight components: {', '.join(extra)}")

    if problems:
        raise ConfigurationError("; ".join(problems))
    return settings


@lru_cache(maxsize=1)
def default_astro_settings() -> AstroSettings:
    """Validated built-in defaults."""
    return validate_astro_settings(AstroSettings())


def build_astro_settings(overrides: dict[str, Any]) -> AstroSettings:
    """Merge ``{group: {field: value}}`` overrides into the defaults and validate.

    Dict-valued fields (orb tables, windows, weights) are merged key by key.
    """
    merged = AstroSettings().model_dump()
    for group, fields in overrides.items():
        if group not in merged or not isinstance(fields, dict):
            logger.warning("Ignoring unknown astrology settings group '%s'", group)
            continue
        for field, value in fields.items():
            current = merged[group].get(field)
            if isinstance(current, dict) and isinstance(value, dict):
                current.update(value)
            else:
                merged[group][field] = value

    try:
        settings = AstroSettings(**merged)
    except ValidationError as exc:
        raise ConfigurationError(f"invalid astrology settings: {exc}") from exc
    return validate_astro_settings(settings)


async def load_astro_settings(session: AsyncSession) -> AstroSettings:
    """Load astrology settings from site_settings table, merged with defaults.

    Keys use dotted paths like ``astrology.returns.activity_windows``.
    """
    result = await session.execute(
        select(SiteSetting).where(SiteSetting.category == "astrology")
    )
    rows = result.scalars().all()

    overrides: dict[str, Any] = {}
    for row in rows:
        key = row.key
        if key.startswith("astrology."):
            key = key[len("astrology."):]
        parts = key.split(".")
        if len(parts) == 2:
            group, field = parts
            overrides.setdefault(group, {})[field] = row.value
        else:
            logger.warning("Ignoring malformed astrology setting key '%s'", row.key)

    return build_astro_settings(overrides)


def astro_settings_schema() -> dict[str, Any]:
    """Return the full JSON Schema for AstroSettings with defaults."""
    return AstroSettings.model_json_schema()
