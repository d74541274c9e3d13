"""Pydantic schemas for derived ephemeris data."""

from __future__ import annotations

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from lunary.schemas.chart import BodyName, PlanetPlacement, TransitSnapshot

AspectType = Literal[
    "conjunction",
    "sextile",
    "square",
    "trine",
    "opposition",
    "quincunx",
    "semisquare",
    "sesquiquadrate",
]
PatternType = Literal["stellium", "grand_trine", "t_square", "grand_cross", "yod", "kite"]
ReturnType = Literal["solar", "jupiter", "saturn"]
ReturnPhase = Literal["approaching", "exact", "waning"]


class AspectHit(BaseModel):
    """An aspect between two longitudes.

    For transit hits ``body_a`` is always the transiting body and ``body_b``
    the natal body.
    """

    model_config = ConfigDict(frozen=True)

    body_a: BodyName | None = None
    body_b: BodyName | None = None
    aspect_type: AspectType
    exact_angle: float
    separation: float
    orb: float = Field(ge=0.0)
    is_applying: bool = False
    significance: Literal["major", "moderate", "minor"] = "moderate"


class NatalPattern(BaseModel):
    """A structural configuration found in a natal chart."""

    model_config = ConfigDict(frozen=True)

    pattern_type: PatternType
    placements: list[PlanetPlacement]
    sign: str | None = None
    element: str | None = None
    houses: list[int] = Field(default_factory=list)
    orb: float | None = None
    apex: BodyName | None = None
    basis: Literal["sign", "house"] | None = None

    @property
    def bodies(self) -> tuple[str, ...]:
        return tuple(p.body for p in self.placements)


class PlanetaryReturn(BaseModel):
    """Proximity of a planet to its return to the natal longitude."""

    model_config = ConfigDict(frozen=True)

    planet: BodyName
    return_type: ReturnType
    label: str
    return_number: int = Field(ge=1)
    return_date: date
    proximity_days: int
    phase: ReturnPhase
    is_active: bool


class MoonPhase(BaseModel):
    """Lunar phase summary for a snapshot."""

    model_config = ConfigDict(frozen=True)

    name: str
    phase_pct: float = Field(ge=0.0, le=1.0)
    illumination: int = Field(ge=0, le=100)
    sign: str
    is_significant: bool = False


class CosmicSnapshot(BaseModel):
    """The date-keyed global sky: positions, moon phase, general transits."""

    model_config = ConfigDict(frozen=True)

    date_context: date
    transits: TransitSnapshot
    moon: MoonPhase
    general_transits: list[AspectHit] = Field(default_factory=list)
    computed_at: datetime
