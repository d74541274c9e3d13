"""Pydantic schemas for natal charts and transit snapshots."""

from __future__ import annotations

from datetime import UTC, date, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ephemeris.bodies import BODY_ORDER, longitude_to_sign, normalize_longitude

BodyName = Literal[
    "sun",
    "moon",
    "mercury",
    "venus",
    "mars",
    "jupiter",
    "saturn",
    "uranus",
    "neptune",
    "pluto",
    "north_node",
    "south_node",
]


def _ordered_unique(placements: list[PlanetPlacement]) -> list[PlanetPlacement]:
    seen: set[str] = set()
    for placement in placements:
        if placement.body in seen:
            raise ValueError(f"duplicate placement for {placement.body}")
        seen.add(placement.body)
    return sorted(placements, key=lambda p: BODY_ORDER[p.body])


class PlanetPlacement(BaseModel):
    """Position of one body. Sign and degree are derived from the longitude."""

    model_config = ConfigDict(frozen=True)

    body: BodyName
    longitude: float = Field(ge=0.0, lt=360.0)
    sign: str
    degree: float
    house: int | None = Field(default=None, ge=1, le=12)
    retrograde: bool = False
    speed_deg_day: float = 0.0

    @model_validator(mode="before")
    @classmethod
    def _derive_sign(cls, data: Any) -> Any:
        if not isinstance(data, dict) or data.get("longitude") is None:
            return data
        data = dict(data)
        longitude = normalize_longitude(data["longitude"])
        sign, degree = longitude_to_sign(longitude)
        data["longitude"] = longitude
        data["sign"] = sign
        data["degree"] = round(degree, 4)
        if "retrograde" not in data:
            data["retrograde"] = float(data.get("speed_deg_day") or 0.0) < 0
        return data


class NatalChart(BaseModel):
    """Validated natal chart. Read-only input to every computation."""

    model_config = ConfigDict(frozen=True)

    placements: list[PlanetPlacement]
    birth_instant: datetime | None = None
    house_cusps: list[float] | None = None

    @field_validator("placements")
    @classmethod
    def _canonical_order(cls, value: list[PlanetPlacement]) -> list[PlanetPlacement]:
        return _ordered_unique(value)

    @field_validator("birth_instant")
    @classmethod
    def _aware_birth_instant(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    @field_validator("house_cusps")
    @classmethod
    def _twelve_cusps(cls, value: list[float] | None) -> list[float] | None:
        if value is None:
            return None
        if len(value) != 12:
            raise ValueError(f"expected 12 house cusps, got {len(value)}")
        return [normalize_longitude(c) for c in value]

    def placement(self, body: str) -> PlanetPlacement | None:
        for placement in self.placements:
            if placement.body == body:
                return placement
        return None


class TransitSnapshot(BaseModel):
    """Planetary positions for one calendar date, shared by all users."""

    model_config = ConfigDict(frozen=True)

    date_context: date
    placements: list[PlanetPlacement]

    @field_validator("placements")
    @classmethod
    def _canonical_order(cls, value: list[PlanetPlacement]) -> list[PlanetPlacement]:
        return _ordered_unique(value)

    def placement(self, body: str) -> PlanetPlacement | None:
        for placement in self.placements:
            if placement.body == body:
                return placement
        return None
