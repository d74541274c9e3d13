"""Pydantic schemas for request context planning and the aggregate result."""

from __future__ import annotations

from datetime import date
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from lunary.schemas.ephemeris import AspectHit, CosmicSnapshot, NatalPattern, PlanetaryReturn

# Component names, in estimation order. Each maps to a ``needs_<name>`` flag.
CONTEXT_COMPONENTS = [
    "basic_cosmic",
    "personal_transits",
    "natal_patterns",
    "planetary_returns",
    "progressed_chart",
    "eclipses",
    "tarot_patterns",
    "journal_history",
]

CategoryStatus = Literal["succeeded", "partial", "skipped", "failed"]


class ContextRequirements(BaseModel):
    """Which optional computations a request needs."""

    model_config = ConfigDict(frozen=True)

    needs_basic_cosmic: bool = True
    needs_personal_transits: bool = False
    needs_natal_patterns: bool = False
    needs_planetary_returns: bool = False
    needs_progressed_chart: bool = False
    needs_eclipses: bool = False
    needs_tarot_patterns: bool = False
    needs_journal_history: bool = False

    def is_needed(self, component: str) -> bool:
        return bool(getattr(self, f"needs_{component}"))

    def active_components(self) -> list[str]:
        return [c for c in CONTEXT_COMPONENTS if self.is_needed(c)]

    def with_flags(self, **flags: bool) -> ContextRequirements:
        return self.model_copy(update={f"needs_{name}": value for name, value in flags.items()})


class CostEstimate(BaseModel):
    """Token cost per component (0 when inactive) and the total."""

    model_config = ConfigDict(frozen=True)

    components: dict[str, int]
    total_estimated_tokens: int = Field(ge=0)

    def within(self, budget: int) -> bool:
        return self.total_estimated_tokens <= budget


class CategoryOutcome(BaseModel):
    """How one computation category fared for a request."""

    status: CategoryStatus
    detail: str | None = None
    error: str | None = None


class CosmicContext(BaseModel):
    """Aggregate context handed to the downstream narrative generator."""

    user_id: str
    as_of: date
    requirements: ContextRequirements
    cost_estimate: CostEstimate
    dropped_for_budget: list[str] = Field(default_factory=list)
    cosmic: CosmicSnapshot | None = None
    patterns: list[NatalPattern] = Field(default_factory=list)
    returns: list[PlanetaryReturn] = Field(default_factory=list)
    transit_hits: list[AspectHit] = Field(default_factory=list)
    outcomes: dict[str, CategoryOutcome] = Field(default_factory=dict)
