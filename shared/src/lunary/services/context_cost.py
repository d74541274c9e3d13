"""Token cost estimates for a set of context requirements."""
from __future__ import annotations

import logging

from lunary.schemas.context import CONTEXT_COMPONENTS, ContextRequirements, CostEstimate
from lunary.services.astro_settings import default_astro_settings

logger = logging.getLogger(__name__)


def estimate_context_cost(
    requirements: ContextRequirements,
    weights: dict[str, int] | None = None,
) -> CostEstimate:
    """Sum the token weight of every active component.

    Every component appears in ``components``; inactive ones cost 0.
    """
    if weights is None:
        weights = default_astro_settings().context.token_weights

    components = {
        component: weights[component] if requirements.is_needed(component) else 0
        for component in CONTEXT_COMPONENTS
    }
    return CostEstimate(
        components=components,
        total_estimated_tokens=sum(components.values()),
    )


def trim_to_budget(
    requirements: ContextRequirements,
    budget: int,
    weights: dict[str, int] | None = None,
) -> tuple[ContextRequirements, list[str]]:
    """Drop the most expensive optional components until the estimate fits.

    Basic cosmic data is never dropped, so the result can still exceed a
    budget smaller than its weight.

    Returns:
        The trimmed requirements and the dropped component names, in drop order.
    """
    if weights is None:
        weights = default_astro_settings().context.token_weights

    dropped: list[str] = []
    estimate = estimate_context_cost(requirements, weights)
    optional = [c for c in requirements.active_components() if c != "basic_cosmic"]
    # Most expensive first; ties keep component order
    optional.sort(key=lambda c: -weights[c])

    for component in optional:
        if estimate.within(budget):
            break
        requirements = requirements.with_flags(**{component: False})
        dropped.append(component)
        estimate = estimate_context_cost(requirements, weights)

    if dropped:
        logger.info(
            "Dropped %s to fit token budget %d (now %d)",
            ", ".join(dropped),
            budget,
            estimate.total_estimated_tokens,
        )
    return requirements, dropped
