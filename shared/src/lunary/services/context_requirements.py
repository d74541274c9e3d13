"""Decide which optional context categories a request needs from its text."""
from __future__ import annotations

import logging

from lunary.schemas.context import ContextRequirements

logger = logging.getLogger(__name__)

# Flag -> lower-case trigger phrases, matched as substrings
TRIGGER_PHRASES: dict[str, tuple[str, ...]] = {
    "personal_transits": ("transit", "aspect", "planetary influence"),
    "natal_patterns": (
        "pattern",
        "natal",
        "stellium",
        "grand trine",
        "t-square",
        "grand cross",
        "yod",
        "birth chart",
    ),
    "planetary_returns": ("return", "birthday"),
    "progressed_chart": ("progress", "evolv", "changed"),
    "eclipses": ("eclipse", "transformation", "portal"),
    "tarot_patterns": ("tarot", "card", "spread"),
    "journal_history": ("journal", "entries", "entry", "wrote", "written", "reflect"),
}

PRESETS: dict[str, ContextRequirements] = {
    "quick_cosmic": ContextRequirements(needs_tarot_patterns=True),
    "deep_analysis": ContextRequirements(
        needs_personal_transits=True,
        needs_natal_patterns=True,
        needs_planetary_returns=True,
        needs_progressed_chart=True,
        needs_eclipses=True,
    ),
    "tarot_focus": ContextRequirements(needs_tarot_patterns=True),
    "journal_reflection": ContextRequirements(
        needs_personal_transits=True,
        needs_tarot_patterns=True,
        needs_journal_history=True,
    ),
}


def analyze_context_needs(query_text: str | None) -> ContextRequirements:
    """Map free text to requirement flags. Basic cosmic data is always needed."""
    text = (query_text or "").lower()
    flags = {
        name: any(phrase in text for phrase in phrases)
        for name, phrases in TRIGGER_PHRASES.items()
    }
    requirements = ContextRequirements().with_flags(**flags)
    logger.debug("Context needs for query: %s", requirements.active_components())
    return requirements


def preset_requirements(name: str) -> ContextRequirements:
    try:
        return PRESETS[name]
    except KeyError:
        raise ValueError(f"Unknown context preset '{name}'") from None
