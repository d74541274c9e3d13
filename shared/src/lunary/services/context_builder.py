"""Assemble the per-request cosmic context handed to the narrative generator."""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, date, datetime, time

from sqlalchemy.ext.asyncio import AsyncSession

from ephemeris.calculator import AstronomyProvider
from ephemeris.patterns import detect_patterns
from ephemeris.returns import compute_returns
from ephemeris.transits import personalize
from lunary.database import get_session
from lunary.errors import MissingBirthInstantError, MissingChartError
from lunary.schemas.chart import NatalChart
from lunary.schemas.context import CONTEXT_COMPONENTS, CategoryOutcome, CosmicContext
from lunary.schemas.ephemeris import CosmicSnapshot
from lunary.services.astro_settings import AstroSettings, default_astro_settings, load_astro_settings
from lunary.services.chart_store import ChartStore, SqlChartStore
from lunary.services.context_cost import estimate_context_cost, trim_to_budget
from lunary.services.context_requirements import analyze_context_needs
from lunary.services.cosmic_cache import CosmicDataCache

logger = logging.getLogger(__name__)

# Categories computed from the stored natal chart
CHART_COMPONENTS = ("natal_patterns", "planetary_returns", "personal_transits")

# Requested categories that other services fill in
DELEGATED_COMPONENTS = ("progressed_chart", "eclipses", "tarot_patterns", "journal_history")


def _failed(exc: BaseException, detail: str | None = None) -> CategoryOutcome:
    return CategoryOutcome(status="failed", detail=detail or str(exc), error=type(exc).__name__)


class CosmicContextBuilder:
    """Runs the requested computations for one request, isolating each category."""

    def __init__(
        self,
        cache: CosmicDataCache,
        chart_store: ChartStore,
        *,
        provider: AstronomyProvider | None = None,
        astro_settings: AstroSettings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.cache = cache
        self.chart_store = chart_store
        # Used to refine return dates; falls back to the cache's provider
        self.provider = provider if provider is not None else cache.provider
        self.astro_settings = astro_settings or default_astro_settings()
        self.clock = clock or cache.clock

    @classmethod
    async def from_session(
        cls,
        session: AsyncSession,
        cache: CosmicDataCache,
        *,
        provider: AstronomyProvider | None = None,
    ) -> CosmicContextBuilder:
        """Builder reading charts and calibration overrides from the database."""
        astro_settings = await load_astro_settings(session)
        return cls(cache, SqlChartStore(session), provider=provider, astro_settings=astro_settings)

    async def build_context(
        self,
        user_id: str,
        query_text: str,
        as_of: date | None = None,
        *,
        token_budget: int | None = None,
        full_transits: bool = False,
    ) -> CosmicContext:
        """Build the cosmic context for one request.

        Args:
            user_id: Owner of the stored natal chart.
            query_text: Free text used to decide which categories are needed.
            as_of: Reference date, today (UTC) when None.
            token_budget: Trim optional categories to fit; the configured
                default budget applies when None.
            full_transits: Return every transit hit instead of the top N.

        Returns:
            CosmicContext with one outcome per category. Failures in one
            category never abort the others.
        """
        settings = self.astro_settings
        now = self.clock()
        target = as_of or now.date()

        weights = settings.context.token_weights
        requirements = analyze_context_needs(query_text)
        budget = token_budget if token_budget is not None else settings.context.token_budget
        dropped: list[str] = []
        if budget is not None:
            requirements, dropped = trim_to_budget(requirements, budget, weights)
        estimate = estimate_context_cost(requirements, weights)

        outcomes: dict[str, CategoryOutcome] = {}
        snapshot: CosmicSnapshot | None = None
        snapshot_error: BaseException | None = None
        patterns = []
        returns = []
        transit_hits = []

        if requirements.needs_basic_cosmic or requirements.needs_personal_transits:
            try:
                snapshot = await self.cache.get_or_compute(target)
            except Exception as exc:
                logger.exception("Cosmic snapshot failed for %s", target)
                snapshot_error = exc
        if requirements.needs_basic_cosmic:
            outcomes["basic_cosmic"] = (
                CategoryOutcome(status="succeeded") if snapshot is not None else _failed(snapshot_error)
            )

        chart: NatalChart | None = None
        needed_chart = [c for c in CHART_COMPONENTS if requirements.is_needed(c)]
        if needed_chart:
            try:
                chart = await self.chart_store.load_chart(user_id)
            except MissingChartError as exc:
                logger.info("No usable natal chart for user %s: %s", user_id, exc.reason)
                for component in needed_chart:
                    outcomes[component] = _failed(exc, exc.reason)
            except Exception as exc:
                logger.exception("Loading natal chart failed for user %s", user_id)
                for component in needed_chart:
                    outcomes[component] = _failed(exc)

        if chart is not None and requirements.needs_natal_patterns:
            try:
                patterns = detect_patterns(chart, settings)
                outcomes["natal_patterns"] = CategoryOutcome(
                    status="succeeded", detail=f"{len(patterns)} patterns"
                )
            except Exception as exc:
                logger.exception("Pattern detection failed for user %s", user_id)
                outcomes["natal_patterns"] = _failed(exc)

        if chart is not None and requirements.needs_planetary_returns:
            if chart.birth_instant is None:
                outcomes["planetary_returns"] = CategoryOutcome(
                    status="partial",
                    detail="birth time unknown, returns cannot be timed",
                    error=MissingBirthInstantError.__name__,
                )
            else:
                if target == now.date():
                    reference = now
                else:
                    reference = datetime.combine(target, time(12, 0), tzinfo=UTC)
                try:
                    returns = await asyncio.to_thread(
                        compute_returns, chart, chart.birth_instant, reference, self.provider, settings
                    )
                    active = sum(1 for r in returns if r.is_active)
                    outcomes["planetary_returns"] = CategoryOutcome(
                        status="succeeded", detail=f"{active} active returns"
                    )
                except Exception as exc:
                    logger.exception("Planetary returns failed for user %s", user_id)
                    outcomes["planetary_returns"] = _failed(exc)

        if chart is not None and requirements.needs_personal_transits:
            if snapshot is None:
                outcomes["personal_transits"] = _failed(
                    snapshot_error, "cosmic snapshot unavailable"
                )
            else:
                try:
                    transit_hits = personalize(
                        chart, snapshot.transits, full=full_transits, settings=settings
                    )
                    outcomes["personal_transits"] = CategoryOutcome(
                        status="succeeded", detail=f"{len(transit_hits)} transit hits"
                    )
                except Exception as exc:
                    logger.exception("Transit personalization failed for user %s", user_id)
                    outcomes["personal_transits"] = _failed(exc)

        for component in DELEGATED_COMPONENTS:
            if requirements.is_needed(component):
                outcomes[component] = CategoryOutcome(status="skipped", detail="delegated")
        for component in dropped:
            outcomes[component] = CategoryOutcome(status="skipped", detail="over token budget")

        ordered = {
            component: outcomes.get(component) or CategoryOutcome(status="skipped", detail="not requested")
            for component in CONTEXT_COMPONENTS
        }

        return CosmicContext(
            user_id=str(user_id),
            as_of=target,
            requirements=requirements,
            cost_estimate=estimate,
            dropped_for_budget=dropped,
            cosmic=snapshot,
            patterns=patterns,
            returns=returns,
            transit_hits=transit_hits,
            outcomes=ordered,
        )


async def build_cosmic_context(
    cache: CosmicDataCache,
    user_id: str,
    query_text: str,
    as_of: date | None = None,
    **options,
) -> CosmicContext:
    """Build a context outside a request, using a session of its own."""
    async with get_session() as session:
        builder = await CosmicContextBuilder.from_session(session, cache)
        return await builder.build_context(user_id, query_text, as_of, **options)
