"""Date-keyed cache of the shared cosmic snapshot with single-flight computation.

One computation per date per process: the first caller starts a task owned by
the cache and every caller for that date awaits it. A failed computation
releases the claim so the next caller retries.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, date, datetime
from typing import Literal

import redis.asyncio as aioredis
from pydantic import ValidationError

from ephemeris.calculator import AstronomyProvider, summarize_day
from lunary.config import Settings, get_settings
from lunary.errors import AstronomyProviderError
from lunary.schemas.chart import TransitSnapshot
from lunary.schemas.ephemeris import CosmicSnapshot
from lunary.services.astro_settings import AstroSettings

logger = logging.getLogger(__name__)

CacheState = Literal["uncomputed", "computing", "cached"]


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _consume_error(task: asyncio.Task) -> None:
    # Every waiter may be gone; keep asyncio from logging an unretrieved error
    if not task.cancelled():
        task.exception()


class RedisSnapshotStore:
    """Shared snapshot store so several processes compute each date once."""

    def __init__(self, client, key_prefix: str = "cosmic_snapshot", ttl_days: int = 8) -> None:
        self.client = client
        self.key_prefix = key_prefix
        self.ttl_seconds = ttl_days * 86400

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> RedisSnapshotStore | None:
        settings = settings or get_settings()
        if not settings.cosmic_cache_redis_enabled:
            return None
        return cls(
            aioredis.from_url(settings.redis_url),
            key_prefix=settings.cosmic_cache_key_prefix,
            ttl_days=settings.cosmic_cache_ttl_days,
        )

    def key(self, target: date) -> str:
        return f"{self.key_prefix}:{target.isoformat()}"

    async def get(self, target: date) -> CosmicSnapshot | None:
        try:
            raw = await self.client.get(self.key(target))
        except Exception as e:
            logger.warning("Redis cache read failed: %s", e)
            return None
        if not raw:
            return None
        try:
            return CosmicSnapshot.model_validate_json(raw)
        except ValidationError as e:
            logger.warning("Discarding malformed cached snapshot for %s: %s", target, e)
            return None

    async def set(self, snapshot: CosmicSnapshot) -> None:
        try:
            await self.client.set(
                self.key(snapshot.date_context),
                snapshot.model_dump_json(),
                ex=self.ttl_seconds,
            )
        except Exception as e:
            logger.warning("Redis cache write failed: %s", e)

    async def delete(self, target: date) -> None:
        try:
            await self.client.delete(self.key(target))
        except Exception as e:
            logger.warning("Redis cache delete failed: %s", e)


class CosmicDataCache:
    """Process-wide cache of cosmic snapshots keyed by calendar date.

    Must be used from a single event loop.
    """

    def __init__(
        self,
        provider: AstronomyProvider,
        *,
        store: RedisSnapshotStore | None = None,
        astro_settings: AstroSettings | None = None,
        max_entries: int | None = None,
        retry_attempts: int | None = None,
        retry_backoff_seconds: float | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        settings = get_settings()
        self.provider = provider
        self.store = store
        self.astro_settings = astro_settings
        self.max_entries = max_entries if max_entries is not None else settings.cosmic_cache_max_entries
        self.retry_attempts = (
            retry_attempts if retry_attempts is not None else settings.astronomy_retry_attempts
        )
        self.retry_backoff_seconds = (
            retry_backoff_seconds
            if retry_backoff_seconds is not None
            else settings.astronomy_retry_backoff_seconds
        )
        self.clock = clock or _utcnow
        self._snapshots: dict[date, CosmicSnapshot] = {}
        self._inflight: dict[date, asyncio.Task[CosmicSnapshot]] = {}
        # Bumped by invalidate(); results computed under an older generation are not kept
        self._generations: dict[date, int] = {}

    def state(self, target: date) -> CacheState:
        if target in self._snapshots:
            return "cached"
        if target in self._inflight:
            return "computing"
        return "uncomputed"

    async def get_or_compute(self, target: date) -> CosmicSnapshot:
        """Return the snapshot for ``target``, computing it at most once at a time.

        The computation runs in a task owned by the cache, so a cancelled
        caller never cancels it for the other callers waiting on that date.
        """
        cached = self._snapshots.get(target)
        if cached is not None:
            logger.debug("Cosmic cache hit for %s", target)
            return cached

        task = self._inflight.get(target)
        if task is None:
            # No await between the checks above and the claim below
            logger.debug("Cosmic cache miss for %s", target)
            task = asyncio.ensure_future(self._compute(target))
            task.add_done_callback(_consume_error)
            self._inflight[target] = task
        else:
            logger.debug("Awaiting in-flight cosmic snapshot for %s", target)

        return await asyncio.shield(task)

    async def invalidate(self, target: date) -> bool:
        """Drop the snapshot for today or a future date.

        A computation already running for ``target`` still answers its
        current waiters, but its result is not cached and the next caller
        computes afresh. Past snapshots are immutable; returns False and
        keeps them.
        """
        today = self.clock().date()
        if target < today:
            logger.warning("Refusing to invalidate past cosmic snapshot for %s", target)
            return False
        self._generations[target] = self._generations.get(target, 0) + 1
        self._snapshots.pop(target, None)
        self._inflight.pop(target, None)
        if self.store is not None:
            await self.store.delete(target)
        logger.info("Invalidated cosmic snapshot for %s", target)
        return True

    def _remember(self, snapshot: CosmicSnapshot) -> None:
        self._snapshots[snapshot.date_context] = snapshot
        while len(self._snapshots) > self.max_entries:
            oldest = min(self._snapshots)
            del self._snapshots[oldest]
            logger.debug("Evicted cosmic snapshot for %s", oldest)

    def _is_current(self, target: date, generation: int) -> bool:
        return self._generations.get(target, 0) == generation

    async def _compute(self, target: date) -> CosmicSnapshot:
        generation = self._generations.get(target, 0)
        task = asyncio.current_task()
        try:
            snapshot, computed = await self._load(target)
            if computed and self.store is not None and self._is_current(target, generation):
                await self.store.set(snapshot)
            if self._is_current(target, generation):
                self._remember(snapshot)
            else:
                logger.info("Discarding cosmic snapshot for %s invalidated while computing", target)
            return snapshot
        finally:
            # invalidate() may already have handed the date to a newer task
            if self._inflight.get(target) is task:
                del self._inflight[target]

    async def _load(self, target: date) -> tuple[CosmicSnapshot, bool]:
        """Snapshot from the shared store, else freshly computed (second item True)."""
        if self.store is not None:
            stored = await self.store.get(target)
            if stored is not None:
                logger.debug("Cosmic snapshot for %s loaded from shared store", target)
                return stored, False

        transits = await self._fetch_positions(target)
        return summarize_day(transits, self.clock(), self.astro_settings), True

    async def _fetch_positions(self, target: date) -> TransitSnapshot:
        attempt = 0
        while True:
            try:
                return await asyncio.to_thread(self.provider.position, target)
            except AstronomyProviderError as exc:
                if attempt >= self.retry_attempts:
                    logger.error("Astronomy provider failed for %s after %d attempts", target, attempt + 1)
                    raise
                delay = self.retry_backoff_seconds * (2**attempt)
                logger.warning(
                    "Astronomy provider failed for %s: %s (retrying in %.2fs)", target, exc, delay
                )
                await asyncio.sleep(delay)
                attempt += 1
