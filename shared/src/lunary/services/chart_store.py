"""Stored natal chart access -- validates user_profiles.natal_chart_json once into NatalChart."""
from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ephemeris.bodies import BODY_ORDER, find_house, normalize_longitude
from lunary.errors import MissingChartError
from lunary.models.user_profile import UserProfile
from lunary.schemas.chart import NatalChart

logger = logging.getLogger(__name__)


class ChartStore(Protocol):
    async def load_chart(self, user_id: str) -> NatalChart: ...


def _birth_instant(profile: UserProfile) -> datetime | None:
    """Local birth moment, or None when the birth time is unknown or unusable."""
    if not profile.birth_time_known or profile.birth_time is None:
        return None
    try:
        tz = ZoneInfo(profile.birth_timezone or "UTC")
    except (ZoneInfoNotFoundError, ValueError) as e:
        logger.warning(
            "Unknown birth timezone '%s' for user %s, treating birth time as unknown: %s",
            profile.birth_timezone,
            profile.user_id,
            e,
        )
        return None
    return datetime.combine(profile.birth_date, profile.birth_time, tzinfo=tz)


def chart_from_payload(
    user_id: object,
    payload: object,
    birth_instant: datetime | None = None,
) -> NatalChart:
    """Validate a stored chart payload into a NatalChart.

    Points the core does not track (lilith, part of fortune, ...) are ignored.
    Houses missing from a placement are derived from the cusps when the birth
    time is known.
    """
    if not isinstance(payload, dict):
        raise MissingChartError(user_id, "stored natal chart is not an object")
    positions = payload.get("positions")
    if not isinstance(positions, list) or not positions:
        raise MissingChartError(user_id, "stored natal chart has no positions")

    cusps = payload.get("house_cusps") or None
    placements: list[dict[str, Any]] = []
    for entry in positions:
        if not isinstance(entry, dict):
            continue
        body = str(entry.get("body", "")).strip().lower()
        if body not in BODY_ORDER:
            continue
        placement = {
            "body": body,
            "longitude": entry.get("longitude"),
            "speed_deg_day": entry.get("speed_deg_day") or 0.0,
            "house": entry.get("house"),
        }
        if "retrograde" in entry:
            placement["retrograde"] = bool(entry["retrograde"])
        if placement["house"] is None and cusps and len(cusps) == 12 and birth_instant is not None:
            try:
                placement["house"] = find_house(
                    normalize_longitude(entry["longitude"]),
                    [normalize_longitude(c) for c in cusps],
                )
            except (TypeError, ValueError):
                # Bad longitude; validation below rejects the chart
                pass
        placements.append(placement)

    try:
        return NatalChart(
            placements=placements,
            birth_instant=birth_instant,
            house_cusps=cusps,
        )
    except ValidationError as exc:
        logger.warning("Stored natal chart for %s failed validation: %s", user_id, exc)
        raise MissingChartError(user_id, "stored natal chart is malformed") from exc


class SqlChartStore:
    """Reads charts from ``user_profiles`` through an AsyncSession."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def load_chart(self, user_id: str) -> NatalChart:
        try:
            user_uuid = uuid.UUID(str(user_id))
        except ValueError as exc:
            raise MissingChartError(user_id, "malformed user id") from exc

        result = await self.session.execute(
            select(UserProfile).where(UserProfile.user_id == user_uuid)
        )
        profile = result.scalars().first()
        if profile is None:
            raise MissingChartError(user_id, "no user profile")
        if not profile.natal_chart_json:
            raise MissingChartError(user_id)

        return chart_from_payload(user_id, profile.natal_chart_json, _birth_instant(profile))
