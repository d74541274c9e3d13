"""User birth data and the stored natal chart payload."""

from __future__ import annotations

import uuid
from datetime import date, time

from sqlalchemy import Boolean, Date, Text, Time, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from lunary.models.base import Base


class UserProfile(Base):
    """Owned by the profile service; the chart store only reads it."""

    __tablename__ = "user_profiles"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, server_default=text("gen_random_uuid()")
    )
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), unique=True, nullable=False)
    birth_date: Mapped[date] = mapped_column(Date, nullable=False)
    birth_time: Mapped[time | None] = mapped_column(Time)
    birth_time_known: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("FALSE"))
    birth_timezone: Mapped[str] = mapped_column(Text, nullable=False, server_default=text("'UTC'"))
    natal_chart_json: Mapped[dict | None] = mapped_column(JSONB)
