"""Error taxonomy for the cosmic context core."""

from __future__ import annotations


class CosmicCoreError(Exception):
    """Base class for errors raised by the cosmic context core."""


class MissingChartError(CosmicCoreError):
    """The user has no usable stored natal chart."""

    def __init__(self, user_id: object, reason: str = "no stored natal chart") -> None:
        self.user_id = user_id
        self.reason = reason
        super().__init__(f"User {user_id}: {reason}")


class MissingBirthInstantError(CosmicCoreError):
    """The chart has no birth time, so returns cannot be timed."""


class AstronomyProviderError(CosmicCoreError):
    """Transient failure from the ephemeris backend."""


class ConfigurationError(CosmicCoreError):
    """Invalid calibration tables; fatal at startup."""
