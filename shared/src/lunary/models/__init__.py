"""SQLAlchemy ORM models read by the cosmic context core."""

from lunary.models.base import Base
from lunary.models.site_setting import SiteSetting
from lunary.models.user_profile import UserProfile

__all__ = [
    "Base",
    "SiteSetting",
    "UserProfile",
]
