"""SQLAlchemy ORM models for talent onboarding.

All models are exported from this module for convenient imports:
    from app.models import User, TalentProfile

- user.py: User (identity metadata, keyed by identity store user id)
- talent_profile.py: TalentProfile (onboarding record)
"""

from app.models.base import Base, TimestampMixin
from app.models.talent_profile import TalentProfile
from app.models.user import User

__all__ = [
    "Base",
    "TimestampMixin",
    "User",
    "TalentProfile",
]
