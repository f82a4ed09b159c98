"""SQLAlchemy models package."""

from app.models.profile import Profile, ProfileState

__all__ = ["Profile", "ProfileState"]
