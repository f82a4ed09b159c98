"""Profile-scoped session state storage.

- InMemoryStateStore → dict-backed, for tests and throwaway dev sessions
- DatabaseStateStore → one JSON row per profile via async SQLAlchemy

Each profile's state is saved and loaded as a single serialized record.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.logging import logger
from app.models.profile import Profile, ProfileState
from app.schemas import ChatMessage, ProfileResponse, SessionState, new_id
from app.services.template_service import seed_prompts

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful teaching assistant. Follow teacher instructions faithfully "
    "and keep answers concise and classroom-appropriate."
)
DEFAULT_PROFILE_NAME = "My Profile"


def default_state() -> SessionState:
    """State of a profile that has never been saved."""
    return SessionState(
        prompts=seed_prompts(),
        messages=[ChatMessage(role="system", content=DEFAULT_SYSTEM_PROMPT)],
    )


def serialize_state(state: SessionState) -> str:
    return state.model_dump_json(by_alias=True)


def deserialize_state(raw: str) -> SessionState:
    return SessionState.model_validate_json(raw)


class BaseStateStore(ABC):
    """Abstract base for profile state backends."""

    @abstractmethod
    async def list_profiles(self) -> List[ProfileResponse]:
        """All known profiles, newest first."""
        ...

    @abstractmethod
    async def create_profile(self, name: str) -> ProfileResponse:
        """Create a profile and store its default state."""
        ...

    @abstractmethod
    async def get_profile(self, profile_id: str) -> Optional[ProfileResponse]:
        ...

    @abstractmethod
    async def load(self, profile_id: str) -> Optional[SessionState]:
        """Return the saved state, or None if the profile has none."""
        ...

    @abstractmethod
    async def save(self, profile_id: str, state: SessionState) -> None:
        """Replace the profile's saved state."""
        ...

    async def load_or_default(self, profile_id: str) -> SessionState:
        state = await self.load(profile_id)
        return state if state is not None else default_state()

    async def ensure_default_profile(self) -> List[ProfileResponse]:
        """Bootstrap a first profile so a fresh install is usable."""
        profiles = await self.list_profiles()
        if profiles:
            return profiles
        profile = await self.create_profile(DEFAULT_PROFILE_NAME)
        logger.info(f"Bootstrapped default profile {profile.id}")
        return [profile]


# ──────────────────────────────────────────────────────────────────────────────
# IN-MEMORY STORE
# ──────────────────────────────────────────────────────────────────────────────

class InMemoryStateStore(BaseStateStore):
    """Keeps serialized records in a dict, so round-trips behave like the DB store."""

    def __init__(self):
        self._profiles: List[ProfileResponse] = []
        self._records: Dict[str, str] = {}

    async def list_profiles(self) -> List[ProfileResponse]:
        return list(self._profiles)

    async def create_profile(self, name: str) -> ProfileResponse:
        profile = ProfileResponse(id=new_id("profile"), name=name.strip())
        self._profiles.insert(0, profile)
        self._records[profile.id] = serialize_state(default_state())
        return profile

    async def get_profile(self, profile_id: str) -> Optional[ProfileResponse]:
        return next((p for p in self._profiles if p.id == profile_id), None)

    async def load(self, profile_id: str) -> Optional[SessionState]:
        raw = self._records.get(profile_id)
        return deserialize_state(raw) if raw is not None else None

    async def save(self, profile_id: str, state: SessionState) -> None:
        self._records[profile_id] = serialize_state(state)


# ──────────────────────────────────────────────────────────────────────────────
# DATABASE STORE
# ──────────────────────────────────────────────────────────────────────────────

class DatabaseStateStore(BaseStateStore):
    """Persists profiles and their state records through an AsyncSession."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_profiles(self) -> List[ProfileResponse]:
        result = await self.db.execute(select(Profile).order_by(Profile.created_at.desc()))
        return [ProfileResponse.model_validate(p) for p in result.scalars().all()]

    async def create_profile(self, name: str) -> ProfileResponse:
        profile = Profile(id=new_id("profile"), name=name.strip())
        self.db.add(profile)
        self.db.add(ProfileState(profile_id=profile.id, data=serialize_state(default_state())))
        await self.db.flush()
        await self.db.refresh(profile)
        logger.info(f"Created profile '{profile.name}' ({profile.id})")
        return ProfileResponse.model_validate(profile)

    async def get_profile(self, profile_id: str) -> Optional[ProfileResponse]:
        profile = await self.db.get(Profile, profile_id)
        return ProfileResponse.model_validate(profile) if profile else None

    async def load(self, profile_id: str) -> Optional[SessionState]:
        record = await self.db.get(ProfileState, profile_id)
        if record is None:
            return None
        return deserialize_state(record.data)

    async def save(self, profile_id: str, state: SessionState) -> None:
        record = await self.db.get(ProfileState, profile_id)
        if record is None:
            self.db.add(ProfileState(profile_id=profile_id, data=serialize_state(state)))
        else:
            record.data = serialize_state(state)
        await self.db.flush()


def get_state_store(db: AsyncSession = Depends(get_db)) -> BaseStateStore:
    """Dependency that provides the database-backed store."""
    return DatabaseStateStore(db)
