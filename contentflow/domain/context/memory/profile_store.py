from typing import Dict, Optional, Tuple
import asyncio
from datetime import datetime
import structlog

from contentflow.domain.interfaces import ProfileStore
from contentflow.domain.models.profile import UserKnowledgeProfile
from .cache_memory_store import CacheMemoryStore

logger = structlog.get_logger(__name__)


class InMemoryProfileStore(ProfileStore):
    """Profiles keyed by (user, org); never deleted implicitly"""

    def __init__(self):
        self.profiles: Dict[Tuple[str, str], UserKnowledgeProfile] = {}
        self._lock = asyncio.Lock()

    async def get_profile(self, user_id: str, org_id: str) -> Optional[UserKnowledgeProfile]:
        async with self._lock:
            profile = self.profiles.get((user_id, org_id))
            return profile.model_copy(deep=True) if profile else None

    async def upsert_profile(self, profile: UserKnowledgeProfile) -> UserKnowledgeProfile:
        async with self._lock:
            stored = profile.model_copy(deep=True, update={"updated_at": datetime.utcnow()})
            self.profiles[(profile.user_id, profile.org_id)] = stored
            return stored.model_copy(deep=True)


class CachedProfileStore(ProfileStore):
    """Read-through TTL cache in front of another profile store"""

    def __init__(self, store: ProfileStore, cache: Optional[CacheMemoryStore] = None, ttl: float = 300):
        self.store = store
        self.cache = cache or CacheMemoryStore(default_ttl=ttl)

    @staticmethod
    def _key(user_id: str, org_id: str) -> str:
        return f"profile:{org_id}:{user_id}"

    async def get_profile(self, user_id: str, org_id: str) -> Optional[UserKnowledgeProfile]:
        key = self._key(user_id, org_id)
        cached = await self.cache.get(key)
        if cached is not None:
            return cached.model_copy(deep=True)

        profile = await self.store.get_profile(user_id, org_id)
        if profile is not None:
            await self.cache.set(key, profile)
        return profile

    async def upsert_profile(self, profile: UserKnowledgeProfile) -> UserKnowledgeProfile:
        stored = await self.store.upsert_profile(profile)
        await self.cache.delete(self._key(profile.user_id, profile.org_id))
        logger.debug("Profile cache invalidated", user_id=profile.user_id, org_id=profile.org_id)
        return stored
