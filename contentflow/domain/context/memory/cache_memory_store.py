from typing import Callable, Dict, Any, Optional, Tuple
import asyncio
import time


class CacheMemoryStore:
    """In-memory cache with per-entry TTL"""

    def __init__(self, default_ttl: float = 300, clock: Callable[[], float] = time.monotonic):
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: Dict[str, Tuple[Any, float]] = {}
        self._lock = asyncio.Lock()

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        async with self._lock:
            lifetime = self.default_ttl if ttl is None else ttl
            self._entries[key] = (value, self._clock() + lifetime)

    async def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None when missing or expired"""

        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None

            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None

            return value

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._entries.pop(key, None) is not None

    async def clear_expired(self) -> int:
        async with self._lock:
            now = self._clock()
            expired = [key for key, (_, expires_at) in self._entries.items() if now >= expires_at]
            for key in expired:
                del self._entries[key]
            return len(expired)

    async def get_stats(self) -> Dict[str, int]:
        async with self._lock:
            now = self._clock()
            active = sum(1 for _, expires_at in self._entries.values() if now < expires_at)
            return {
                "total_keys": len(self._entries),
                "active_keys": active,
                "expired_keys": len(self._entries) - active,
            }
