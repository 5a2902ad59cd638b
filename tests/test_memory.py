import pytest

from contentflow.domain.context.memory.cache_memory_store import CacheMemoryStore
from contentflow.domain.context.memory.profile_store import CachedProfileStore, InMemoryProfileStore
from contentflow.domain.context.memory.runtime_memory import RuntimeMemory
from contentflow.domain.models.profile import UserKnowledgeProfile


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class CountingProfileStore(InMemoryProfileStore):
    def __init__(self):
        super().__init__()
        self.reads = 0

    async def get_profile(self, user_id, org_id):
        self.reads += 1
        return await super().get_profile(user_id, org_id)


@pytest.mark.asyncio
async def test_cache_entries_expire():
    clock = FakeClock()
    cache = CacheMemoryStore(default_ttl=10, clock=clock)

    await cache.set("a", 1)
    await cache.set("b", 2, ttl=100)
    assert await cache.get("a") == 1

    clock.now += 11
    assert await cache.get("a") is None
    assert await cache.get("b") == 2


@pytest.mark.asyncio
async def test_cache_clear_expired_and_stats():
    clock = FakeClock()
    cache = CacheMemoryStore(default_ttl=10, clock=clock)
    await cache.set("a", 1)
    await cache.set("b", 2, ttl=100)

    clock.now += 50
    assert await cache.get_stats() == {"total_keys": 2, "active_keys": 1, "expired_keys": 1}
    assert await cache.clear_expired() == 1
    assert await cache.delete("b")
    assert not await cache.delete("b")


@pytest.mark.asyncio
async def test_cached_profile_store_reads_through_and_invalidates():
    backing = CountingProfileStore()
    store = CachedProfileStore(backing, ttl=60)
    await store.upsert_profile(UserKnowledgeProfile(user_id="u1", org_id="o1", company_name="Acme"))

    assert (await store.get_profile("u1", "o1")).company_name == "Acme"
    assert (await store.get_profile("u1", "o1")).company_name == "Acme"
    assert backing.reads == 1

    await store.upsert_profile(UserKnowledgeProfile(user_id="u1", org_id="o1", company_name="Acme Robotics"))
    assert (await store.get_profile("u1", "o1")).company_name == "Acme Robotics"
    assert backing.reads == 2


@pytest.mark.asyncio
async def test_missing_profile_is_none():
    store = CachedProfileStore(InMemoryProfileStore())
    assert await store.get_profile("nobody", "o1") is None


@pytest.mark.asyncio
async def test_runtime_memory_history():
    memory = RuntimeMemory(max_messages=3)
    await memory.post_message("t1", "What is the announcement?")
    await memory.record_turn("t1", "user", "A new robot")
    await memory.post_message("t1", "Which platform?")
    await memory.record_turn("t1", "user", "LinkedIn")

    assert await memory.get_history("t1", limit=2) == [
        {"role": "assistant", "content": "Which platform?"},
        {"role": "user", "content": "LinkedIn"},
    ]
    assert len(await memory.get_messages("t1")) == 3
    assert await memory.get_history("t2") == []

    await memory.clear_thread("t1")
    assert await memory.get_messages("t1") == []
