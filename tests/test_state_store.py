"""Tests for OAuth state storage (in-memory and Redis)."""

import asyncio
from datetime import UTC, datetime, timedelta

import fakeredis.aioredis
import pytest

from storelink.models.connection import OAuthState
from storelink.services.state_store import (
    STATE_KEY_PREFIX,
    InMemoryStateStore,
    RedisStateStore,
    StateStore,
)

T0 = datetime(2024, 3, 1, 12, 0, tzinfo=UTC)


class FakeClock:
    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(params=["memory", "redis"])
def store(
    request: pytest.FixtureRequest,
    clock: FakeClock,
    fake_redis: fakeredis.aioredis.FakeRedis,
) -> StateStore:
    if request.param == "memory":
        return InMemoryStateStore(clock=clock)
    return RedisStateStore(fake_redis, clock=clock)


def _state(nonce: str = "nonce-1", shop: str = "demo-store", ttl: int = 600) -> OAuthState:
    return OAuthState(nonce=nonce, shop_domain=shop, created_at=T0, ttl=ttl)


# ---------------------------------------------------------------------------
# Both backends
# ---------------------------------------------------------------------------


class TestStateStore:
    async def test_consume_returns_saved_state(self, store: StateStore) -> None:
        await store.save(_state())

        state = await store.consume("nonce-1")

        assert state is not None
        assert state.shop_domain == "demo-store"

    async def test_state_is_single_use(self, store: StateStore) -> None:
        await store.save(_state())

        assert await store.consume("nonce-1") is not None
        assert await store.consume("nonce-1") is None

    async def test_unknown_nonce(self, store: StateStore) -> None:
        assert await store.consume("never-issued") is None

    async def test_expired_state_is_absent(self, store: StateStore, clock: FakeClock) -> None:
        await store.save(_state(ttl=600))
        clock.advance(600)

        assert await store.consume("nonce-1") is None

    async def test_valid_just_before_expiry(self, store: StateStore, clock: FakeClock) -> None:
        await store.save(_state(ttl=600))
        clock.advance(599)

        assert await store.consume("nonce-1") is not None

    async def test_concurrent_consumers_see_state_once(self, store: StateStore) -> None:
        """Two callbacks racing on the same nonce: exactly one wins."""
        await store.save(_state())

        results = await asyncio.gather(*(store.consume("nonce-1") for _ in range(10)))

        assert sum(r is not None for r in results) == 1


# ---------------------------------------------------------------------------
# Backend specifics
# ---------------------------------------------------------------------------


class TestInMemoryStateStore:
    async def test_expired_entry_removed_on_lookup(self, clock: FakeClock) -> None:
        store = InMemoryStateStore(clock=clock)
        await store.save(_state(ttl=60))
        clock.advance(61)

        await store.consume("nonce-1")

        assert len(store) == 0


class TestRedisStateStore:
    async def test_sets_redis_expiry(
        self, fake_redis: fakeredis.aioredis.FakeRedis, clock: FakeClock
    ) -> None:
        store = RedisStateStore(fake_redis, clock=clock)
        await store.save(_state(ttl=600))

        ttl = await fake_redis.ttl(f"{STATE_KEY_PREFIX}nonce-1")

        assert 0 < ttl <= 600

    async def test_consume_deletes_key(
        self, fake_redis: fakeredis.aioredis.FakeRedis, clock: FakeClock
    ) -> None:
        store = RedisStateStore(fake_redis, clock=clock)
        await store.save(_state())

        await store.consume("nonce-1")

        assert await fake_redis.exists(f"{STATE_KEY_PREFIX}nonce-1") == 0

    async def test_unreadable_entry_is_discarded(
        self, fake_redis: fakeredis.aioredis.FakeRedis, clock: FakeClock
    ) -> None:
        await fake_redis.set(f"{STATE_KEY_PREFIX}bad", "not-json")
        store = RedisStateStore(fake_redis, clock=clock)

        assert await store.consume("bad") is None
        assert await fake_redis.exists(f"{STATE_KEY_PREFIX}bad") == 0
