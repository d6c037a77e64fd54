"""Keyed repository of connected stores.

All components read and write ``StoreConnection`` records through a
``StoreRegistry``. Operations on different shops are independent; operations
on the same shop are serialized so a reconnect racing a redact always leaves
either a complete record or nothing.
"""

import asyncio
import json
import logging
from collections.abc import Callable
from typing import Protocol

import redis.asyncio as aioredis
from redis.exceptions import WatchError

from storelink.core.encryption import decrypt_token, encrypt_token
from storelink.models.connection import StoreConnection

logger = logging.getLogger(__name__)

# Receives the current record (or None) and returns the new one (None deletes)
Mutation = Callable[[StoreConnection | None], StoreConnection | None]


class StoreRegistry(Protocol):
    """Persistence interface for store connections, keyed by shop domain."""

    async def get(self, shop_domain: str) -> StoreConnection | None: ...

    async def put(self, connection: StoreConnection) -> None: ...

    async def update(self, shop_domain: str, mutate: Mutation) -> StoreConnection | None:
        """Atomically apply ``mutate`` to the record for ``shop_domain``.

        Returns the stored result (None when the record is absent afterwards).
        """
        ...

    async def delete(self, shop_domain: str) -> bool:
        """Remove the record. Returns False if there was nothing to remove."""
        ...

    async def list_all(self) -> list[StoreConnection]: ...

    async def count(self) -> int: ...


class InMemoryStoreRegistry:
    """Process-local registry; writes are serialized by one asyncio lock."""

    def __init__(self) -> None:
        self._connections: dict[str, StoreConnection] = {}
        self._lock = asyncio.Lock()

    async def get(self, shop_domain: str) -> StoreConnection | None:
        return self._connections.get(shop_domain)

    async def put(self, connection: StoreConnection) -> None:
        async with self._lock:
            self._connections[connection.shop_domain] = connection

    async def update(self, shop_domain: str, mutate: Mutation) -> StoreConnection | None:
        async with self._lock:
            result = mutate(self._connections.get(shop_domain))
            if result is None:
                self._connections.pop(shop_domain, None)
            else:
                self._connections[shop_domain] = result
            return result

    async def delete(self, shop_domain: str) -> bool:
        async with self._lock:
            return self._connections.pop(shop_domain, None) is not None

    async def list_all(self) -> list[StoreConnection]:
        return sorted(self._connections.values(), key=lambda c: c.shop_domain)

    async def count(self) -> int:
        return len(self._connections)


class RedisStoreRegistry:
    """Redis-backed registry.

    Each connection is one JSON string with the access token Fernet-encrypted.
    ``put`` and ``delete`` are single transactions; ``update`` is an
    optimistic WATCH/MULTI compare-and-swap retried until it commits.
    """

    KEY_PREFIX = "store_connection:"
    INDEX_KEY = "store_connections"

    def __init__(self, redis: aioredis.Redis, max_retries: int = 50) -> None:
        self.redis = redis
        self.max_retries = max_retries

    def _key(self, shop_domain: str) -> str:
        return f"{self.KEY_PREFIX}{shop_domain}"

    @staticmethod
    def _dump(connection: StoreConnection) -> str:
        data = connection.model_dump(mode="json", exclude={"access_token"})
        data["access_token"] = encrypt_token(connection.access_token.get_secret_value())
        return json.dumps(data)

    @staticmethod
    def _load(raw: str | bytes) -> StoreConnection:
        data = json.loads(raw)
        data["access_token"] = decrypt_token(data["access_token"])
        return StoreConnection.model_validate(data)

    async def get(self, shop_domain: str) -> StoreConnection | None:
        raw = await self.redis.get(self._key(shop_domain))
        return self._load(raw) if raw is not None else None

    async def put(self, connection: StoreConnection) -> None:
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.set(self._key(connection.shop_domain), self._dump(connection))
            pipe.sadd(self.INDEX_KEY, connection.shop_domain)
            await pipe.execute()

    async def update(self, shop_domain: str, mutate: Mutation) -> StoreConnection | None:
        key = self._key(shop_domain)
        async with self.redis.pipeline(transaction=True) as pipe:
            for _ in range(self.max_retries):
                try:
                    await pipe.watch(key)
                    raw = await pipe.get(key)
                    current = self._load(raw) if raw is not None else None
                    result = mutate(current)

                    if current is None and result is None:
                        await pipe.unwatch()
                        return None

                    pipe.multi()
                    if result is None:
                        pipe.delete(key)
                        pipe.srem(self.INDEX_KEY, shop_domain)
                    else:
                        pipe.set(key, self._dump(result))
                        pipe.sadd(self.INDEX_KEY, shop_domain)
                    await pipe.execute()
                    return result
                except WatchError:
                    logger.debug("Concurrent write on %s, retrying update", shop_domain)
                    continue
        raise RuntimeError(f"Could not update {shop_domain} after {self.max_retries} attempts")

    async def delete(self, shop_domain: str) -> bool:
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.delete(self._key(shop_domain))
            pipe.srem(self.INDEX_KEY, shop_domain)
            deleted, _ = await pipe.execute()
        return bool(deleted)

    async def list_all(self) -> list[StoreConnection]:
        shops = sorted(await self.redis.smembers(self.INDEX_KEY))
        if not shops:
            return []
        raws = await self.redis.mget([self._key(s) for s in shops])
        return [self._load(raw) for raw in raws if raw is not None]

    async def count(self) -> int:
        return int(await self.redis.scard(self.INDEX_KEY))
