"""Single-use storage for OAuth CSRF state tokens."""

import asyncio
import logging
import math
from collections.abc import Callable
from datetime import datetime
from typing import Protocol

import redis.asyncio as aioredis
from pydantic import ValidationError

from storelink.models.connection import OAuthState, utcnow

logger = logging.getLogger(__name__)

STATE_KEY_PREFIX = "shopify_oauth:"


class StateStore(Protocol):
    """Persistence interface for in-flight authorization attempts."""

    async def save(self, state: OAuthState) -> None: ...

    async def consume(self, nonce: str) -> OAuthState | None:
        """Remove and return the state for ``nonce``.

        The entry is deleted by the lookup itself, so a nonce can be consumed
        at most once. Expired entries are deleted and reported as absent.
        """
        ...


class InMemoryStateStore:
    """Process-local state store for development and tests."""

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._states: dict[str, OAuthState] = {}
        self._lock = asyncio.Lock()
        self._clock = clock

    async def save(self, state: OAuthState) -> None:
        async with self._lock:
            self._states[state.nonce] = state

    async def consume(self, nonce: str) -> OAuthState | None:
        async with self._lock:
            state = self._states.pop(nonce, None)
        if state is None or state.is_expired(self._clock()):
            return None
        return state

    def __len__(self) -> int:
        return len(self._states)


class RedisStateStore:
    """Redis-backed state store.

    Entries carry a Redis ``EX`` matching their TTL, and ``consume`` uses
    ``GETDEL`` so two concurrent callbacks can never both observe the same
    nonce. Expiry is also checked at read time.
    """

    def __init__(self, redis: aioredis.Redis, clock: Callable[[], datetime] = utcnow) -> None:
        self.redis = redis
        self._clock = clock

    @staticmethod
    def _key(nonce: str) -> str:
        return f"{STATE_KEY_PREFIX}{nonce}"

    async def save(self, state: OAuthState) -> None:
        remaining = (state.expires_at - self._clock()).total_seconds()
        await self.redis.set(
            self._key(state.nonce),
            state.model_dump_json(),
            ex=max(1, math.ceil(remaining)),
        )

    async def consume(self, nonce: str) -> OAuthState | None:
        raw = await self.redis.getdel(self._key(nonce))
        if raw is None:
            return None

        try:
            state = OAuthState.model_validate_json(raw)
        except ValidationError:
            logger.warning("Discarding unreadable OAuth state entry")
            return None

        if state.is_expired(self._clock()):
            return None
        return state
