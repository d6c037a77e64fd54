"""Dependency injection for FastAPI routes."""

from collections.abc import AsyncGenerator
from functools import lru_cache
from typing import Annotated

import redis.asyncio as aioredis
from fastapi import Depends

# Re-export auth dependencies for convenience
from storelink.core.auth import CurrentUser, get_current_user
from storelink.core.config import settings
from storelink.services.authorization import AuthorizationService
from storelink.services.capabilities import CeleryCapabilities
from storelink.services.connection import ConnectionService
from storelink.services.dispatcher import WebhookDispatcher
from storelink.services.revocation import RevocationService
from storelink.services.state_store import InMemoryStateStore, RedisStateStore, StateStore
from storelink.services.store_registry import (
    InMemoryStoreRegistry,
    RedisStoreRegistry,
    StoreRegistry,
)
from storelink.services.token_exchange import TokenExchanger
from storelink.services.webhook_registrar import WebhookRegistrar

# Shared Redis connection pool
_redis_pool: aioredis.ConnectionPool | None = None


def _get_redis_pool() -> aioredis.ConnectionPool:
    global _redis_pool  # noqa: PLW0603
    if _redis_pool is None:
        _redis_pool = aioredis.ConnectionPool.from_url(
            str(settings.redis_url), decode_responses=True
        )
    return _redis_pool


async def get_redis() -> AsyncGenerator[aioredis.Redis, None]:
    """Yield a Redis client from the shared connection pool."""
    pool = _get_redis_pool()
    r = aioredis.Redis(connection_pool=pool)
    try:
        yield r
    finally:
        await r.aclose()


RedisDep = Annotated[aioredis.Redis, Depends(get_redis)]


# In-process stores live for the lifetime of the worker process
@lru_cache
def _memory_registry() -> InMemoryStoreRegistry:
    return InMemoryStoreRegistry()


@lru_cache
def _memory_state_store() -> InMemoryStateStore:
    return InMemoryStateStore()


async def get_registry(r: RedisDep) -> StoreRegistry:
    """Connection registry for the configured backend."""
    if settings.registry_backend == "memory":
        return _memory_registry()
    return RedisStoreRegistry(r)


async def get_state_store(r: RedisDep) -> StateStore:
    """OAuth state store for the configured backend."""
    if settings.registry_backend == "memory":
        return _memory_state_store()
    return RedisStateStore(r)


RegistryDep = Annotated[StoreRegistry, Depends(get_registry)]
StateStoreDep = Annotated[StateStore, Depends(get_state_store)]


def get_capabilities() -> CeleryCapabilities:
    """Compliance and business sinks used by the webhook dispatcher."""
    return CeleryCapabilities()


def get_authorization_service(state_store: StateStoreDep) -> AuthorizationService:
    return AuthorizationService(state_store)


def get_connection_service(
    registry: RegistryDep,
    authorization: Annotated[AuthorizationService, Depends(get_authorization_service)],
) -> ConnectionService:
    return ConnectionService(
        TokenExchanger(authorization, registry),
        WebhookRegistrar(registry),
    )


def get_dispatcher(
    registry: RegistryDep,
    capabilities: Annotated[CeleryCapabilities, Depends(get_capabilities)],
) -> WebhookDispatcher:
    return WebhookDispatcher(
        registry,
        data_requests=capabilities,
        customer_erasure=capabilities,
        shop_erasure=capabilities,
        business_events=capabilities,
    )


def get_revocation_service(registry: RegistryDep) -> RevocationService:
    return RevocationService(registry)


AuthorizationDep = Annotated[AuthorizationService, Depends(get_authorization_service)]
ConnectionDep = Annotated[ConnectionService, Depends(get_connection_service)]
DispatcherDep = Annotated[WebhookDispatcher, Depends(get_dispatcher)]
RevocationDep = Annotated[RevocationService, Depends(get_revocation_service)]


__all__ = [
    "AuthorizationDep",
    "ConnectionDep",
    "CurrentUser",
    "DispatcherDep",
    "RedisDep",
    "RegistryDep",
    "RevocationDep",
    "StateStoreDep",
    "get_authorization_service",
    "get_capabilities",
    "get_connection_service",
    "get_current_user",
    "get_dispatcher",
    "get_redis",
    "get_registry",
    "get_revocation_service",
    "get_state_store",
]
