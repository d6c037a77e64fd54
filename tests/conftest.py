"""Pytest configuration and fixtures for the StoreLink API test suite.

Provides:
- In-memory registry and state store injected through dependency overrides
- Mock authentication (JWT bypass)
- Mock Redis (fakeredis)
- Disabled rate limiting
- A fake Shopify Admin API patched in place of ``httpx.AsyncClient``
- Recording compliance/business capabilities
- Webhook and OAuth callback signing helpers
"""

import base64
import hashlib
import hmac
from collections.abc import AsyncGenerator, Callable, Generator
from datetime import UTC, datetime
from typing import Any
from unittest.mock import MagicMock, patch
from urllib.parse import urlencode

import fakeredis.aioredis
import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from storelink.core.auth import get_current_user
from storelink.core.deps import get_capabilities, get_redis, get_registry, get_state_store
from storelink.core.rate_limit import limiter
from storelink.main import app
from storelink.models.connection import ShopMetadata, StoreConnection
from storelink.services.capabilities import WorkItem
from storelink.services.state_store import InMemoryStateStore
from storelink.services.store_registry import InMemoryStoreRegistry

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
TEST_USER_ID = "test-user-id"
TEST_USER_EMAIL = "test@example.com"

SHOPIFY_TEST_CLIENT_ID = "test-shopify-client-id"
SHOPIFY_TEST_CLIENT_SECRET = "test-shopify-client-secret"
SHOPIFY_TEST_SHOP = "demo-store"
SHOPIFY_TEST_HOST = "demo-store.myshopify.com"
TEST_API_URL = "https://api.storelink.test"
TEST_FRONTEND_URL = "https://app.storelink.test"

SAMPLE_SHOP_PAYLOAD: dict[str, Any] = {
    "id": 548380009,
    "name": "Demo Store",
    "email": "owner@demo-store.test",
    "currency": "USD",
    "timezone": "(GMT-05:00) Eastern Time (US & Canada)",
    "iana_timezone": "America/New_York",
    "plan_name": "basic",
    "myshopify_domain": SHOPIFY_TEST_HOST,
}

# ---------------------------------------------------------------------------
# Disable rate limiting globally for tests
# ---------------------------------------------------------------------------
limiter.enabled = False


@pytest.fixture(autouse=True)
def set_shopify_test_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure Shopify settings are set for all tests.

    This is autouse=True so all tests have consistent Shopify config.
    """
    monkeypatch.setattr("storelink.core.config.settings.shopify_client_id", SHOPIFY_TEST_CLIENT_ID)
    monkeypatch.setattr(
        "storelink.core.config.settings.shopify_client_secret", SHOPIFY_TEST_CLIENT_SECRET
    )
    monkeypatch.setattr("storelink.core.config.settings.shopify_webhook_secret", "")
    monkeypatch.setattr("storelink.core.config.settings.api_url", TEST_API_URL)
    monkeypatch.setattr("storelink.core.config.settings.frontend_url", TEST_FRONTEND_URL)
    monkeypatch.setattr("storelink.core.config.settings.oauth_redirect_uri", "")
    monkeypatch.setattr("storelink.core.config.settings.webhook_base_url", "")
    monkeypatch.setattr("storelink.core.config.settings.register_business_webhooks", True)


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_redis() -> fakeredis.aioredis.FakeRedis:
    """Provide a fresh fakeredis instance per test."""
    return fakeredis.aioredis.FakeRedis(decode_responses=True)


@pytest.fixture
def registry() -> InMemoryStoreRegistry:
    return InMemoryStoreRegistry()


@pytest.fixture
def state_store() -> InMemoryStateStore:
    return InMemoryStateStore()


@pytest.fixture
def connection_factory(
    registry: InMemoryStoreRegistry,
) -> Callable[..., Any]:
    """Factory that builds a StoreConnection and stores it in ``registry``."""

    async def _create(
        shop_domain: str = SHOPIFY_TEST_SHOP,
        access_token: str = "shpat_existing_token",
        scopes: frozenset[str] = frozenset({"read_products", "read_orders"}),
        **overrides: Any,
    ) -> StoreConnection:
        connection = StoreConnection(
            shop_domain=shop_domain,
            access_token=access_token,
            granted_scopes=scopes,
            shop_metadata=overrides.pop(
                "shop_metadata", ShopMetadata.from_shop_payload(SAMPLE_SHOP_PAYLOAD)
            ),
            connected_at=overrides.pop("connected_at", datetime(2024, 1, 15, tzinfo=UTC)),
            **overrides,
        )
        await registry.put(connection)
        return connection

    return _create


# ---------------------------------------------------------------------------
# Capabilities
# ---------------------------------------------------------------------------


class RecordingCapabilities:
    """Capability double that records every submitted work item.

    Set ``fail_with`` to make every submission raise.
    """

    def __init__(self) -> None:
        self.data_requests: list[WorkItem] = []
        self.customer_erasures: list[WorkItem] = []
        self.shop_erasures: list[WorkItem] = []
        self.business_events: list[WorkItem] = []
        self.fail_with: Exception | None = None

    def _record(self, bucket: list[WorkItem], item: WorkItem) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        bucket.append(item)

    async def submit_data_request(self, item: WorkItem) -> None:
        self._record(self.data_requests, item)

    async def submit_customer_erasure(self, item: WorkItem) -> None:
        self._record(self.customer_erasures, item)

    async def submit_shop_erasure(self, item: WorkItem) -> None:
        self._record(self.shop_erasures, item)

    async def submit_business_event(self, item: WorkItem) -> None:
        self._record(self.business_events, item)


@pytest.fixture
def capabilities() -> RecordingCapabilities:
    return RecordingCapabilities()


# ---------------------------------------------------------------------------
# Auth mock
# ---------------------------------------------------------------------------


@pytest.fixture
def auth_user() -> dict[str, Any]:
    """Return the default authenticated test user payload (mimics decoded JWT)."""
    return {"sub": TEST_USER_ID, "email": TEST_USER_EMAIL}


# ---------------------------------------------------------------------------
# Clients
# ---------------------------------------------------------------------------


def _override_storage(
    fake_redis: fakeredis.aioredis.FakeRedis,
    registry: InMemoryStoreRegistry,
    state_store: InMemoryStateStore,
    capabilities: RecordingCapabilities,
) -> None:
    async def _override_redis() -> AsyncGenerator[fakeredis.aioredis.FakeRedis, None]:
        yield fake_redis

    app.dependency_overrides[get_redis] = _override_redis
    app.dependency_overrides[get_registry] = lambda: registry
    app.dependency_overrides[get_state_store] = lambda: state_store
    app.dependency_overrides[get_capabilities] = lambda: capabilities


@pytest_asyncio.fixture
async def client(
    fake_redis: fakeredis.aioredis.FakeRedis,
    registry: InMemoryStoreRegistry,
    state_store: InMemoryStateStore,
    capabilities: RecordingCapabilities,
    auth_user: dict[str, Any],
) -> AsyncGenerator[AsyncClient, None]:
    """Authenticated client with storage, Redis and capabilities overridden."""

    async def _override_user() -> dict[str, Any]:
        return auth_user

    _override_storage(fake_redis, registry, state_store, capabilities)
    app.dependency_overrides[get_current_user] = _override_user

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def unauthed_client(
    fake_redis: fakeredis.aioredis.FakeRedis,
    registry: InMemoryStoreRegistry,
    state_store: InMemoryStateStore,
    capabilities: RecordingCapabilities,
) -> AsyncGenerator[AsyncClient, None]:
    """Client with storage overridden but no auth bypass."""
    _override_storage(fake_redis, registry, state_store, capabilities)

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def plain_client() -> AsyncGenerator[AsyncClient, None]:
    """Minimal async test client with NO dependency overrides."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ---------------------------------------------------------------------------
# Signing helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def shopify_webhook_signature() -> Callable[[bytes], str]:
    """Generate a valid Shopify webhook HMAC signature for a given body.

    Usage:
        signature = shopify_webhook_signature(b'{"id": 123}')
        headers = {"X-Shopify-Hmac-Sha256": signature, ...}
    """

    def _sign(body: bytes) -> str:
        return base64.b64encode(
            hmac.new(
                SHOPIFY_TEST_CLIENT_SECRET.encode(),
                body,
                hashlib.sha256,
            ).digest()
        ).decode()

    return _sign


@pytest.fixture
def shopify_webhook_headers(
    shopify_webhook_signature: Callable[[bytes], str],
) -> Callable[..., dict[str, str]]:
    """Generate complete Shopify webhook headers for a given body.

    Usage:
        body = b'{"shop_domain": "demo-store.myshopify.com"}'
        headers = shopify_webhook_headers(body, topic="shop/redact")
    """

    def _headers(
        body: bytes,
        shop: str = SHOPIFY_TEST_HOST,
        topic: str | None = None,
        webhook_id: str | None = None,
    ) -> dict[str, str]:
        headers = {
            "X-Shopify-Hmac-Sha256": shopify_webhook_signature(body),
            "X-Shopify-Shop-Domain": shop,
            "Content-Type": "application/json",
        }
        if topic:
            headers["X-Shopify-Topic"] = topic
        if webhook_id:
            headers["X-Shopify-Webhook-Id"] = webhook_id
        return headers

    return _headers


@pytest.fixture
def shopify_oauth_hmac() -> Callable[[dict[str, str]], str]:
    """Generate a valid Shopify OAuth callback HMAC for query params.

    Shopify's OAuth callback includes an HMAC computed over sorted query params
    (excluding the hmac param itself).
    """

    def _compute(params: dict[str, str]) -> str:
        filtered = {k: v for k, v in sorted(params.items()) if k != "hmac"}
        return hmac.new(
            SHOPIFY_TEST_CLIENT_SECRET.encode(),
            urlencode(filtered).encode(),
            hashlib.sha256,
        ).hexdigest()

    return _compute


# ---------------------------------------------------------------------------
# Fake Shopify Admin API
# ---------------------------------------------------------------------------


class FakeShopifyAPI:
    """Stands in for the ``httpx.AsyncClient`` used by the Shopify integration.

    Responses are real ``httpx.Response`` objects so ``raise_for_status``
    behaves as in production. Set an entry in ``errors`` (keys ``token``,
    ``shop``, ``webhook``, ``revoke``, ``data``) to raise instead of responding.
    Listings come from ``resource_pages``: one list of items per page, linked
    through a ``page_info`` cursor in the ``Link`` header.
    """

    def __init__(self) -> None:
        self.token_status = 200
        self.token_payload: dict[str, Any] = {
            "access_token": "tok_x",
            "scope": "read_products",
        }
        self.shop_status = 200
        self.shop_payload: dict[str, Any] = {"shop": dict(SAMPLE_SHOP_PAYLOAD)}
        self.webhook_status: dict[str, int] = {}
        self.revoke_status = 200
        self.resource_pages: dict[str, list[list[dict[str, Any]]]] = {}
        self.resource_status = 200
        self.errors: dict[str, Exception] = {}
        self.requests: list[tuple[str, str, Any]] = []

    @staticmethod
    def _response(method: str, url: str, status_code: int, payload: Any = None) -> httpx.Response:
        return httpx.Response(
            status_code,
            json=payload if payload is not None else {},
            request=httpx.Request(method, url),
        )

    def _maybe_raise(self, key: str) -> None:
        if key in self.errors:
            raise self.errors[key]

    def webhook_topics(self) -> list[str]:
        return [
            body["webhook"]["topic"]
            for method, url, body in self.requests
            if method == "POST" and url.endswith("/webhooks.json")
        ]

    async def post(self, url: str, json: Any = None, **_kwargs: Any) -> httpx.Response:
        self.requests.append(("POST", url, json))
        if url.endswith("/admin/oauth/access_token"):
            self._maybe_raise("token")
            return self._response("POST", url, self.token_status, self.token_payload)
        self._maybe_raise("webhook")
        topic = json["webhook"]["topic"]
        status_code = self.webhook_status.get(topic, 201)
        return self._response("POST", url, status_code, {"webhook": {"id": 1, "topic": topic}})

    async def get(self, url: str, **_kwargs: Any) -> httpx.Response:
        self.requests.append(("GET", url, None))
        if url.split("?")[0].endswith("/shop.json"):
            self._maybe_raise("shop")
            return self._response("GET", url, self.shop_status, self.shop_payload)
        self._maybe_raise("data")
        return self._listing(url)

    def _listing(self, url: str) -> httpx.Response:
        path, _, query = url.partition("?")
        resource = path.rsplit("/", 1)[-1].removesuffix(".json")
        params = dict(p.split("=", 1) for p in query.split("&") if "=" in p)
        page = int(params.get("page_info", "0"))
        pages = self.resource_pages.get(resource, [[]])
        headers: dict[str, str] = {}
        if page + 1 < len(pages):
            headers["link"] = f'<{path}?limit=250&page_info={page + 1}>; rel="next"'
        return httpx.Response(
            self.resource_status,
            json={resource: pages[page]},
            headers=headers,
            request=httpx.Request("GET", url),
        )

    async def delete(self, url: str, **_kwargs: Any) -> httpx.Response:
        self.requests.append(("DELETE", url, None))
        self._maybe_raise("revoke")
        return self._response("DELETE", url, self.revoke_status)


@pytest.fixture
def shopify_api() -> Generator[FakeShopifyAPI, None, None]:
    """Patch httpx.AsyncClient for the Shopify integration with a FakeShopifyAPI.

    The patched class is exposed as ``api.client_class`` so tests can check
    the constructor arguments (e.g. the timeout).
    """
    api = FakeShopifyAPI()
    with patch("storelink.integrations.shopify.client.httpx.AsyncClient") as mock_class:
        mock_class.return_value.__aenter__.return_value = api
        api.client_class = mock_class  # type: ignore[attr-defined]
        yield api


@pytest.fixture
def mock_celery_compliance_tasks() -> Generator[dict[str, MagicMock], None, None]:
    """Mock the Celery tasks enqueued by the default capabilities."""
    with (
        patch("storelink.workers.tasks.compliance.process_customer_data_request") as data_request,
        patch("storelink.workers.tasks.compliance.process_customer_redact") as customer_redact,
        patch("storelink.workers.tasks.compliance.process_shop_redact") as shop_redact,
        patch("storelink.workers.tasks.compliance.process_business_event") as business_event,
    ):
        yield {
            "process_customer_data_request": data_request,
            "process_customer_redact": customer_redact,
            "process_shop_redact": shop_redact,
            "process_business_event": business_event,
        }
