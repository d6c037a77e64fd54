"""Shopify OAuth helpers: shop validation, authorize URL, HMAC and token exchange."""

import hashlib
import hmac
import logging
import re
import secrets
from dataclasses import dataclass
from urllib.parse import urlencode

import httpx

from storelink.core.config import settings
from storelink.core.errors import AuthCodeExchangeFailed, InvalidShopDomain
from storelink.models.connection import parse_scopes, provider_host

logger = logging.getLogger(__name__)

# 3-100 chars, letters/digits/hyphens, no leading or trailing hyphen
SHOP_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9-]{1,98}[a-z0-9]$")
SHOP_HOST_SUFFIX = ".myshopify.com"


@dataclass(frozen=True)
class TokenGrant:
    """Result of a successful authorization code exchange."""

    access_token: str
    scopes: frozenset[str]


def normalize_shop_domain(shop: str | None) -> str:
    """Return the canonical registry key for a shop.

    Accepts ``demo-store`` or ``demo-store.myshopify.com`` (any case, with
    surrounding whitespace). Anything carrying a scheme, a path, a port or
    characters outside ``[a-z0-9-]`` is rejected.

    Raises:
        InvalidShopDomain: If the input is not a valid shop identifier.
    """
    if not shop:
        raise InvalidShopDomain()

    candidate = shop.strip().lower()
    if candidate.endswith(SHOP_HOST_SUFFIX):
        candidate = candidate[: -len(SHOP_HOST_SUFFIX)]

    if not SHOP_NAME_RE.fullmatch(candidate):
        raise InvalidShopDomain()
    return candidate


def generate_nonce() -> str:
    """Generate an unpredictable CSRF state token (256 bits)."""
    return secrets.token_urlsafe(32)


def verify_hmac(query_params: dict[str, str], secret: str) -> bool:
    """Verify Shopify OAuth callback HMAC signature.

    Args:
        query_params: All query parameters from the callback URL.
        secret: The Shopify client secret.

    Returns:
        True if HMAC is valid.
    """
    received_hmac = query_params.get("hmac", "")
    if not received_hmac:
        return False

    # Build message from sorted params excluding 'hmac'
    params = {k: v for k, v in sorted(query_params.items()) if k != "hmac"}
    message = urlencode(params)

    computed = hmac.new(
        secret.encode("utf-8"),
        message.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()

    return hmac.compare_digest(computed, received_hmac)


def build_auth_url(shop_domain: str, nonce: str) -> str:
    """Build the Shopify OAuth authorization URL.

    Args:
        shop_domain: Canonical shop key (e.g. ``demo-store``).
        nonce: Random state parameter for CSRF protection.

    Returns:
        The full authorization URL to redirect the merchant to.
    """
    params = urlencode({
        "client_id": settings.shopify_client_id,
        "scope": settings.scope_param,
        "redirect_uri": settings.callback_url,
        "state": nonce,
    })
    return f"https://{provider_host(shop_domain)}/admin/oauth/authorize?{params}"


async def exchange_code_for_token(shop_domain: str, code: str) -> TokenGrant:
    """Exchange the OAuth authorization code for a permanent access token.

    Codes are single-use, so this is attempted exactly once.

    Raises:
        AuthCodeExchangeFailed: On any HTTP error, timeout or malformed response.
    """
    url = f"https://{provider_host(shop_domain)}/admin/oauth/access_token"
    try:
        async with httpx.AsyncClient(timeout=settings.provider_timeout_seconds) as client:
            response = await client.post(url, json={
                "client_id": settings.shopify_client_id,
                "client_secret": settings.shopify_client_secret,
                "code": code,
            })
            response.raise_for_status()
            data = response.json()
    except httpx.HTTPStatusError as e:
        logger.warning(
            "Token exchange rejected for %s: HTTP %s", shop_domain, e.response.status_code
        )
        raise AuthCodeExchangeFailed() from e
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("Token exchange failed for %s: %s", shop_domain, type(e).__name__)
        raise AuthCodeExchangeFailed() from e

    access_token = data.get("access_token") if isinstance(data, dict) else None
    if not access_token:
        logger.warning("Token exchange for %s returned no access token", shop_domain)
        raise AuthCodeExchangeFailed()

    return TokenGrant(access_token=access_token, scopes=parse_scopes(data.get("scope")))
