"""Shopify OAuth endpoints."""

import logging
from urllib.parse import urlencode

from fastapi import APIRouter, HTTPException, Query, Request, status
from fastapi.responses import RedirectResponse

from storelink.core.config import settings
from storelink.core.deps import AuthorizationDep, ConnectionDep, CurrentUser
from storelink.core.errors import StoreLinkError
from storelink.core.rate_limit import OAUTH_RATE_LIMIT, limiter
from storelink.integrations.shopify.oauth import verify_hmac
from storelink.schemas.common import ErrorResponse
from storelink.schemas.shopify import AuthorizeResponse, ConnectRequest, ConnectResponse

logger = logging.getLogger(__name__)

router = APIRouter()

ERROR_RESPONSES: dict[int | str, dict[str, object]] = {
    400: {"model": ErrorResponse},
    502: {"model": ErrorResponse},
}


def _dashboard_redirect(**params: str) -> RedirectResponse:
    return RedirectResponse(
        f"{settings.frontend_url}/dashboard/shopify/callback?{urlencode(params)}"
    )


@router.get(
    "/authorize",
    response_model=AuthorizeResponse,
    responses=ERROR_RESPONSES,
)
@limiter.limit(OAUTH_RATE_LIMIT)
async def authorize(
    request: Request,  # noqa: ARG001  required by slowapi
    _user: CurrentUser,
    authorization: AuthorizationDep,
    shop: str = Query(..., description="Shop name or myshopify.com domain"),
    redirect: bool = Query(False, description="Redirect to the provider instead of returning JSON"),
) -> AuthorizeResponse | RedirectResponse:
    """Start an authorization attempt for ``shop``."""
    started = await authorization.begin(shop)
    if redirect:
        return RedirectResponse(
            started.authorize_url, status_code=status.HTTP_307_TEMPORARY_REDIRECT
        )
    return AuthorizeResponse(
        authorize_url=started.authorize_url,
        state=started.state,
        shop_domain=started.shop_domain,
    )


@router.get("/callback")
@limiter.limit(OAUTH_RATE_LIMIT)
async def callback(
    request: Request,
    service: ConnectionDep,
    code: str = Query(...),
    shop: str = Query(...),
    state: str = Query(...),
) -> RedirectResponse:
    """Handle the provider redirecting the merchant back after consent.

    The query-string HMAC is checked before the state is consumed.
    """
    if not verify_hmac(dict(request.query_params), settings.shopify_client_secret):
        logger.warning("OAuth callback for %s failed HMAC verification", shop)
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Invalid HMAC signature")

    try:
        result = await service.connect(shop, code, state)
    except StoreLinkError as e:
        logger.warning("OAuth callback for %s failed: %s", shop, e.kind.value)
        return _dashboard_redirect(error=e.kind.value)

    return _dashboard_redirect(
        connected="true",
        shop=result.connection.shop_domain,
    )


@router.post(
    "/oauth/token",
    response_model=ConnectResponse,
    responses=ERROR_RESPONSES,
)
@limiter.limit(OAUTH_RATE_LIMIT)
async def exchange_token(
    request: Request,  # noqa: ARG001  required by slowapi
    body: ConnectRequest,
    service: ConnectionDep,
) -> ConnectResponse:
    """Exchange an authorization code relayed by the dashboard.

    Errors are mapped to their status codes by the application's
    ``StoreLinkError`` handler.
    """
    result = await service.connect(body.shop, body.code, body.state)
    return ConnectResponse.from_connection(result.connection)
