"""Rate limiting for the public OAuth entry points, using slowapi."""

from slowapi import Limiter
from starlette.requests import Request

# Applied to authorize/callback/token routes
OAUTH_RATE_LIMIT = "30/minute"


def _get_real_client_ip(request: Request) -> str:
    """Client IP, honouring the first hop added by a reverse proxy."""
    forwarded = request.headers.get("X-Forwarded-For", "").split(",")[0].strip()
    return forwarded or (request.client.host if request.client else "127.0.0.1")


limiter = Limiter(key_func=_get_real_client_ip)
