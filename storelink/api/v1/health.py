"""Health check endpoints."""

from fastapi import APIRouter, HTTPException, status

from storelink.core.config import settings
from storelink.core.deps import RedisDep, RegistryDep
from storelink.schemas.common import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(r: RedisDep, registry: RegistryDep) -> HealthResponse:
    """
    Health check endpoint.

    Checks Redis connectivity and reports the number of connected stores.
    """
    checks: dict[str, str] = {}
    healthy = True
    connected_stores: int | None = None

    try:
        await r.ping()
        checks["redis"] = "healthy"
    except Exception as e:
        healthy = False
        checks["redis"] = f"unhealthy: {type(e).__name__}"

    try:
        connected_stores = await registry.count()
        checks["registry"] = "healthy"
    except Exception as e:
        healthy = False
        checks["registry"] = f"unhealthy: {type(e).__name__}"

    return HealthResponse(
        status="healthy" if healthy else "unhealthy",
        version=settings.version,
        environment=settings.environment,
        checks=checks,
        connected_stores=connected_stores,
    )


@router.get("/health/live")
async def liveness_check() -> dict[str, str]:
    """
    Liveness probe for Kubernetes/container orchestration.

    Simple check that the service is running.
    """
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_check(r: RedisDep) -> dict[str, str]:
    """Readiness probe: Redis must answer before traffic is accepted."""
    try:
        await r.ping()
    except Exception:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, "Redis unavailable")
    return {"status": "ready"}
