"""Health check endpoints."""

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from scheduling_service.dependencies import get_health_service
from scheduling_service.services.health_service import HealthService
from scheduling_service.utils.logging import get_logger

logger = get_logger("api.health")

router = APIRouter(prefix="/health", tags=["health"])


@router.get("", status_code=status.HTTP_200_OK)
async def health_check(health: HealthService = Depends(get_health_service)):
    """
    Health check endpoint.

    Reports the adapter, circuit breaker and retry configuration. The status
    is ``unhealthy`` if the adapter is down and ``degraded`` while the circuit
    breaker is not CLOSED.
    """
    logger.debug("Health check requested")
    return await health.get_health()


@router.get("/live", status_code=status.HTTP_200_OK)
async def liveness_check():
    """Liveness probe: the process is up."""
    return {"alive": True}


@router.get("/ready", status_code=status.HTTP_200_OK)
async def readiness_check(health: HealthService = Depends(get_health_service)):
    """Readiness probe: 503 while the circuit breaker is OPEN."""
    ready = health.is_ready()
    if not ready:
        logger.warning("Readiness check failed: circuit breaker is OPEN")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"ready": False},
        )
    return {"ready": True}
