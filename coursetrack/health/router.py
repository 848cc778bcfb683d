"""Health check endpoints."""

from fastapi import APIRouter, status
from fastapi.responses import ORJSONResponse

from coursetrack.config import get_settings
from coursetrack.core.database import AsyncCassandraConnection


router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live")
async def liveness() -> dict[str, str]:
    """Liveness probe - checks if the application is running."""
    return {"status": "alive"}


@router.get("/ready")
async def readiness() -> ORJSONResponse:
    """Readiness probe - ready once the Cassandra session is up."""
    settings = get_settings()
    connected = AsyncCassandraConnection.is_connected()
    return ORJSONResponse(
        status_code=(
            status.HTTP_200_OK if connected else status.HTTP_503_SERVICE_UNAVAILABLE
        ),
        content={
            "status": "ready" if connected else "not_ready",
            "environment": settings.environment,
            "database": connected,
        },
    )


@router.get("")
async def health() -> dict[str, str]:
    """General health check endpoint."""
    settings = get_settings()
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }
