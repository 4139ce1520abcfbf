"""
Health check endpoints.
"""

from typing import Any

from fastapi import APIRouter

from codeconnect.api.deps import container
from codeconnect.core.config import settings
from codeconnect.core.logging import get_logger
from codeconnect.domain.base import utcnow

logger = get_logger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check() -> dict[str, Any]:
    """
    Basic health check endpoint.
    Returns application status.
    """
    return {
        "status": "healthy",
        "app": settings.app_name,
        "environment": settings.app_env,
        "timestamp": utcnow().isoformat(),
    }


@router.get("/health/ready")
async def readiness_check() -> dict[str, Any]:
    """
    Readiness check endpoint.
    Pings MongoDB (when enabled) and the chat backend.
    """
    database = container.database
    checks = {
        "app": True,
        "database": await database.ping() if database is not None else True,
        "chatBackend": await container.backend_client.health_check(),
    }

    all_healthy = all(checks.values())
    if not all_healthy:
        logger.warning("Readiness check failed", checks=checks)

    return {
        "status": "ready" if all_healthy else "not_ready",
        "checks": checks,
        "timestamp": utcnow().isoformat(),
    }


@router.get("/health/live")
async def liveness_check() -> dict[str, str]:
    """
    Liveness check endpoint.
    Simple check that the application is running.
    """
    return {"status": "alive"}
