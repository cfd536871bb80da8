"""
Health check endpoints for monitoring and orchestration.
Provides liveness and readiness probes.
"""
from datetime import datetime, timezone

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from backup_operator.config.settings import settings

router = APIRouter()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/")
async def health_check():
    """
    Basic health check endpoint.
    Returns current status and version.
    """
    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
        "timestamp": _now(),
    }


@router.get("/live")
async def liveness():
    """Kubernetes liveness probe."""
    return {"status": "alive", "timestamp": _now()}


@router.get("/ready")
async def readiness(request: Request):
    """
    Kubernetes readiness probe.
    Ready once every controller has listed its resources at least once.
    """
    controllers = getattr(request.app.state, "controllers", [])
    synced = {controller.name: controller.synced for controller in controllers}

    if not controllers or not all(synced.values()):
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "not_ready",
                "controllers": synced,
                "timestamp": _now(),
            },
        )

    return {
        "status": "ready",
        "controllers": synced,
        "timestamp": _now(),
    }
