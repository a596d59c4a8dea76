# backend/advisory_radar/api/v1/routes_health.py
from fastapi import APIRouter

from advisory_radar.core.config import settings

router = APIRouter()


@router.get("/health", tags=["health"])
async def health_check() -> dict:
    """
    Simple liveness / readiness check.
    """
    return {
        "status": "ok",
        "service": settings.APP_NAME,
        "environment": settings.ENVIRONMENT,
    }
