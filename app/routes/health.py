"""
Health check endpoints.
Used for monitoring, deployment readiness checks, and basic connectivity tests.
"""

import logging

from fastapi import APIRouter, HTTPException
from app.config.firebase import get_store
from app.core.settings import settings
from app.models.base import utc_now

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("")
async def health_check():
    """
    Basic health check endpoint.
    Returns 200 if service is running.
    """
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "timestamp": utc_now().isoformat()
    }


@router.get("/db")
async def database_health():
    """
    Record store connectivity check.
    """
    try:
        store = get_store()
        connected = store.ping()
    except Exception as e:
        logger.error(f"Record store health check failed: {e}", exc_info=True)
        raise HTTPException(status_code=503, detail="Database connection failed")

    if not connected:
        raise HTTPException(status_code=503, detail="Database connection failed")

    return {
        "status": "healthy",
        "database": "memory" if settings.USE_MOCK_DB else "firestore",
        "connected": True,
        "timestamp": utc_now().isoformat()
    }
