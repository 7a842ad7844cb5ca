"""
Health Routes - System Health Check

Provides health check endpoint for monitoring server status.
"""

from fastapi import APIRouter
import logging
from routes import get_deps

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["health"])


@router.api_route("/health", methods=["GET", "HEAD"])
async def health_check():
    """
    Health check endpoint

    Returns server status, version, and which shutter mode is active.
    Supports both GET and HEAD methods for Docker health checks.
    """
    deps = get_deps()

    shutter_status = "idle"
    if deps.shutter_service is None:
        shutter_status = "uninitialized"
    elif deps.shutter_service.is_active:
        shutter_status = deps.shutter_service.state.active_mode.value

    return {
        "status": "ok",
        "version": "0.1.0",
        "message": "Shutter is running",
        "shutter_status": shutter_status
    }
