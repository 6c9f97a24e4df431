"""Health check endpoints.

Provides:
- Liveness and database check (/health)
- Detailed service status (/health/status)
"""

import platform
import sys
import time
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
import logging

from app.config import Settings
from app.dependencies import get_database, get_settings_from_app
from db.database import Database

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])

_start_time = time.monotonic()
_start_datetime = datetime.now(timezone.utc).isoformat()


@router.get("", response_model=dict[str, Any])
async def health_check(
    database: Database = Depends(get_database),
    settings: Settings = Depends(get_settings_from_app),
) -> dict[str, Any]:
    """
    Health check with dependency verification.
    Returns 503 if the database cannot be reached.
    """
    db_status = "ok" if await database.ping() else "unavailable"
    if db_status == "unavailable":
        logger.error("Health check failed: database unavailable")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"status": "unhealthy", "database": db_status},
        )
    return {"status": "healthy", "version": settings.APP_VERSION, "database": db_status}


@router.get("/status", response_model=dict[str, Any])
async def system_status(settings: Settings = Depends(get_settings_from_app)) -> dict[str, Any]:
    """
    Detailed service status including uptime and versions.
    Intended for admin dashboards and monitoring.
    """
    uptime_seconds = time.monotonic() - _start_time
    hours, remainder = divmod(int(uptime_seconds), 3600)
    minutes, seconds = divmod(remainder, 60)

    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "started_at": _start_datetime,
        "uptime": f"{hours}h {minutes}m {seconds}s",
        "uptime_seconds": round(uptime_seconds, 1),
        "python": {
            "version": sys.version,
            "platform": platform.platform(),
        },
    }
