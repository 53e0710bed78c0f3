"""Health check endpoint, public and unauthenticated."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Request

from src.dependencies import AppSettings

router = APIRouter(tags=["system"])
logger = logging.getLogger("amach.health")


@router.get("/health")
async def health_check(request: Request, settings: AppSettings) -> dict:
    """Liveness check. Returns 200 if the API process is up.

    Also reports whether the sample source can currently serve data.
    """
    source = getattr(request.app.state, "sample_source", None)
    source_ok = False
    if source is not None:
        try:
            source_ok = source.is_available()
        except OSError as exc:
            logger.warning("Health check could not reach the source: %s", exc)

    return {
        "status": "healthy" if source_ok else "degraded",
        "version": settings.app_version,
        "environment": settings.environment,
        "source": "available" if source_ok else "unavailable",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
