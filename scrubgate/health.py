"""Health and readiness endpoints."""

from __future__ import annotations

import httpx
import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from scrubgate.config.loader import get_settings

logger = structlog.get_logger()
router = APIRouter()

_UPSTREAM_PROBE_TIMEOUT = 5.0


async def _check_upstream() -> bool:
    """HEAD the upstream; anything below 500 counts as reachable."""
    upstream_url = get_settings().upstream_url
    try:
        async with httpx.AsyncClient(timeout=_UPSTREAM_PROBE_TIMEOUT) as client:
            resp = await client.head(upstream_url)
    except httpx.HTTPError as exc:
        logger.warning("upstream_health_check_failed", upstream=upstream_url, error=str(exc))
        return False
    return resp.status_code < 500


@router.get("/health")
async def health(request: Request):
    """Proxy liveness, sanitizer mode and upstream reachability."""
    upstream_ok = await _check_upstream()
    return {
        "status": "healthy" if upstream_ok else "degraded",
        "proxy": "up",
        "sanitizer": getattr(request.app.state, "sanitizer_mode", "unconfigured"),
        "upstream": "up" if upstream_ok else "down",
    }


@router.get("/ready")
async def ready():
    """200 only once the upstream answers."""
    if not await _check_upstream():
        return JSONResponse(status_code=503, content={"status": "not_ready", "upstream": "down"})
    return {"status": "ready"}
