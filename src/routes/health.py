"""Health check endpoints."""

from fastapi import APIRouter, Request
from datetime import datetime, timezone
import logging

router = APIRouter()
logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/")
async def health_check():
    """Basic health check - always returns ok if service is running."""
    return {
        "status": "ok",
        "timestamp": _now(),
        "service": "scrape-worker",
        "version": "0.1.0"
    }


@router.get("/ready")
async def readiness_check(request: Request):
    """
    Readiness check for the scrape pipeline's collaborators.

    Auth is required to serve any scrape, so a missing auth configuration
    degrades the service. The render fallback is optional.
    """
    state = request.app.state
    checks = {}
    overall_status = "ok"

    if getattr(state.authenticator, "is_configured", True):
        checks["auth"] = {"status": "ok"}
    else:
        checks["auth"] = {"status": "not_configured"}
        overall_status = "degraded"

    if getattr(state.renderer, "is_configured", False):
        checks["render_fallback"] = {"status": "ok"}
    else:
        checks["render_fallback"] = {"status": "not_configured"}

    checks["rate_limiter"] = {
        "status": "ok",
        "tracked_callers": state.rate_limiter.tracked_callers,
    }

    return {
        "status": overall_status,
        "timestamp": _now(),
        "checks": checks,
    }
