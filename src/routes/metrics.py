"""Metrics endpoint for monitoring and observability."""

from datetime import datetime, timezone
import logging

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse

router = APIRouter(prefix="/metrics", tags=["metrics"])
logger = logging.getLogger(__name__)


@router.get("")
async def get_metrics(request: Request):
    """
    Get current metrics for monitoring.

    Returns:
        Outcome counters since start and the rate limiter's tracked callers
    """
    metrics = request.app.state.metrics
    limiter = request.app.state.rate_limiter
    outcomes = metrics.snapshot()

    return {
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "since": metrics.started_at.isoformat().replace("+00:00", "Z"),
        "scrapes": {
            "total": sum(outcomes.values()),
            "by_outcome": outcomes,
        },
        "rate_limiter": {
            "tracked_callers": limiter.tracked_callers,
            "max_per_window": limiter.max_requests,
            "window_seconds": limiter.window_seconds,
        },
    }


@router.get("/prometheus", response_class=PlainTextResponse)
async def get_prometheus_metrics(request: Request):
    """
    Get metrics in Prometheus exposition format.

    Returns:
        Prometheus-compatible text format metrics
    """
    outcomes = request.app.state.metrics.snapshot()
    limiter = request.app.state.rate_limiter

    lines = [
        "# HELP scrape_requests_total Scrape requests by outcome",
        "# TYPE scrape_requests_total counter",
    ]
    for outcome, count in outcomes.items():
        lines.append(f'scrape_requests_total{{outcome="{outcome}"}} {count}')
    lines += [
        "",
        "# HELP scrape_rate_limiter_tracked_callers Callers with a non-empty window",
        "# TYPE scrape_rate_limiter_tracked_callers gauge",
        f"scrape_rate_limiter_tracked_callers {limiter.tracked_callers}",
        "",
    ]
    return "\n".join(lines)
