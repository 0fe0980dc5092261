"""Scrape endpoint: fetch a caller-supplied URL and extract a recipe.

Security hardening, in request order:
- auth required (Supabase session)
- per-caller sliding-window rate limit (10 req/min)
- input validation: JSON body, http(s) URL, standard port
- SSRF protection: DNS guard on every hop, manual redirects, pinned DNS
- upstream status and Content-Type checks
- 5 MB streamed body cap
"""

import logging
import uuid

from fastapi import APIRouter, Depends, Request

from src.crawlers.errors import (
    InvalidInputError,
    RateLimitedError,
    ScrapeError,
    SSRFBlockedError,
    UnauthenticatedError,
    UnexpectedScrapeError,
)
from src.crawlers.ssrf_guard import validate_target_url
from src.lib.json_logger import StructuredLoggerAdapter, request_logger
from src.lib.pii_redactor import PIIRedactor
from src.monitoring.scrape_metrics import SUCCESS

router = APIRouter()
logger = logging.getLogger(__name__)


async def require_caller(request: Request) -> str:
    """Resolve the authenticated caller id or reject with 401."""
    try:
        caller_id = await request.app.state.authenticator.authenticate(request)
    except Exception:
        logger.exception("Authenticator failed")
        raise UnexpectedScrapeError()

    if not caller_id:
        raise UnauthenticatedError()
    return caller_id


async def _read_target_url(request: Request) -> str:
    try:
        body = await request.json()
    except ValueError:
        raise InvalidInputError("Invalid request body.", reason="unparseable JSON body")

    url = body.get("url") if isinstance(body, dict) else None
    if not url or not isinstance(url, str):
        raise InvalidInputError("URL is required", reason="missing or non-string url")
    return url


async def _scrape(request: Request, caller_id: str, log: StructuredLoggerAdapter) -> dict:
    state = request.app.state

    if not state.rate_limiter.admit(caller_id):
        raise RateLimitedError(state.rate_limiter.retry_after_seconds)

    url = await _read_target_url(request)
    validate_target_url(url)

    log.info(f"Scraping {PIIRedactor.redact_url(url)}")
    recipe = await state.scraper.scrape(url)
    return recipe.to_dict()


@router.post("")
async def scrape_recipe(request: Request, caller_id: str = Depends(require_caller)):
    """
    Fetch the page at ``{"url": ...}`` and return the recipe found on it.

    Errors come back as ``{"error": message}`` with the status of the
    failure (see ScrapeError subclasses).
    """
    log = request_logger(uuid.uuid4().hex[:12], caller_id)

    try:
        payload = await _scrape(request, caller_id, log)
    except ScrapeError as e:
        level = logging.WARNING if isinstance(e, SSRFBlockedError) else logging.INFO
        log.log(
            level,
            f"Scrape rejected: {PIIRedactor.redact(e.reason)}",
            extra={"outcome": e.kind.value, "status": e.status_code},
        )
        raise
    except Exception:
        log.exception("Scrape error")
        raise UnexpectedScrapeError()

    request.app.state.metrics.record(SUCCESS)
    log.info("Scrape succeeded", extra={"outcome": SUCCESS, "status": 200})
    return payload
