"""Recipe scraper: safe fetch, capped read, and two-stage extraction.

Implements:
- One overall deadline covering DNS, connect, every redirect hop and the
  body read
- Upstream status and Content-Type checks before the body is read
- Static extraction first, headless-render fallback second
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

import httpx

from src.config import Settings
from .body_reader import decode_body, read_capped
from .content_type_detector import is_html_content_type
from .errors import (
    ExtractionFailedError,
    FetchTimeoutError,
    NotHtmlError,
    UpstreamError,
)
from .render_fallback import CloudflareRenderer
from .safe_fetch import SafeFetcher
from .ssrf_guard import HostGuard
from .structured_data import ExtractedRecipe, extract

logger = logging.getLogger(__name__)

MAX_RESPONSE_BYTES = 5 * 1024 * 1024
FETCH_TIMEOUT_SECONDS = 15.0

RenderFallback = Callable[[str], Awaitable[Optional[str]]]
Extractor = Callable[[str, str], Optional[ExtractedRecipe]]


async def _no_render(url: str) -> Optional[str]:
    return None


async def extract_recipe(
    html: str,
    source_url: str,
    render_fallback: RenderFallback,
    extractor: Extractor = extract,
) -> Optional[ExtractedRecipe]:
    """
    Extract a recipe, falling back to rendered HTML once.

    The fallback is only invoked when the static HTML yields nothing. A
    fallback that returns None or raises degrades to "not found"; it is
    never surfaced as an error.
    """
    # HTML parsing is CPU-bound; keep it off the event loop
    recipe = await asyncio.to_thread(extractor, html, source_url)
    if recipe is not None:
        return recipe

    try:
        rendered = await render_fallback(source_url)
    except Exception as e:
        logger.warning(f"Render fallback failed for {source_url}: {type(e).__name__}: {e}")
        return None

    if not rendered:
        return None

    logger.info(f"Retrying extraction on rendered HTML for {source_url}")
    return await asyncio.to_thread(extractor, rendered, source_url)


class RecipeScraper:
    """
    Fetches a caller-supplied URL safely and extracts a recipe from it.

    Usage:
        scraper = RecipeScraper.from_settings(get_settings())
        recipe = await scraper.scrape("https://example.com/lasagne")

    Every failure is raised as a ScrapeError subclass.
    """

    def __init__(
        self,
        fetcher: Optional[SafeFetcher] = None,
        render_fallback: Optional[RenderFallback] = None,
        extractor: Extractor = extract,
        max_response_bytes: int = MAX_RESPONSE_BYTES,
        timeout_seconds: float = FETCH_TIMEOUT_SECONDS,
    ):
        self.fetcher = fetcher or SafeFetcher(timeout_seconds=timeout_seconds)
        self.render_fallback = render_fallback or _no_render
        self.extractor = extractor
        self.max_response_bytes = max_response_bytes
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        guard: Optional[HostGuard] = None,
        renderer: Optional[CloudflareRenderer] = None,
    ) -> "RecipeScraper":
        fetcher = SafeFetcher(
            guard=guard,
            max_redirects=settings.max_redirects,
            user_agent=settings.user_agent,
            timeout_seconds=settings.fetch_timeout_seconds,
        )
        renderer = renderer or CloudflareRenderer.from_settings(settings)
        return cls(
            fetcher=fetcher,
            render_fallback=renderer.render,
            max_response_bytes=settings.max_response_bytes,
            timeout_seconds=settings.fetch_timeout_seconds,
        )

    async def _fetch_html(self, url: str) -> str:
        async with self.fetcher.open(url) as response:
            if not response.is_success:
                raise UpstreamError(response.status_code, reason=f"upstream status {response.status_code}")

            content_type = response.headers.get("content-type", "")
            if not is_html_content_type(content_type):
                raise NotHtmlError(content_type)

            body = await read_capped(response, self.max_response_bytes)
            return decode_body(response, body)

    async def fetch_html(self, url: str) -> str:
        """
        Fetch *url* and return its HTML, all within one deadline.

        Raises:
            InvalidInputError, SSRFBlockedError, UpstreamError, NotHtmlError,
            PayloadTooLargeError, FetchTimeoutError
        """
        started = time.monotonic()
        try:
            html = await asyncio.wait_for(self._fetch_html(url), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            raise FetchTimeoutError(reason=f"deadline of {self.timeout_seconds}s exceeded")
        except httpx.TimeoutException as e:
            raise FetchTimeoutError(reason=f"{type(e).__name__}: {e}")
        except httpx.HTTPError as e:
            raise UpstreamError(None, reason=f"{type(e).__name__}: {e}")

        logger.debug(
            "Fetched HTML",
            extra={"duration_ms": int((time.monotonic() - started) * 1000), "bytes": len(html)},
        )
        return html

    async def scrape(self, url: str) -> ExtractedRecipe:
        """
        Fetch *url* and extract a recipe from it.

        Raises:
            ExtractionFailedError: Neither static nor rendered HTML had a recipe
            (plus everything fetch_html raises)
        """
        html = await self.fetch_html(url)
        recipe = await extract_recipe(html, url, self.render_fallback, self.extractor)
        if recipe is None:
            raise ExtractionFailedError(reason=f"no recipe markup on {url}")
        return recipe
