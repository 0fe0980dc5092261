"""Headless-render fallback for client-side rendered recipe pages.

Uses Cloudflare's Browser Rendering API to render JavaScript-heavy pages
before parsing. Only called when the fast static parse finds nothing;
rendering is slow and metered, so it is never the first choice.
"""

import logging
from typing import Optional

import httpx

from src.config import Settings

logger = logging.getLogger(__name__)

CF_API_BASE = "https://api.cloudflare.com/client/v4"
RENDER_TIMEOUT_SECONDS = 45.0


class CloudflareRenderer:
    """
    Renders a URL in a remote headless browser and returns the HTML.

    ``render`` never raises: missing credentials, non-2xx answers, timeouts
    and malformed payloads all come back as None.
    """

    def __init__(
        self,
        account_id: str = "",
        api_token: str = "",
        timeout_seconds: float = RENDER_TIMEOUT_SECONDS,
    ):
        self.account_id = account_id
        self.api_token = api_token
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> "CloudflareRenderer":
        return cls(
            account_id=settings.cloudflare_account_id,
            api_token=settings.cloudflare_br_api_token,
            timeout_seconds=settings.render_timeout_seconds,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.account_id and self.api_token)

    @property
    def endpoint(self) -> str:
        return f"{CF_API_BASE}/accounts/{self.account_id}/browser-rendering/content"

    async def render(self, url: str) -> Optional[str]:
        """
        Fetch fully-rendered HTML for *url*.

        Returns:
            Rendered HTML, or None if unconfigured or the call failed
        """
        if not self.is_configured:
            return None

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, trust_env=False) as client:
                response = await client.post(
                    self.endpoint,
                    headers={"Authorization": f"Bearer {self.api_token}"},
                    json={
                        "url": url,
                        "rejectResourceTypes": ["image", "stylesheet"],
                        "gotoOptions": {"waitUntil": "networkidle2"},
                    },
                )

            if response.status_code >= 400:
                logger.error(
                    f"Browser rendering failed: {response.status_code} {response.reason_phrase}"
                )
                return None

            result = response.json().get("result")
            return result if isinstance(result, str) else None

        except httpx.TimeoutException:
            logger.warning(f"Browser rendering timed out after {self.timeout_seconds}s")
            return None
        except Exception as e:
            logger.error(f"Browser rendering error: {type(e).__name__}: {e}")
            return None
