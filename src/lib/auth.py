"""Caller authentication against Supabase Auth.

The scrape pipeline only needs an opaque caller id; verifying the session
is delegated to Supabase (``GET /auth/v1/user``). Any failure resolves to
"no caller", which the route turns into a 401.
"""

import logging
from typing import Optional, Protocol

import httpx
from fastapi import Request

from src.config import Settings

logger = logging.getLogger(__name__)


class Authenticator(Protocol):
    async def authenticate(self, request: Request) -> Optional[str]:
        """Return the caller id for *request*, or None."""
        ...


def bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class SupabaseAuthenticator:
    """Resolves a bearer access token to a Supabase user id."""

    def __init__(self, supabase_url: str, anon_key: str, timeout_seconds: float = 10.0):
        self.supabase_url = supabase_url.rstrip("/")
        self.anon_key = anon_key
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> "SupabaseAuthenticator":
        return cls(
            supabase_url=settings.supabase_url,
            anon_key=settings.supabase_anon_key,
            timeout_seconds=settings.auth_timeout_seconds,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.supabase_url and self.anon_key)

    async def authenticate(self, request: Request) -> Optional[str]:
        token = bearer_token(request)
        if not token or not self.is_configured:
            return None

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.get(
                    f"{self.supabase_url}/auth/v1/user",
                    headers={
                        "apikey": self.anon_key,
                        "Authorization": f"Bearer {token}",
                    },
                )
        except httpx.HTTPError as e:
            logger.warning(f"Supabase auth request failed: {type(e).__name__}: {e}")
            return None

        if response.status_code != 200:
            return None

        try:
            data = response.json()
        except ValueError:
            logger.warning("Supabase auth returned a non-JSON body")
            return None
        user_id = data.get("id") if isinstance(data, dict) else None
        return user_id if isinstance(user_id, str) and user_id else None
