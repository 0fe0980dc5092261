"""SSRF-safe HTTP fetching with manually followed redirects.

httpx's own redirect following is disabled: it offers no hook to validate
an intermediate host before connecting to it. Instead every hop is run
through the HostGuard, and the transport is given a network backend that
only connects to the addresses the guard validated for that host, so DNS
cannot change between the check and the connect.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable, Optional
from urllib.parse import ParseResult, urljoin, urlparse, urlunparse

import httpcore
import httpx

from .errors import RedirectLimitExceeded, SSRFBlockedError
from .ssrf_guard import (
    ALLOWED_SCHEMES,
    HostGuard,
    ResolvedHost,
    has_standard_port,
    validate_target_url,
)

logger = logging.getLogger(__name__)

MAX_REDIRECTS = 5
DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; CookSnap/1.0; +https://cooksnap.app)"
ACCEPT_HTML = "text/html, application/xhtml+xml"


def _host_key(host: str) -> str:
    return host.strip().strip('[]').rstrip('.').lower()


class PinnedNetworkBackend(httpcore.AsyncNetworkBackend):
    """
    Network backend that dials only guard-validated addresses.

    ``pins`` maps hostnames to the ResolvedHost the fetcher validated for
    the current hop. A host the transport wants to dial that is not pinned
    (e.g. the URL parsers disagree about the host) is guarded on the spot.
    """

    def __init__(self, guard: HostGuard, pins: dict[str, ResolvedHost]):
        self._inner = httpcore.AnyIOBackend()
        self._guard = guard
        self._pins = pins

    async def connect_tcp(
        self,
        host: str,
        port: int,
        timeout: Optional[float] = None,
        local_address: Optional[str] = None,
        socket_options: Optional[Iterable] = None,
    ) -> httpcore.AsyncNetworkStream:
        resolved = self._pins.get(_host_key(host))
        if resolved is None:
            resolved = await self._guard.guard(host)
            self._pins[resolved.hostname] = resolved

        last_error: Optional[Exception] = None
        for address in resolved.addresses:
            try:
                return await self._inner.connect_tcp(
                    str(address),
                    port,
                    timeout=timeout,
                    local_address=local_address,
                    socket_options=socket_options,
                )
            except (httpcore.ConnectError, httpcore.ConnectTimeout) as e:
                last_error = e
        if last_error is not None:
            raise last_error
        raise httpcore.ConnectError(f"No addresses to connect to for {host}")

    async def connect_unix_socket(
        self,
        path: str,
        timeout: Optional[float] = None,
        socket_options: Optional[Iterable] = None,
    ) -> httpcore.AsyncNetworkStream:
        raise httpcore.ConnectError("Unix sockets not supported")

    async def sleep(self, seconds: float) -> None:
        await self._inner.sleep(seconds)


def _dialable_url(parsed: ParseResult) -> str:
    """Rebuild *parsed* without userinfo or fragment.

    Credentials embedded in a URL are never forwarded to the target.
    """
    netloc = parsed.netloc.rpartition('@')[2]
    return urlunparse(parsed._replace(netloc=netloc, fragment=''))


def _is_redirect(response: httpx.Response) -> bool:
    return 300 <= response.status_code < 400 and bool(response.headers.get("location"))


class SafeFetcher:
    """
    Fetches a URL, re-validating the host of every redirect hop.

    Usage:
        fetcher = SafeFetcher()
        async with fetcher.open("https://example.com/recipe") as response:
            ...

    The yielded response is streamed and closed when the block exits.
    ``open`` itself applies no overall deadline; callers wrap the whole
    fetch-and-read in one (see RecipeScraper).
    """

    def __init__(
        self,
        guard: Optional[HostGuard] = None,
        max_redirects: int = MAX_REDIRECTS,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout_seconds: float = 15.0,
    ):
        self.guard = guard or HostGuard()
        self.max_redirects = max_redirects
        self.user_agent = user_agent
        self.timeout_seconds = timeout_seconds

    def _build_client(self, pins: dict[str, ResolvedHost]) -> httpx.AsyncClient:
        transport = httpx.AsyncHTTPTransport(retries=0)
        # Pin DNS resolution at TCP connect time
        transport._pool._network_backend = PinnedNetworkBackend(self.guard, pins)  # noqa: SLF001

        return httpx.AsyncClient(
            transport=transport,
            follow_redirects=False,
            trust_env=False,
            timeout=self.timeout_seconds,
            headers={
                "User-Agent": self.user_agent,
                "Accept": ACCEPT_HTML,
                # read_capped inflates gzip/deflate itself; ask for none
                "Accept-Encoding": "identity",
            },
        )

    def _next_hop(self, current: ParseResult, location: str) -> ParseResult:
        """Resolve a Location header against *current* and validate it."""
        try:
            target = urlparse(urljoin(urlunparse(current), location.strip()))
            standard = has_standard_port(target)
        except ValueError:
            raise SSRFBlockedError(f"unparseable redirect location {location!r}")

        if target.scheme.lower() not in ALLOWED_SCHEMES:
            raise SSRFBlockedError(f"redirect to scheme {target.scheme!r}")
        if not target.hostname:
            raise SSRFBlockedError("redirect without host")
        if not standard:
            raise SSRFBlockedError(f"redirect to non-standard port {target.port}")
        return target

    async def _follow(
        self,
        client: httpx.AsyncClient,
        start: ParseResult,
        pins: dict[str, ResolvedHost],
    ) -> httpx.Response:
        current = start

        for hop in range(self.max_redirects + 1):
            resolved = await self.guard.guard(current.hostname)
            pins[resolved.hostname] = resolved

            # Cookies set by one hop are not replayed to the next
            client.cookies.clear()
            try:
                request = client.build_request("GET", _dialable_url(current))
            except httpx.InvalidURL as e:
                raise SSRFBlockedError(f"transport rejected URL: {e}")
            response = await client.send(request, stream=True)

            if not _is_redirect(response):
                logger.debug(
                    f"Fetched {resolved.hostname} with status {response.status_code}",
                    extra={"hops": hop, "status": response.status_code},
                )
                return response

            location = response.headers["location"]
            await response.aclose()
            current = self._next_hop(current, location)

        raise RedirectLimitExceeded(self.max_redirects)

    @asynccontextmanager
    async def open(self, url: str) -> AsyncIterator[httpx.Response]:
        """
        Open *url*, following up to ``max_redirects`` validated redirects.

        Raises:
            InvalidInputError: Bad scheme, host or port on the initial URL
            SSRFBlockedError: A hop is unresolvable or blocked, or a redirect
                points at a disallowed scheme/port
            RedirectLimitExceeded: The redirect budget ran out
            httpx.HTTPError: Transport failures (including timeouts)
        """
        parsed = validate_target_url(url)
        pins: dict[str, ResolvedHost] = {}

        async with self._build_client(pins) as client:
            response = await self._follow(client, parsed, pins)
            try:
                yield response
            finally:
                await response.aclose()
