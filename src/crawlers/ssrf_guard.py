"""SSRF guard: validates URLs and hosts before anything is dialed.

Must be consulted for every outbound connection made on behalf of a caller,
including every redirect hop. Three layers:

- ``is_blocked_ip``: pure classification of a single address
- ``HostGuard``: resolves a hostname (A and AAAA) and rejects it if *any*
  answer is blocked
- ``validate_target_url``: scheme / host / port checks on caller input
"""

import asyncio
import ipaddress
import logging
import socket
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Union
from urllib.parse import ParseResult, urlparse

from .errors import InvalidInputError, SSRFBlockedError

logger = logging.getLogger(__name__)

BLOCKED_NETWORKS = [
    ipaddress.ip_network('0.0.0.0/8'),          # "this" network
    ipaddress.ip_network('127.0.0.0/8'),        # loopback
    ipaddress.ip_network('10.0.0.0/8'),         # private class A
    ipaddress.ip_network('172.16.0.0/12'),      # private class B
    ipaddress.ip_network('192.168.0.0/16'),     # private class C
    ipaddress.ip_network('169.254.0.0/16'),     # link-local (cloud metadata lives here)
    ipaddress.ip_network('100.64.0.0/10'),      # CGNAT
    ipaddress.ip_network('192.0.2.0/24'),       # TEST-NET-1
    ipaddress.ip_network('198.51.100.0/24'),    # TEST-NET-2
    ipaddress.ip_network('203.0.113.0/24'),     # TEST-NET-3
    ipaddress.ip_network('198.18.0.0/15'),      # benchmarking
    ipaddress.ip_network('240.0.0.0/4'),        # reserved, up to broadcast
    ipaddress.ip_network('::/128'),             # IPv6 unspecified
    ipaddress.ip_network('::1/128'),            # IPv6 loopback
    ipaddress.ip_network('fc00::/7'),           # IPv6 unique-local
    ipaddress.ip_network('fe80::/10'),          # IPv6 link-local
    ipaddress.ip_network('fec0::/10'),          # IPv6 site-local (deprecated)
]

# RFC 6052 well-known NAT64 prefix; the low 32 bits are an IPv4 address.
NAT64_PREFIX = ipaddress.ip_network('64:ff9b::/96')

ALLOWED_SCHEMES = ('http', 'https')
STANDARD_PORTS = (80, 443)

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
Resolver = Callable[[str, int], Awaitable[list[str]]]


def _embedded_ipv4(ip: ipaddress.IPv6Address) -> Optional[ipaddress.IPv4Address]:
    """Return the IPv4 address tunnelled inside *ip*, if any."""
    if ip.ipv4_mapped is not None:
        return ip.ipv4_mapped
    if ip in NAT64_PREFIX:
        return ipaddress.IPv4Address(int(ip) & 0xFFFFFFFF)
    if ip.sixtofour is not None:
        return ip.sixtofour
    if ip.teredo is not None:
        return ip.teredo[1]
    return None


def is_blocked_ip(address: Union[str, IPAddress]) -> bool:
    """
    Check whether a single IP address falls in a blocked range.

    IPv6 addresses that embed an IPv4 address (mapped, NAT64, 6to4, Teredo)
    are classified by the embedded address. Anything that does not parse
    as an IP address is treated as blocked.
    """
    if isinstance(address, str):
        try:
            ip = ipaddress.ip_address(address.strip().strip('[]'))
        except ValueError:
            return True
    else:
        ip = address

    if isinstance(ip, ipaddress.IPv6Address):
        embedded = _embedded_ipv4(ip)
        if embedded is not None:
            return is_blocked_ip(embedded)

    return any(ip in net for net in BLOCKED_NETWORKS if net.version == ip.version)


@dataclass(frozen=True)
class ResolvedHost:
    """A hostname and every address it resolved to at validation time."""
    hostname: str
    addresses: tuple[IPAddress, ...]


async def system_resolve(hostname: str, family: int) -> list[str]:
    """Resolve *hostname* for one address family via the system resolver."""
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(hostname, None, family=family, type=socket.SOCK_STREAM)
    return [sockaddr[0] for _family, _type, _proto, _canonname, sockaddr in infos]


class HostGuard:
    """
    Resolves hostnames and rejects any that point at a blocked address.

    Both address families are resolved independently; a host may be
    single-stack, so only an empty combined answer is an error. A single
    blocked answer rejects the whole hostname, because the attacker
    controls which answer is handed out when.

    Usage:
        guard = HostGuard()
        resolved = await guard.guard("example.com")
    """

    FAMILIES = (socket.AF_INET, socket.AF_INET6)

    def __init__(self, resolver: Optional[Resolver] = None):
        self._resolver = resolver or system_resolve

    async def _resolve_family(self, hostname: str, family: int) -> list[str]:
        try:
            return await self._resolver(hostname, family)
        except (OSError, UnicodeError, ValueError) as e:
            logger.debug(f"No family {family} answer for {hostname}: {e}")
            return []

    async def guard(self, hostname: Optional[str]) -> ResolvedHost:
        """
        Resolve and validate *hostname*.

        Returns:
            ResolvedHost with every resolved address (IPv4 first)

        Raises:
            SSRFBlockedError: If the host cannot be resolved or any answer is blocked
        """
        host = (hostname or '').strip().strip('[]').rstrip('.').lower()
        if not host:
            raise SSRFBlockedError("missing hostname")

        answers = await asyncio.gather(
            *(self._resolve_family(host, family) for family in self.FAMILIES)
        )
        raw = [address for family_answers in answers for address in family_answers]
        if not raw:
            raise SSRFBlockedError(f"could not resolve hostname {host!r}")

        addresses: list[IPAddress] = []
        for address in raw:
            if is_blocked_ip(address):
                logger.warning(
                    "Blocked host resolving to private/reserved address",
                    extra={"hostname": host, "address": address},
                )
                raise SSRFBlockedError(f"{host!r} resolves to blocked address {address}")
            ip = ipaddress.ip_address(address.strip().strip('[]'))
            if ip not in addresses:
                addresses.append(ip)

        return ResolvedHost(hostname=host, addresses=tuple(addresses))


def has_standard_port(parsed: ParseResult) -> bool:
    """True if *parsed* has no explicit port or an explicit 80/443.

    Raises ValueError for an unparseable port.
    """
    port = parsed.port
    return port is None or port in STANDARD_PORTS


def validate_target_url(url: str) -> ParseResult:
    """
    Validate caller-supplied URL syntax before any network access.

    Checks:
    - Scheme must be http or https
    - A hostname must be present
    - Port must be absent or standard (80/443)

    Returns:
        The parsed URL

    Raises:
        InvalidInputError: If the URL is malformed or not allowed
    """
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        raise InvalidInputError(reason="unparseable URL")

    if parsed.scheme.lower() not in ALLOWED_SCHEMES or not parsed.hostname:
        raise InvalidInputError(reason=f"bad scheme or host in {url!r}")

    try:
        standard = has_standard_port(parsed)
    except ValueError:
        raise InvalidInputError(reason="unparseable port")

    if not standard:
        raise InvalidInputError(
            "Only standard HTTP ports (80, 443) are allowed.",
            reason=f"non-standard port {parsed.port}",
        )

    return parsed
