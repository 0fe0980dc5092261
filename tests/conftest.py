"""Shared fixtures: deterministic DNS for everything that goes through HostGuard."""

import ipaddress
import socket

import pytest

from src.crawlers.ssrf_guard import HostGuard


DNS_TABLE = {
    "example.com": ["93.184.216.34", "2606:2800:220:1:248:1893:25c8:1946"],
    "a.example": ["93.184.216.34"],
    "b.example": ["93.184.216.35"],
    "v6only.example": ["2606:4700::6810:84e5"],
    "evil.example": ["10.0.0.5"],
    "metadata.example": ["169.254.169.254"],
    "rebind.example": ["93.184.216.34", "::1"],
}


class FakeResolver:
    """Answers from a fixed table; IP literals resolve to themselves."""

    def __init__(self, table=None):
        self.table = dict(DNS_TABLE if table is None else table)
        self.lookups = []

    async def __call__(self, hostname, family):
        self.lookups.append((hostname, family))
        try:
            literal = ipaddress.ip_address(hostname)
        except ValueError:
            literal = None

        if literal is not None:
            answers = [hostname]
        elif hostname in self.table:
            answers = self.table[hostname]
        else:
            raise socket.gaierror(socket.EAI_NONAME, "Name or service not known")

        version = 4 if family == socket.AF_INET else 6
        return [a for a in answers if ipaddress.ip_address(a).version == version]


@pytest.fixture
def resolver():
    return FakeResolver()


@pytest.fixture
def guard(resolver):
    return HostGuard(resolver=resolver)
