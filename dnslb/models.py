from __future__ import annotations

from dataclasses import dataclass
from ipaddress import IPv4Address
from typing import Union

DEFAULT_THRESHOLD_MS = 1000


def normalize_path(path: str | None) -> str:
    if not path:
        return "/"
    return path if path.startswith("/") else f"/{path}"


@dataclass(frozen=True)
class IcmpProbe:
    pass


@dataclass(frozen=True)
class TcpProbe:
    port: int


@dataclass(frozen=True)
class HttpProbe:
    port: int
    method: str = "GET"
    path: str = "/"

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", (self.method or "GET").upper())
        object.__setattr__(self, "path", normalize_path(self.path))


@dataclass(frozen=True)
class HttpsProbe:
    port: int
    method: str = "GET"
    path: str = "/"

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", (self.method or "GET").upper())
        object.__setattr__(self, "path", normalize_path(self.path))


ProbeSpec = Union[IcmpProbe, TcpProbe, HttpProbe, HttpsProbe]


@dataclass(frozen=True)
class Target:
    """One monitored endpoint and the DNS A record it is advertised under."""

    address: IPv4Address
    probe: ProbeSpec
    zone: str
    dns_name: str
    threshold_ms: int | None = None

    @property
    def deadline_s(self) -> float:
        ms = self.threshold_ms if self.threshold_ms is not None else DEFAULT_THRESHOLD_MS
        return ms / 1000.0

    def url(self) -> str:
        """Probe URL for HTTP(S) targets."""
        if isinstance(self.probe, HttpProbe):
            scheme = "http"
        elif isinstance(self.probe, HttpsProbe):
            scheme = "https"
        else:
            raise TypeError(f"{type(self.probe).__name__} targets have no URL")
        return f"{scheme}://{self.address}:{self.probe.port}{self.probe.path}"

    def describe(self) -> str:
        return f"{self.dns_name} -> {self.address}"


@dataclass(frozen=True)
class DnsRecord:
    """A record as listed by the DNS provider."""

    id: str
    name: str
    type: str
    content: str

    @property
    def a_address(self) -> IPv4Address | None:
        if self.type.upper() != "A":
            return None
        try:
            return IPv4Address(self.content)
        except ValueError:
            return None
