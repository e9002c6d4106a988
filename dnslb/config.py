from __future__ import annotations

import re
from ipaddress import IPv4Address
from pathlib import Path

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator

from .models import HttpProbe, HttpsProbe, IcmpProbe, ProbeSpec, Target, TcpProbe
from .settings import ConfigError, Settings

PROBE_TYPES = ("icmp", "tcpprobe", "http", "https")
# Any RFC 7230 token is a valid method, including extension methods.
HTTP_METHOD_RE = re.compile(r"[!#$%&'*+.^_`|~0-9A-Za-z-]+")


class ProbeConfig(BaseModel):
    type: str = Field(..., description="icmp|tcpprobe|http|https (case-insensitive)")
    port: int | None = Field(None, ge=1, le=65535)
    method: str | None = Field(None, description="HTTP method, default GET")
    route: str | None = Field(None, description="HTTP path, default /")

    @field_validator("type")
    @classmethod
    def _known_type(cls, v: str) -> str:
        kind = v.strip().lower()
        if kind not in PROBE_TYPES:
            raise ValueError("Invalid service type provided, please use Icmp, TcpProbe, Http or Https")
        return kind

    @field_validator("method")
    @classmethod
    def _known_method(cls, v: str | None) -> str | None:
        if v is None:
            return None
        method = v.strip().upper()
        if not HTTP_METHOD_RE.fullmatch(method):
            raise ValueError(f"Invalid HTTP method {v!r}")
        return method


class TargetConfig(BaseModel):
    ip: IPv4Address
    cf_zone: str = Field(..., min_length=1, description="Cloudflare zone identifier")
    cf_dns: str = Field(..., min_length=1, description="DNS record name")
    check: ProbeConfig
    response_threshold_ms: int | None = Field(None, ge=1)


_TARGET_LIST = TypeAdapter(list[TargetConfig])


def to_probe(cfg: ProbeConfig) -> ProbeSpec:
    if cfg.type == "icmp":
        return IcmpProbe()
    if cfg.port is None:
        raise ConfigError(f"{cfg.type} checks expect a port field")
    if cfg.type == "tcpprobe":
        return TcpProbe(port=cfg.port)
    cls = HttpProbe if cfg.type == "http" else HttpsProbe
    return cls(port=cfg.port, method=cfg.method or "GET", path=cfg.route or "/")


def to_target(cfg: TargetConfig) -> Target:
    return Target(
        address=cfg.ip,
        probe=to_probe(cfg.check),
        zone=cfg.cf_zone,
        dns_name=cfg.cf_dns,
        threshold_ms=cfg.response_threshold_ms,
    )


def read_service_targets(data: str | bytes) -> list[Target]:
    """Parse the JSON target list. Any problem raises ConfigError."""
    try:
        parsed = _TARGET_LIST.validate_json(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid service targets: {e}") from e
    if not parsed:
        raise ConfigError("No service targets configured.")
    return [to_target(cfg) for cfg in parsed]


def load_targets(settings: Settings) -> list[Target]:
    if settings.service_targets:
        return read_service_targets(settings.service_targets)
    if settings.service_targets_file:
        path = Path(settings.service_targets_file)
        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"Cannot read SERVICE_TARGETS_FILE {path}: {e}") from e
        return read_service_targets(raw)
    raise ConfigError("Please provide SERVICE_TARGETS or SERVICE_TARGETS_FILE in env!")
