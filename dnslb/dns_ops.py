from __future__ import annotations

import logging
from ipaddress import IPv4Address
from typing import Any

import httpx

from .metrics import CLOUDFLARE_REQUESTS
from .models import DnsRecord

logger = logging.getLogger(__name__)

PER_PAGE = 100


class DnsApiError(Exception):
    """The DNS provider call failed or returned application-level errors."""


class CloudflareDns:
    """Thin client for the three Cloudflare API v4 calls the balancer needs."""

    def __init__(
        self,
        token: str,
        base_url: str = "https://api.cloudflare.com/client/v4",
        timeout_s: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
                "User-Agent": "dns-failover-balancer",
            },
            timeout=timeout_s,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def _request(self, kind: str, method: str, path: str, **kwargs: Any) -> Any:
        CLOUDFLARE_REQUESTS.labels(type=kind).inc()
        try:
            resp = self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise DnsApiError(f"{method} {path} failed: {type(e).__name__}: {e}") from e
        try:
            body = resp.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            raise DnsApiError(f"{method} {path}: HTTP {resp.status_code} with non-JSON body")
        errors = body.get("errors") or []
        if errors or not body.get("success", resp.is_success) or resp.is_error:
            detail = "; ".join(_format_error(e) for e in errors) or f"HTTP {resp.status_code}"
            raise DnsApiError(f"{method} {path}: {detail}")
        return body.get("result")

    def list_dns(self, zone: str, name: str) -> list[DnsRecord]:
        """List A records named ``name`` in ``zone``. Only the first page is read."""
        result = self._request(
            "list",
            "GET",
            f"/zones/{zone}/dns_records",
            params={"name": name, "type": "A", "per_page": PER_PAGE},
        )
        if result is None:
            result = []
        if not isinstance(result, list):
            raise DnsApiError(f"GET /zones/{zone}/dns_records: unexpected result {result!r}")
        records: list[DnsRecord] = []
        for item in result:
            if not isinstance(item, dict) or "id" not in item:
                logger.debug("Skipping malformed record: %r", item)
                continue
            records.append(
                DnsRecord(
                    id=str(item["id"]),
                    name=str(item.get("name", "")),
                    type=str(item.get("type", "")),
                    content=str(item.get("content", "")),
                )
            )
        return records

    def create_a_record(self, zone: str, name: str, address: IPv4Address, proxied: bool = True) -> DnsRecord:
        # No ttl: Cloudflare applies its default ("automatic").
        result = self._request(
            "create",
            "POST",
            f"/zones/{zone}/dns_records",
            json={"type": "A", "name": name, "content": str(address), "proxied": proxied},
        )
        if not isinstance(result, dict):
            raise DnsApiError(f"POST /zones/{zone}/dns_records: unexpected result {result!r}")
        return DnsRecord(
            id=str(result.get("id", "")),
            name=str(result.get("name", name)),
            type="A",
            content=str(result.get("content", address)),
        )

    def delete_record(self, zone: str, record_id: str) -> None:
        self._request("delete", "DELETE", f"/zones/{zone}/dns_records/{record_id}")


def _format_error(err: Any) -> str:
    if isinstance(err, dict):
        return f"{err.get('code', '?')}: {err.get('message', err)}"
    return str(err)
