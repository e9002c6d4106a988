from __future__ import annotations

import argparse
import json
import sys

import requests

from dnslb.config import load_targets
from dnslb.dns_ops import CloudflareDns, DnsApiError
from dnslb.health import Prober
from dnslb.models import Target
from dnslb.settings import ConfigError, Settings


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def _probe_name(target: Target) -> str:
    return type(target.probe).__name__.replace("Probe", "").lower()


def cmd_check(settings: Settings) -> int:
    targets = load_targets(settings)
    prober = Prober(icmp_privileged=settings.icmp_privileged)
    try:
        rows = [
            {
                "address": str(t.address),
                "dns": t.dns_name,
                "probe": _probe_name(t),
                "healthy": prober.check(t),
            }
            for t in targets
        ]
    finally:
        prober.close()
    _print({"targets": rows, "icmp_degraded": prober.icmp_degraded})
    return 0 if all(r["healthy"] for r in rows) else 1


def cmd_records(settings: Settings) -> int:
    if not settings.cf_token:
        raise ConfigError("Please provide a CF_TOKEN in env!")
    targets = load_targets(settings)
    client = CloudflareDns(settings.cf_token, base_url=settings.cf_api_base)
    out: dict[str, list[dict[str, str]]] = {}
    ok = True
    try:
        for zone, name in sorted({(t.zone, t.dns_name) for t in targets}):
            try:
                records = client.list_dns(zone, name)
            except DnsApiError as e:
                print(f"{zone}/{name}: {e}", file=sys.stderr)
                ok = False
                continue
            out[f"{zone}/{name}"] = [{"id": r.id, "content": r.content} for r in records if r.a_address]
    finally:
        client.close()
    _print(out)
    return 0 if ok else 1


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="DNS Failover Balancer CLI")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("check", help="Probe every configured target once")
    sub.add_parser("records", help="List the A records currently published for the configured names")

    s_met = sub.add_parser("metrics", help="Fetch /metrics from a running balancer")
    s_met.add_argument("--api", default="http://localhost:8000", help="Metrics endpoint base URL")

    args = p.parse_args(argv)

    if args.cmd == "metrics":
        r = requests.get(f"{args.api.rstrip('/')}/metrics", timeout=10)
        print(r.text)
        return 0 if r.ok else 1

    try:
        settings = Settings()
        if args.cmd == "check":
            return cmd_check(settings)
        if args.cmd == "records":
            return cmd_records(settings)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
