import sys
from ipaddress import IPv4Address

import pytest

# Ensure project root is importable (so `import dnslb`, `main` and `examples...` work without installing)
import os as _os
_project_root = _os.path.dirname(_os.path.dirname(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from dnslb.dns_ops import DnsApiError  # noqa: E402
from dnslb.models import DnsRecord, IcmpProbe, Target, TcpProbe  # noqa: E402


class FakeDns:
    """In-memory DNS provider recording every call."""

    def __init__(self, records=None, fail_on=()):
        # (zone, name) -> list[DnsRecord]
        self.records = {k: list(v) for k, v in (records or {}).items()}
        self.fail_on = set(fail_on)
        self.list_calls = []
        self.create_calls = []
        self.delete_calls = []
        self._next_id = 1

    def _maybe_fail(self, op):
        if op in self.fail_on:
            raise DnsApiError(f"{op} failed")

    def list_dns(self, zone, name):
        self.list_calls.append((zone, name))
        self._maybe_fail("list")
        return list(self.records.get((zone, name), []))

    def create_a_record(self, zone, name, address, proxied=True):
        self.create_calls.append((zone, name, address, proxied))
        self._maybe_fail("create")
        rec = DnsRecord(id=f"rec-{self._next_id}", name=name, type="A", content=str(address))
        self._next_id += 1
        self.records.setdefault((zone, name), []).append(rec)
        return rec

    def delete_record(self, zone, record_id):
        self.delete_calls.append((zone, record_id))
        self._maybe_fail("delete")
        for key, recs in self.records.items():
            if key[0] == zone:
                self.records[key] = [r for r in recs if r.id != record_id]


class RecordingReconciler:
    def __init__(self):
        self.added = []
        self.removed = []

    def add(self, target):
        self.added.append(target.address)

    def remove(self, target):
        self.removed.append(target.address)


def make_target(ip, dns="api.example.com", zone="zone1", probe=None, threshold_ms=None):
    return Target(
        address=IPv4Address(ip),
        probe=probe if probe is not None else TcpProbe(port=443),
        zone=zone,
        dns_name=dns,
        threshold_ms=threshold_ms,
    )


def a_record(ip, rid=None, name="api.example.com"):
    return DnsRecord(id=rid or f"id-{ip}", name=name, type="A", content=ip)


@pytest.fixture
def fake_dns():
    return FakeDns()


@pytest.fixture
def recording_reconciler():
    return RecordingReconciler()


@pytest.fixture
def icmp_target():
    return make_target("192.0.2.10", probe=IcmpProbe())
