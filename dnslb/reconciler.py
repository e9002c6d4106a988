from __future__ import annotations

import logging
from ipaddress import IPv4Address
from typing import Iterable, Protocol

from .dns_ops import DnsApiError
from .models import DnsRecord, Target

logger = logging.getLogger(__name__)


class DnsClient(Protocol):
    def list_dns(self, zone: str, name: str) -> list[DnsRecord]: ...

    def create_a_record(self, zone: str, name: str, address: IPv4Address, proxied: bool = True) -> DnsRecord: ...

    def delete_record(self, zone: str, record_id: str) -> None: ...


def find_record(records: Iterable[DnsRecord], address: IPv4Address) -> DnsRecord | None:
    for rec in records:
        if rec.a_address == address:
            return rec
    return None


class DnsReconciler:
    """Makes the zone's A records follow the availability decisions.

    Every call is idempotent and soft-failing: API errors are logged and the
    next round's transition (or lack of one) acts as the retry.
    """

    def __init__(self, client: DnsClient, proxied: bool = True):
        self.client = client
        self.proxied = proxied

    def add(self, target: Target) -> None:
        try:
            records = self.client.list_dns(target.zone, target.dns_name)
            if find_record(records, target.address) is not None:
                logger.debug("Record %s already present", target.describe())
                return
            self.client.create_a_record(target.zone, target.dns_name, target.address, proxied=self.proxied)
        except DnsApiError as e:
            logger.warning("Error with CF Api while adding %s: %s", target.describe(), e)
            return
        logger.info("Created cloudflare record for %s", target.describe())

    def remove(self, target: Target) -> None:
        try:
            records = self.client.list_dns(target.zone, target.dns_name)
            entry = find_record(records, target.address)
            if entry is None:
                logger.warning("No match on cloudflare for record %s", target.describe())
                return
            self.client.delete_record(target.zone, entry.id)
        except DnsApiError as e:
            logger.warning("Error with CF Api while removing %s: %s", target.describe(), e)
            return
        logger.info("Deleted cloudflare record for %s", target.describe())

    def recover_unavailable(self, targets: list[Target]) -> set[IPv4Address]:
        """Addresses with no A record in their zone, i.e. excluded before a restart.

        Each distinct (zone, name) pair is listed once. A pair that cannot be
        listed is skipped and its targets start out as available.
        """
        listed: dict[tuple[str, str], list[DnsRecord] | None] = {}
        for t in targets:
            key = (t.zone, t.dns_name)
            if key in listed:
                continue
            try:
                listed[key] = self.client.list_dns(t.zone, t.dns_name)
            except DnsApiError as e:
                logger.warning("Error with CF Api while listing %s in zone %s: %s", t.dns_name, t.zone, e)
                listed[key] = None

        unavailable: set[IPv4Address] = set()
        for t in targets:
            records = listed[(t.zone, t.dns_name)]
            if records is None:
                continue
            if find_record(records, t.address) is None:
                logger.info("Target %s has no DNS record, assuming it is unavailable", t.describe())
                unavailable.add(t.address)
        return unavailable
