from __future__ import annotations

import logging
from enum import Enum
from ipaddress import IPv4Address
from typing import Iterable, Protocol

from .models import Target

logger = logging.getLogger(__name__)


class Transition(str, Enum):
    EXCLUDE = "exclude"
    RESTORE = "restore"
    LAST_SURVIVOR = "last_survivor"
    UNCHANGED = "unchanged"


class Reconciler(Protocol):
    def add(self, target: Target) -> None: ...

    def remove(self, target: Target) -> None: ...


def remaining_in_group(targets: Iterable[Target], excluded: set[IPv4Address] | frozenset[IPv4Address], dns_name: str) -> int:
    """Targets under ``dns_name`` that are not excluded."""
    group = [t for t in targets if t.dns_name == dns_name]
    return len(group) - sum(1 for t in group if t.address in excluded)


def decide(
    targets: list[Target],
    excluded: set[IPv4Address] | frozenset[IPv4Address],
    target: Target,
    healthy: bool,
) -> Transition:
    """Pure transition function for one probe result."""
    if target.address in excluded:
        return Transition.RESTORE if healthy else Transition.UNCHANGED
    if healthy:
        return Transition.UNCHANGED
    # Never drop the last resolvable record of a name.
    if remaining_in_group(targets, excluded, target.dns_name) > 1:
        return Transition.EXCLUDE
    return Transition.LAST_SURVIVOR


class AvailabilityState:
    """Owns the set of target addresses currently excluded from DNS.

    Only the health checker's post-round processing calls ``apply``, one
    target at a time, so no lock is needed.
    """

    def __init__(self, targets: list[Target], excluded: Iterable[IPv4Address] = ()):
        self.targets = list(targets)
        self.excluded: set[IPv4Address] = set(excluded)

    def seed(self, addresses: Iterable[IPv4Address]) -> None:
        self.excluded.update(addresses)

    def is_excluded(self, address: IPv4Address) -> bool:
        return address in self.excluded

    def snapshot(self) -> frozenset[IPv4Address]:
        return frozenset(self.excluded)

    def available_count(self) -> int:
        return sum(1 for t in self.targets if t.address not in self.excluded)

    def apply(self, target: Target, healthy: bool, reconciler: Reconciler) -> Transition:
        transition = decide(self.targets, self.excluded, target, healthy)
        if transition is Transition.EXCLUDE:
            self.excluded.add(target.address)
            reconciler.remove(target)
            logger.warning("Target %s went unavailable", target.address)
        elif transition is Transition.RESTORE:
            self.excluded.discard(target.address)
            reconciler.add(target)
            logger.info("Target %s is available again", target.address)
        elif transition is Transition.LAST_SURVIVOR:
            logger.warning(
                "Target %s is down but is the last available target for %s, not removing",
                target.address,
                target.dns_name,
            )
        elif self.is_excluded(target.address):
            logger.debug("Target %s is still unavailable", target.address)
        else:
            logger.debug("Target %s is still available", target.address)
        return transition
