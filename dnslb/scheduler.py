from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from threading import Event
from typing import Callable

from . import metrics
from .models import Target
from .reconciler import DnsReconciler
from .runtime import AvailabilityState

logger = logging.getLogger(__name__)

# Extra time granted to a probe task beyond its own deadline before the round stops waiting for it.
JOIN_GRACE_S = 1.0


def sleep_duration(interval_s: float, elapsed_s: float) -> float:
    return max(0.0, interval_s - elapsed_s)


class HealthChecker:
    """Probes every target each interval and applies the results to DNS."""

    def __init__(
        self,
        targets: list[Target],
        state: AvailabilityState,
        reconciler: DnsReconciler,
        check: Callable[[Target], bool],
        interval_s: float = 30,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], object] | None = None,
    ):
        self.targets = list(targets)
        self.state = state
        self.reconciler = reconciler
        self.check = check
        self.interval_s = max(0.0, float(interval_s))
        self._clock = clock
        self._stop = Event()
        self._sleep = sleep or self._stop.wait

    def stop(self) -> None:
        self._stop.set()

    def recover(self) -> None:
        """Seed the exclusion set from the zone before the first round."""
        self.state.seed(self.reconciler.recover_unavailable(self.targets))
        metrics.TARGETS_AVAILABLE.set(self.state.available_count())

    def run_forever(self) -> None:
        self.recover()
        while not self._stop.is_set():
            logger.info("Running health check")
            start = self._clock()
            self.run_round()
            elapsed = self._clock() - start
            delay = sleep_duration(self.interval_s, elapsed)
            logger.info("Completed after %.3fs", elapsed)
            logger.debug("Sleeping for another %.3fs before next health check", delay)
            self._sleep(delay)
        logger.info("Health checker stopped")

    def _timed_check(self, target: Target) -> bool:
        start = time.monotonic()
        up = self.check(target)
        metrics.HEALTHCHECK_REQUEST_TIME.labels(target=str(target.address)).observe(time.monotonic() - start)
        if up:
            logger.info("Target %s is up", target.address)
        else:
            logger.warning("Target %s is down", target.address)
        return up

    def probe_all(self) -> list[tuple[Target, bool]]:
        """Probe every target concurrently and join the whole round."""
        if not self.targets:
            return []
        pool = ThreadPoolExecutor(max_workers=len(self.targets), thread_name_prefix="probe")
        try:
            futures: list[Future[bool]] = [pool.submit(self._timed_check, t) for t in self.targets]
            wait(futures, timeout=max(t.deadline_s for t in self.targets) + JOIN_GRACE_S)
        finally:
            # Stuck probe threads are left behind rather than stalling the round.
            pool.shutdown(wait=False, cancel_futures=True)

        results: list[tuple[Target, bool]] = []
        for target, fut in zip(self.targets, futures):
            if not fut.done():
                logger.warning("Probe task for %s did not finish in time, treating it as down", target.address)
                up = False
            elif fut.exception() is not None:
                err = fut.exception()
                logger.warning(
                    "An error occurred when trying to join the probe task for %s: %s: %s",
                    target.address,
                    type(err).__name__,
                    err,
                )
                up = False
            else:
                up = bool(fut.result())
            results.append((target, up))
        return results

    def run_round(self) -> list[tuple[Target, bool]]:
        results = self.probe_all()
        # Target-list order, never completion order.
        for target, up in results:
            metrics.TARGETS_STATUS.labels(target=str(target.address)).set(1 if up else 0)
            self.state.apply(target, up, self.reconciler)
        metrics.TARGETS_AVAILABLE.set(self.state.available_count())
        return results
