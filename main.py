from __future__ import annotations

import logging
import sys

from dnslb.config import load_targets
from dnslb.dns_ops import CloudflareDns
from dnslb.health import Prober
from dnslb.metrics import serve_metrics
from dnslb.reconciler import DnsReconciler
from dnslb.runtime import AvailabilityState
from dnslb.scheduler import HealthChecker
from dnslb.settings import ConfigError, Settings

logger = logging.getLogger("dnslb")

EXIT_CONFIG_ERROR = 2
EXIT_CHECKER_ENDED = 1


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_checker(settings: Settings) -> HealthChecker:
    """Wire the balancer from settings. Raises ConfigError on bad input."""
    settings.validate()
    targets = load_targets(settings)
    prober = Prober(icmp_privileged=settings.icmp_privileged)
    client = CloudflareDns(settings.cf_token, base_url=settings.cf_api_base)
    reconciler = DnsReconciler(client, proxied=settings.cf_proxied)
    state = AvailabilityState(targets)
    return HealthChecker(
        targets,
        state,
        reconciler,
        check=prober.check,
        interval_s=settings.check_interval_s,
    )


def main() -> int:
    try:
        settings = Settings()
    except ConfigError as e:
        setup_logging("INFO")
        logger.error("Configuration error: %s", e)
        return EXIT_CONFIG_ERROR
    setup_logging(settings.log_level)

    try:
        checker = build_checker(settings)
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        return EXIT_CONFIG_ERROR

    logger.info(
        "Starting dns-failover-balancer with %d targets, checking every %ds",
        len(checker.targets),
        settings.check_interval_s,
    )
    if settings.metrics_enabled:
        serve_metrics(settings.metrics_host, settings.metrics_port)

    try:
        checker.run_forever()
    except Exception:
        logger.exception("Health checker crashed")
    logger.warning("Health checker task ended. Stopping service...")
    return EXIT_CHECKER_ENDED


if __name__ == "__main__":
    raise SystemExit(main())
