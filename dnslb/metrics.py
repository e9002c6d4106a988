"""Prometheus metrics for the balancer and the optional /metrics endpoint.

The series are module-level so probes, the reconciler and the scheduler can
update them without passing a registry around. Nothing in the core reads them
back.
"""
from __future__ import annotations

import logging
from threading import Thread
from typing import Final

import uvicorn
from fastapi import FastAPI, Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

logger = logging.getLogger(__name__)

CLOUDFLARE_REQUESTS: Final[Counter] = Counter(
    "dns_balancer_cloudflare_requests",
    "Requests to cloudflare api by type",
    labelnames=("type",),
)

TARGETS_AVAILABLE: Final[Gauge] = Gauge(
    "dns_balancer_targets_available",
    "Amount of online targets",
)

TARGETS_STATUS: Final[Gauge] = Gauge(
    "dns_balancer_targets_status",
    "Status per target: 1 Online - 0 Offline",
    labelnames=("target",),
)

HEALTHCHECK_REQUEST_TIME: Final[Histogram] = Histogram(
    "dns_balancer_healthcheck_request_time_seconds",
    "Used for quantiles over the average healthcheck request time",
    labelnames=("target",),
    buckets=tuple(round(0.01 * 1.8**i, 6) for i in range(20)),
)


def create_app(registry: CollectorRegistry = REGISTRY) -> FastAPI:
    app = FastAPI(title="DNS Failover Balancer metrics")

    @app.get("/metrics")
    def metrics() -> Response:
        return Response(content=generate_latest(registry), media_type=CONTENT_TYPE_LATEST)

    return app


def serve_metrics(host: str, port: int) -> Thread:
    """Serve /metrics from a daemon thread; the health checker keeps the main thread."""
    server = uvicorn.Server(uvicorn.Config(create_app(), host=host, port=port, log_level="warning"))
    thr = Thread(target=server.run, name="metrics", daemon=True)
    thr.start()
    logger.info("Serving metrics on http://%s:%d/metrics", host, port)
    return thr
