from __future__ import annotations

import logging
import socket
import time

import httpx
import icmplib

from .models import HttpProbe, HttpsProbe, IcmpProbe, Target, TcpProbe

logger = logging.getLogger(__name__)

USER_AGENT = "dns-failover-balancer"


def build_http_client() -> httpx.Client:
    # No keep-alive: every probe has to establish its own connection.
    return httpx.Client(
        follow_redirects=False,
        headers={"User-Agent": USER_AGENT},
        limits=httpx.Limits(max_connections=None, max_keepalive_connections=0),
    )


class Prober:
    """Runs one health check against one target.

    ``check`` never raises: every failure is reported as ``False``.
    """

    def __init__(self, http_client: httpx.Client | None = None, icmp_privileged: bool = False):
        self.http_client = http_client or build_http_client()
        self.icmp_privileged = icmp_privileged
        self.icmp_degraded = False

    def close(self) -> None:
        self.http_client.close()

    def check(self, target: Target) -> bool:
        probe = target.probe
        if isinstance(probe, IcmpProbe):
            return self.check_icmp(target)
        if isinstance(probe, TcpProbe):
            return self.check_tcp(target)
        if isinstance(probe, (HttpProbe, HttpsProbe)):
            return self.check_http(target)
        raise TypeError(f"Unknown probe type: {type(probe).__name__}")

    def check_icmp(self, target: Target) -> bool:
        if self.icmp_degraded:
            logger.debug("ICMP probing unavailable, reporting %s as down", target.address)
            return False
        logger.debug("Checking ICMP %s", target.address)
        try:
            host = icmplib.ping(
                str(target.address),
                count=1,
                timeout=target.deadline_s,
                privileged=self.icmp_privileged,
            )
        except icmplib.SocketPermissionError:
            self.icmp_degraded = True
            logger.warning(
                "ICMP probes are not permitted on this host (no raw/datagram ICMP socket privileges); "
                "ICMP targets will be reported as down regardless of their real state"
            )
            return False
        except (icmplib.ICMPLibError, OSError) as e:
            logger.debug("ICMP probe to %s failed: %s", target.address, e)
            return False
        return host.is_alive

    def check_tcp(self, target: Target) -> bool:
        port = target.probe.port
        deadline = target.deadline_s
        logger.debug("Checking TCP Probe %s:%d", target.address, port)
        start = time.monotonic()
        try:
            with socket.create_connection((str(target.address), port), timeout=deadline):
                elapsed = time.monotonic() - start
        except OSError as e:
            logger.debug("TCP Probe to %s:%d failed: %s", target.address, port, e)
            return False
        if elapsed >= deadline:
            logger.debug("TCP Probe to %s:%d took %.3fs (deadline %.3fs)", target.address, port, elapsed, deadline)
            return False
        return True

    def check_http(self, target: Target) -> bool:
        url = target.url()
        method = target.probe.method
        deadline = target.deadline_s
        logger.debug("Checking %s %s", method, url)
        start = time.monotonic()
        try:
            request = self.http_client.build_request(method, url, timeout=httpx.Timeout(deadline))
            # Only the status line and headers are read; the body is never downloaded.
            # Redirects are never followed: a redirect away from the health path counts as down.
            resp = self.http_client.send(request, stream=True, follow_redirects=False)
            resp.close()
        except httpx.HTTPError as e:
            logger.debug("Response Status: 0 (%s: %s)", type(e).__name__, e)
            return False
        except Exception as e:
            logger.debug("Response Status: 0 (Error: %s: %s)", type(e).__name__, e)
            return False
        elapsed = time.monotonic() - start
        logger.debug("Response Status: %d", resp.status_code)
        if elapsed >= deadline:
            logger.debug("%s %s answered after %.3fs (deadline %.3fs)", method, url, elapsed, deadline)
            return False
        return resp.is_success
