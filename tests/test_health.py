import socket
import threading
import time
import types

import httpx
import icmplib
import pytest
from fastapi.testclient import TestClient

from conftest import make_target
from dnslb import health
from dnslb.health import Prober
from dnslb.models import HttpProbe, HttpsProbe, IcmpProbe, TcpProbe
from examples.example_service.app import APP_STATE, app as example_app


def _fake_clock(*values):
    it = iter(values)
    return types.SimpleNamespace(monotonic=lambda: next(it))


def _mock_client(handler):
    return httpx.Client(transport=httpx.MockTransport(handler), follow_redirects=True)


@pytest.fixture
def listening_port():
    srv = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    srv.bind(("127.0.0.1", 0))
    srv.listen(8)
    yield srv.getsockname()[1]
    srv.close()


@pytest.fixture
def closed_port():
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(("127.0.0.1", 0))
    port = s.getsockname()[1]
    s.close()
    return port


# --- TCP ---

def test_tcp_probe_up(listening_port):
    target = make_target("127.0.0.1", probe=TcpProbe(port=listening_port))
    assert Prober().check(target) is True


def test_tcp_probe_refused(closed_port):
    target = make_target("127.0.0.1", probe=TcpProbe(port=closed_port))
    assert Prober().check(target) is False


@pytest.mark.parametrize(
    "ticks,expected",
    [
        ((0.0, 0.25), False),  # exactly the deadline
        ((10.0, 10.5), False),  # over the deadline
        ((10.0, 10.125), True),
    ],
)
def test_tcp_probe_rejects_connect_at_or_over_deadline(listening_port, monkeypatch, ticks, expected):
    target = make_target("127.0.0.1", probe=TcpProbe(port=listening_port), threshold_ms=250)
    monkeypatch.setattr(health, "time", _fake_clock(*ticks))
    assert Prober().check(target) is expected


def test_tcp_probe_returns_within_deadline():
    # Non-routable address: either times out or fails fast, never hangs.
    target = make_target("10.255.255.1", probe=TcpProbe(port=9), threshold_ms=200)
    start = time.monotonic()
    assert Prober().check(target) is False
    assert time.monotonic() - start < 0.2 + 1.0


# --- HTTP / HTTPS ---

def test_http_probe_builds_request_from_target():
    seen = []

    def handler(request):
        seen.append((request.method, str(request.url)))
        return httpx.Response(204)

    target = make_target("10.0.0.5", probe=HttpProbe(port=8080, method="head", path="status"))
    assert Prober(http_client=_mock_client(handler)).check(target) is True
    assert seen == [("HEAD", "http://10.0.0.5:8080/status")]


def test_https_probe_uses_tls_scheme():
    seen = []

    def handler(request):
        seen.append(str(request.url))
        return httpx.Response(200)

    target = make_target("10.0.0.6", probe=HttpsProbe(port=8443, path="/health"))
    assert Prober(http_client=_mock_client(handler)).check(target) is True
    assert seen == ["https://10.0.0.6:8443/health"]


@pytest.mark.parametrize("status", [301, 302, 404, 500, 503])
def test_http_probe_non_2xx_is_down(status):
    def handler(request):
        headers = {"Location": "/elsewhere"} if 300 <= status < 400 else {}
        return httpx.Response(status, headers=headers)

    target = make_target("10.0.0.5", probe=HttpProbe(port=80))
    assert Prober(http_client=_mock_client(handler)).check(target) is False


@pytest.mark.parametrize(
    "exc",
    [httpx.ConnectError("refused"), httpx.ReadTimeout("slow"), httpx.RemoteProtocolError("garbage")],
)
def test_http_probe_transport_errors_are_down(exc):
    def handler(request):
        raise exc

    target = make_target("10.0.0.5", probe=HttpsProbe(port=443))
    assert Prober(http_client=_mock_client(handler)).check(target) is False


def test_http_probe_late_response_is_down(monkeypatch):
    target = make_target("10.0.0.5", probe=HttpProbe(port=80), threshold_ms=500)
    client = _mock_client(lambda request: httpx.Response(200))
    monkeypatch.setattr(health, "time", _fake_clock(1.0, 1.6))
    assert Prober(http_client=client).check(target) is False


def test_http_probe_against_example_service():
    APP_STATE.update(down=False, delay_s=0.0)
    prober = Prober(http_client=TestClient(example_app))
    target = make_target("10.0.0.7", probe=HttpProbe(port=8080, path="/health"))
    moved = make_target("10.0.0.7", probe=HttpProbe(port=8080, path="/moved"))

    try:
        assert prober.check(target) is True
        # Redirects are not followed, even by a client that would follow them.
        assert prober.check(moved) is False

        APP_STATE["down"] = True
        assert prober.check(target) is False
    finally:
        APP_STATE.update(down=False, delay_s=0.0)


@pytest.fixture
def slow_http_server():
    """Loopback HTTP server: answers after ``header_delay`` then trickles its body."""
    stop = threading.Event()
    servers = []

    def start(header_delay, byte_interval=0.8, send_headers=True):
        srv = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        srv.bind(("127.0.0.1", 0))
        srv.listen(4)
        srv.settimeout(0.2)
        servers.append(srv)

        def serve():
            while not stop.is_set():
                try:
                    conn, _ = srv.accept()
                except OSError:
                    continue
                with conn:
                    conn.recv(4096)
                    if stop.wait(header_delay) or not send_headers:
                        stop.wait(10)
                        continue
                    try:
                        conn.sendall(b"HTTP/1.1 200 OK\r\nContent-Length: 10\r\n\r\n")
                        for _ in range(10):
                            if stop.wait(byte_interval):
                                break
                            conn.sendall(b"x")
                    except OSError:
                        continue

        threading.Thread(target=serve, daemon=True).start()
        return srv.getsockname()[1]

    yield start
    stop.set()
    for srv in servers:
        srv.close()


def test_http_check_does_not_wait_for_trickled_body(slow_http_server):
    port = slow_http_server(header_delay=0.3)
    target = make_target("127.0.0.1", probe=HttpProbe(port=port, path="/health"), threshold_ms=1000)

    start = time.monotonic()
    up = Prober().check(target)
    elapsed = time.monotonic() - start

    assert up is True
    assert elapsed < 1.0 + 0.5


def test_http_check_returns_within_deadline_when_server_is_silent(slow_http_server):
    port = slow_http_server(header_delay=0, send_headers=False)
    target = make_target("127.0.0.1", probe=HttpProbe(port=port), threshold_ms=300)

    start = time.monotonic()
    up = Prober().check(target)
    elapsed = time.monotonic() - start

    assert up is False
    assert elapsed < 0.3 + 0.5


def test_default_client_does_not_follow_redirects():
    client = health.build_http_client()
    try:
        assert client.follow_redirects is False
        assert client.headers["User-Agent"] == health.USER_AGENT
    finally:
        client.close()


# --- ICMP ---

def test_icmp_probe_alive_and_dead(monkeypatch, icmp_target):
    calls = []

    def fake_ping(address, count, timeout, privileged):
        calls.append((address, count, timeout, privileged))
        return types.SimpleNamespace(is_alive=address == "192.0.2.10")

    monkeypatch.setattr(icmplib, "ping", fake_ping)
    prober = Prober()
    assert prober.check(icmp_target) is True
    assert prober.check(make_target("192.0.2.11", probe=IcmpProbe(), threshold_ms=300)) is False
    assert calls[0] == ("192.0.2.10", 1, 1.0, False)
    assert calls[1][2] == pytest.approx(0.3)


def test_icmp_probe_error_is_down(monkeypatch, icmp_target):
    def fake_ping(*args, **kwargs):
        raise icmplib.NameLookupError("nope")

    monkeypatch.setattr(icmplib, "ping", fake_ping)
    prober = Prober()
    assert prober.check(icmp_target) is False
    assert prober.icmp_degraded is False


def test_icmp_without_privileges_degrades(monkeypatch, icmp_target, caplog):
    calls = []

    def fake_ping(*args, **kwargs):
        calls.append(args)
        raise icmplib.SocketPermissionError(False)

    monkeypatch.setattr(icmplib, "ping", fake_ping)
    prober = Prober()
    with caplog.at_level("WARNING", logger="dnslb.health"):
        assert prober.check(icmp_target) is False
        assert prober.check(icmp_target) is False

    assert prober.icmp_degraded is True
    # Degraded mode stops trying and warns only once.
    assert len(calls) == 1
    warnings = [r for r in caplog.records if "not permitted" in r.getMessage()]
    assert len(warnings) == 1
