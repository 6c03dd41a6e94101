from __future__ import annotations

import json
import socket
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Iterator

import httpx
import pytest

from chatstress.config import ConfigError, RunConfig, TargetConfig
from chatstress.loadgen import BoundedClient, RunController
from chatstress.metrics import OutcomeKind, RunState

from conftest import CHOICES_BODY


def _client(target: TargetConfig, handler, **config_overrides) -> BoundedClient:
    config = RunConfig(concurrent_requests=1, worker_pool_size=1, connection_pool_limit=1, **config_overrides)
    return BoundedClient(target, config, transport=httpx.MockTransport(handler))


def test_success_request_shape(target: TargetConfig) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=CHOICES_BODY)

    with _client(target, handler) as client:
        outcome = client.call(7)

    assert outcome.kind is OutcomeKind.SUCCESS
    assert outcome.request_id == 7
    assert outcome.latency_ms >= 0
    request = seen[0]
    assert request.method == "POST"
    assert request.url.path == "/openai/deployments/gpt-test/chat/completions"
    assert request.url.params["api-version"] == target.api_version
    assert request.headers["api-key"] == "test-key"
    body = json.loads(request.content)
    assert body["messages"][0]["content"].startswith("Hello, this is test request #7.")
    assert body["temperature"] == 0.0
    assert body["n"] == 1
    assert body["max_tokens"] == 50


@pytest.mark.parametrize("body", [{"choices": []}, {"id": "x"}, [1, 2]])
def test_empty_choices(target: TargetConfig, body: object) -> None:
    with _client(target, lambda request: httpx.Response(200, json=body)) as client:
        assert client.call(1).kind is OutcomeKind.EMPTY_RESPONSE


def test_undecodable_body_is_empty(target: TargetConfig) -> None:
    with _client(target, lambda request: httpx.Response(200, text="not json")) as client:
        assert client.call(1).kind is OutcomeKind.EMPTY_RESPONSE


def test_server_error_is_other_failure(target: TargetConfig) -> None:
    with _client(target, lambda request: httpx.Response(500, text="boom")) as client:
        outcome = client.call(3)
    assert outcome.kind is OutcomeKind.OTHER_FAILURE
    assert outcome.label == "HTTPStatusError"
    assert "internal server error" in (outcome.message or "").lower()


def test_reset_is_transient(target: TargetConfig) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadError("[Errno 104] Connection reset by peer", request=request)

    with _client(target, handler) as client:
        outcome = client.call(4)
    assert outcome.kind is OutcomeKind.TRANSIENT_NETWORK_FAULT
    assert outcome.label == "ReadError"


def test_raw_socket_error_is_classified(target: TargetConfig) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise ConnectionResetError(104, "Connection reset by peer")

    with _client(target, handler) as client:
        assert client.call(5).kind is OutcomeKind.TRANSIENT_NETWORK_FAULT


def test_timeouts_and_limits_follow_config(target: TargetConfig) -> None:
    with _client(target, lambda request: httpx.Response(200, json=CHOICES_BODY), per_call_timeout_sec=12.5) as client:
        assert client.timeout.connect == 12.5
        assert client.timeout.read == 12.5
        assert client.timeout.write == 12.5
        assert client.timeout.pool is None
        assert client.limits.max_connections == 1


@pytest.mark.parametrize(
    "endpoint,api_key,deployment",
    [
        ("not a url", "k", "d"),
        ("ftp://stress.openai.azure.com/", "k", "d"),
        ("https://stress.openai.azure.com/", "", "d"),
        ("https://stress.openai.azure.com/", "k", ""),
    ],
)
def test_bad_target_is_fatal(endpoint: str, api_key: str, deployment: str) -> None:
    target = TargetConfig(endpoint=endpoint, api_key=api_key, deployment=deployment)
    with pytest.raises(ConfigError):
        BoundedClient(target, RunConfig())


def test_bad_target_aborts_run_before_dispatch() -> None:
    target = TargetConfig(endpoint="ftp://nowhere", api_key="k", deployment="d")
    controller = RunController(RunConfig(concurrent_requests=5, worker_pool_size=2), target)
    with pytest.raises(ConfigError):
        controller.run()
    assert controller.aggregator is None
    assert controller.state is RunState.IDLE


class _CountingHandler(BaseHTTPRequestHandler):
    protocol_version = "HTTP/1.1"
    lock = threading.Lock()
    active = 0
    peak = 0

    def do_POST(self) -> None:
        length = int(self.headers.get("Content-Length", 0))
        self.rfile.read(length)
        cls = type(self)
        with cls.lock:
            cls.active += 1
            cls.peak = max(cls.peak, cls.active)
        time.sleep(0.02)
        with cls.lock:
            cls.active -= 1
        payload = json.dumps(CHOICES_BODY).encode()
        self.send_response(200)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    def log_message(self, format: str, *args: object) -> None:
        pass


@pytest.fixture
def counting_server() -> Iterator[tuple[str, type[_CountingHandler]]]:
    handler = type("Handler", (_CountingHandler,), {"lock": threading.Lock(), "active": 0, "peak": 0})
    server = ThreadingHTTPServer(("127.0.0.1", 0), handler)
    server.daemon_threads = True
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{server.server_address[1]}/", handler
    finally:
        server.shutdown()
        server.server_close()


def test_connection_cap_holds_with_more_workers(counting_server, monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("HTTP_PROXY", "HTTPS_PROXY", "ALL_PROXY", "http_proxy", "https_proxy", "all_proxy"):
        monkeypatch.delenv(name, raising=False)
    endpoint, handler = counting_server
    target = TargetConfig(endpoint=endpoint, api_key="k", deployment="d")
    config = RunConfig(
        concurrent_requests=60,
        worker_pool_size=20,
        connection_pool_limit=3,
        per_call_timeout_sec=10.0,
        overall_deadline_sec=30.0,
    )
    report = RunController(config, target).run()
    assert report.success_count == 60
    assert 1 <= handler.peak <= 3


def _read_request(conn: socket.socket) -> None:
    data = b""
    while b"\r\n\r\n" not in data:
        chunk = conn.recv(65536)
        if not chunk:
            return
        data += chunk
    head, _, body = data.partition(b"\r\n\r\n")
    length = 0
    for line in head.split(b"\r\n")[1:]:
        name, _, value = line.partition(b":")
        if name.strip().lower() == b"content-length":
            length = int(value.strip())
    while len(body) < length:
        chunk = conn.recv(65536)
        if not chunk:
            return
        body += chunk


@pytest.fixture
def closing_server(request: pytest.FixtureRequest) -> Iterator[str]:
    reply: bytes = request.param
    listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    listener.bind(("127.0.0.1", 0))
    listener.listen(64)
    listener.settimeout(0.1)
    stop = threading.Event()

    def serve() -> None:
        while not stop.is_set():
            try:
                conn, _ = listener.accept()
            except socket.timeout:
                continue
            except OSError:
                return
            with conn:
                conn.settimeout(5.0)
                _read_request(conn)
                if reply:
                    conn.sendall(reply)

    thread = threading.Thread(target=serve, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{listener.getsockname()[1]}/"
    finally:
        stop.set()
        thread.join(timeout=2)
        listener.close()


PARTIAL_BODY = (
    b"HTTP/1.1 200 OK\r\n"
    b"Content-Type: application/json\r\n"
    b"Content-Length: 100\r\n"
    b"\r\n"
    b'{"choi'
)


@pytest.mark.parametrize("closing_server", [b"", PARTIAL_BODY], ids=["no-response", "truncated-body"], indirect=True)
def test_server_closing_connection_is_transient(closing_server: str, monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("HTTP_PROXY", "HTTPS_PROXY", "ALL_PROXY", "http_proxy", "https_proxy", "all_proxy"):
        monkeypatch.delenv(name, raising=False)
    target = TargetConfig(endpoint=closing_server, api_key="k", deployment="d")
    config = RunConfig(
        concurrent_requests=6,
        worker_pool_size=2,
        connection_pool_limit=2,
        per_call_timeout_sec=5.0,
        overall_deadline_sec=30.0,
    )
    report = RunController(config, target).run()
    assert report.success_count == 0
    assert report.failure_count == 6
    assert report.transient_network_fault_count == 6
    assert report.other_failure_count == 0
