"""
pytest configuration and fixtures.
"""

import json
import socket
import sys
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Generator, Optional

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from pipeserve import HTTPServer, ServerConfig, create_app
from pipeserve.core.rate_limiter import SlidingWindowRateLimiter
from pipeserve.dispatcher import Dispatcher
from pipeserve.http import HTTPRequest, HTTPResponse


class FakeClock:
    """Millisecond clock the tests move by hand."""

    def __init__(self, start: float = 1_700_000_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


def make_request(
    method: str = "GET",
    path: str = "/",
    headers: Optional[Dict[str, str]] = None,
    query: Optional[Dict[str, str]] = None,
    body: Any = None,
) -> HTTPRequest:
    """Build an HTTPRequest the way the parser would (lower-cased headers)."""
    raw_body = b""
    if isinstance(body, (bytes, str)):
        raw_body = body.encode("utf-8") if isinstance(body, str) else body
    elif body is not None:
        raw_body = json.dumps(body).encode("utf-8")

    return HTTPRequest(
        method=method,
        path=path,
        headers={k.lower(): v for k, v in (headers or {}).items()},
        query_params={k: [v] for k, v in (query or {}).items()},
        body=raw_body,
    )


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /search?q=li&limit=10 HTTP/1.1\r\n"
        b"Host: localhost:3000\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: application/json\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample HTTP POST request with JSON body."""
    body = '{"name": "赵六", "email": "zhaoliu@example.com"}'.encode("utf-8")
    return (
        b"POST /users HTTP/1.1\r\n"
        b"Host: localhost:3000\r\n"
        b"Content-Type: application/json\r\n"
        + f"Content-Length: {len(body)}\r\n".encode()
        + b"Connection: close\r\n"
        b"\r\n"
    ) + body


@pytest.fixture
def config() -> ServerConfig:
    """Default test configuration."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,
        min_workers=2,
        max_workers=4,
        timeout=5.0,
        log_level="WARNING",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def limiter(clock: FakeClock) -> SlidingWindowRateLimiter:
    return SlidingWindowRateLimiter(clock=clock)


@pytest.fixture
def app(config: ServerConfig, limiter: SlidingWindowRateLimiter) -> Dispatcher:
    """The full application with fresh seeded stores and a fake clock."""
    return create_app(config, limiter=limiter)


@pytest.fixture
def call(app: Dispatcher) -> Callable[..., HTTPResponse]:
    """call("GET", "/users", headers=..., body=...) → HTTPResponse."""
    def _call(method: str, path: str, **kwargs: Any) -> HTTPResponse:
        return app(make_request(method, path, **kwargs))
    return _call


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class TestServer:
    """Runs an HTTPServer on a background thread."""

    __test__ = False

    def __init__(self, server: HTTPServer):
        self.server = server
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self.server.address[1]

    def start(self) -> None:
        self._thread = threading.Thread(
            target=self.server.run,
            kwargs={"configure_logging": False},
            daemon=True,
        )
        self._thread.start()

        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError("Server failed to start")

    def stop(self) -> None:
        self.server.shutdown()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=10.0)


@pytest.fixture
def test_server(config: ServerConfig, free_port: int) -> Generator[TestServer, None, None]:
    """The full application behind a real socket."""
    config.port = free_port
    config.keep_alive_timeout = 1.0
    server = HTTPServer(config)

    srv = TestServer(server)
    srv.start()

    yield srv

    srv.stop()
