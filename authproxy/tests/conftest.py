"""
Shared fixtures for the authproxy tests.

Upstreams are simulated with httpx.MockTransport; every request the proxy
sends is recorded so tests can inspect the outbound URL, headers and body.
"""

from typing import Callable, List, Optional

import httpx
import pytest
from fastapi import Request
from fastapi.testclient import TestClient

from authproxy.config import Settings
from authproxy.main import create_app
from authproxy.proxy import HTTPBaseURLForwarder, ReverseProxy


class RecordingUpstream:
    """MockTransport handler that records requests and returns a canned response."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.status_code = 200
        self.headers: list = [("Content-Type", "text/plain")]
        self.body = b"upstream body"
        self.error: Optional[Exception] = None
        self.stream: Optional[httpx.AsyncByteStream] = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(
            self.status_code,
            headers=self.headers,
            stream=self.stream or httpx.ByteStream(self.body),
        )

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


class CountingClientFactory:
    """Client factory that counts how many clients it has built."""

    def __init__(self, upstream: Callable):
        self.upstream = upstream
        self.calls = 0

    def __call__(self) -> httpx.AsyncClient:
        self.calls += 1
        return httpx.AsyncClient(transport=httpx.MockTransport(self.upstream))


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def upstream():
    """Recording upstream handler"""
    return RecordingUpstream()


@pytest.fixture
def client_factory(upstream):
    """Counting client factory wired to the recording upstream"""
    return CountingClientFactory(upstream)


@pytest.fixture
def forwarder(client_factory):
    """Forwarder pointing at http://upstream/a/"""
    return HTTPBaseURLForwarder("http://upstream/a/", client_factory=client_factory)


@pytest.fixture
def identity():
    """Claims returned by the default authenticator"""
    return {"User": "alice", "Id": "42"}


@pytest.fixture
def authenticate(identity):
    """Authenticator that accepts every request"""
    async def _authenticate(request: Request):
        return identity
    return _authenticate


@pytest.fixture
def settings():
    """Settings for the test application"""
    return Settings(FORWARD_BASE_URL="http://upstream/a/")


@pytest.fixture
def make_client(settings):
    """Build a TestClient around a ReverseProxy"""
    def _make_client(proxy: ReverseProxy) -> TestClient:
        return TestClient(create_app(settings=settings, proxy=proxy))
    return _make_client


@pytest.fixture
def make_request():
    """Build a bare Starlette request from a minimal ASGI scope"""
    def _make_request(
        path: str = "/",
        method: str = "GET",
        headers: Optional[list] = None,
        query_string: bytes = b"",
        body: bytes = b"",
    ) -> Request:
        scope = {
            "type": "http",
            "asgi": {"version": "3.0", "spec_version": "2.4"},
            "http_version": "1.1",
            "method": method,
            "scheme": "http",
            "path": path,
            "raw_path": path.encode("latin-1"),
            "root_path": "",
            "query_string": query_string,
            "headers": [
                (name.lower().encode("latin-1"), value.encode("latin-1"))
                for name, value in (headers or [])
            ],
            "server": ("testserver", 80),
            "client": ("testclient", 50000),
        }

        async def receive():
            return {"type": "http.request", "body": body, "more_body": False}

        return Request(scope, receive)
    return _make_request
