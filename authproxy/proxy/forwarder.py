"""
Upstream Forwarding
===================

Sends an authenticated request on to a fixed base URL and streams the
upstream response back to the client.

URL joining:
------------
    base ``http://backend/api``  + ``/users/1?x=1``  ->  ``http://backend/api/users/1?x=1``
    base ``http://backend/api/`` + ``/``             ->  ``http://backend/api/``

The path and query are forwarded as the inbound bytes, never re-quoted. The
outbound client is created on first use and shared by every request
afterwards.
"""

import logging
import threading
from typing import AsyncIterator, Callable, Mapping, Optional, Protocol

import httpx
from fastapi import Request
from fastapi.responses import StreamingResponse
from starlette.datastructures import MutableHeaders
from starlette.requests import ClientDisconnect
from starlette.types import Receive, Scope, Send

from ..exceptions import ForwardConfigError, RelayError, UpstreamUnreachable

logger = logging.getLogger(__name__)

ConfigureFunc = Callable[[httpx.Request], None]
RelayErrorFunc = Callable[[RelayError], None]

# Framing is redone by the ASGI server for the relayed body.
RESPONSE_SKIP_HEADERS = frozenset({b"transfer-encoding"})


def default_client_factory() -> httpx.AsyncClient:
    """Client used when none is injected; no timeout, redirects are relayed."""
    return httpx.AsyncClient(timeout=None, follow_redirects=False)


class Forwarder(Protocol):
    """Sends a request to its next destination and relays the response."""

    async def forward(
        self,
        request: Request,
        configure: ConfigureFunc,
        *,
        response_headers: Optional[Mapping[str, str]] = None,
        on_relay_error: Optional[RelayErrorFunc] = None,
    ) -> StreamingResponse: ...


def join_url(base_url: str, raw_path: bytes, query_string: bytes) -> httpx.URL:
    """
    Combine the base URL with an inbound path and query string.

    Raises:
        ForwardConfigError: If the base URL cannot be parsed
    """
    try:
        forward_url = httpx.URL(base_url)
    except (httpx.InvalidURL, TypeError, ValueError) as e:
        raise ForwardConfigError(f"could not parse base URL {base_url!r}: {e}") from e

    if not forward_url.scheme or not forward_url.host:
        raise ForwardConfigError(f"base URL {base_url!r} must be absolute")

    path = forward_url.raw_path.split(b"?", 1)[0]
    if not path.endswith(b"/"):
        path += b"/"

    if raw_path and raw_path != b"/":
        path += raw_path[1:]

    # httpx re-quotes path and query in every public constructor, so the
    # inbound bytes are placed on the parsed form directly.
    forward_url._uri_reference = forward_url._uri_reference._replace(
        path=_target_text(path),
        query=_target_text(query_string) if query_string else None,
        fragment=None,
    )
    return forward_url


def _target_text(raw: bytes) -> str:
    """Decode request-target bytes, escaping only bytes a request line cannot carry."""
    return "".join(chr(b) if 0x20 < b < 0x7F else f"%{b:02X}" for b in raw)


def replace_headers(headers: MutableHeaders, upstream: httpx.Headers) -> MutableHeaders:
    """
    Overwrite ``headers`` with every header the upstream sent.

    A name present upstream loses all of its existing values first, so the
    result never mixes proxy and upstream values for the same header.
    """
    upstream_raw = [
        (name.lower(), value)
        for name, value in upstream.raw
        if name.lower() not in RESPONSE_SKIP_HEADERS
    ]
    upstream_names = {name for name, _ in upstream_raw}

    for name in upstream_names:
        del headers[name.decode("latin-1")]
    headers.raw.extend(upstream_raw)

    return headers


class HTTPBaseURLForwarder:
    """
    Forwarder that sends every request under a single base URL.

    Args:
        base_url: Forward destination, e.g. ``http://backend:8000/``
        client_factory: Builds the shared client; called at most once
    """

    def __init__(
        self,
        base_url: str,
        client_factory: Callable[[], httpx.AsyncClient] = default_client_factory,
    ) -> None:
        self._base_url = base_url
        self._client_factory = client_factory
        self._client: Optional[httpx.AsyncClient] = None
        self._lock = threading.Lock()

    @property
    def base_url(self) -> str:
        return self._base_url

    def client(self) -> httpx.AsyncClient:
        """Return the shared client, creating it on first use."""
        client = self._client
        if client is not None:
            return client

        with self._lock:
            if self._client is None:
                self._client = self._client_factory()
                logger.debug("Created upstream client", extra={"base_url": self._base_url})
            return self._client

    async def aclose(self) -> None:
        """Close the shared client if it was ever created."""
        with self._lock:
            client, self._client = self._client, None
        if client is not None:
            await client.aclose()

    def build_request(self, request: Request) -> httpx.Request:
        """
        Build the outbound request for ``request`` without sending it.

        The body is streamed from the inbound request. An inbound
        Content-Length is kept so the body is not re-framed as chunked.
        """
        raw_path = request.scope.get("raw_path") or request.url.path.encode("latin-1")
        raw_path = raw_path.split(b"?", 1)[0]
        url = join_url(self._base_url, raw_path, request.scope.get("query_string", b""))

        headers = []
        content = None
        content_length = request.headers.get("content-length")
        if content_length is not None:
            headers.append(("Content-Length", content_length))
            content = request.stream()
        elif "transfer-encoding" in request.headers:
            content = request.stream()

        try:
            return httpx.Request(request.method, url, headers=headers, content=content)
        except (httpx.HTTPError, TypeError, ValueError) as e:
            raise ForwardConfigError(f"could not create request: {e}") from e

    async def forward(
        self,
        request: Request,
        configure: ConfigureFunc,
        *,
        response_headers: Optional[Mapping[str, str]] = None,
        on_relay_error: Optional[RelayErrorFunc] = None,
    ) -> StreamingResponse:
        """
        Forward ``request`` upstream and stream the response back.

        Args:
            request: Inbound request
            configure: Called with the outbound request before it is sent
            response_headers: Proxy default response headers; upstream
                              headers of the same name replace them
            on_relay_error: Called if relaying the body fails, on the
                            upstream read or the client write

        Returns:
            Streaming response carrying the upstream status, headers and body

        Raises:
            ForwardConfigError: Base URL, request building or configure failed
            UpstreamUnreachable: The upstream call failed
        """
        outbound = self.build_request(request)

        try:
            configure(outbound)
        except Exception as e:
            raise ForwardConfigError(f"could not configure request: {e}") from e

        try:
            upstream = await self.client().send(outbound, stream=True)
        except httpx.RequestError as e:
            raise UpstreamUnreachable(f"could not send request: {e}") from e

        try:
            headers = replace_headers(MutableHeaders(headers=response_headers), upstream.headers)
        except Exception:
            await upstream.aclose()
            raise

        response = RelayResponse(upstream, on_relay_error)
        response.raw_headers = headers.raw
        return response


class RelayResponse(StreamingResponse):
    """
    Streams an upstream body to the client.

    The upstream response is closed on every exit path, including a client
    that is gone before the first byte. Failures on either side of the copy
    go to ``on_relay_error`` (or the log) as RelayError; the status line may
    already be sent, so they never become a response of their own.
    """

    def __init__(
        self,
        upstream: httpx.Response,
        on_relay_error: Optional[RelayErrorFunc] = None,
    ) -> None:
        self.upstream = upstream
        self.on_relay_error = on_relay_error
        super().__init__(self._relay(), status_code=upstream.status_code)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        except (OSError, ClientDisconnect) as e:
            self._report(RelayError(f"could not write response: {e}"), e)
        finally:
            await self.upstream.aclose()

    async def _relay(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self.upstream.aiter_raw():
                yield chunk
        except (httpx.HTTPError, httpx.StreamError) as e:
            self._report(RelayError(f"could not read upstream body: {e}"), e)
        finally:
            await self.upstream.aclose()

    def _report(self, error: RelayError, cause: BaseException) -> None:
        error.__cause__ = cause
        if self.on_relay_error is not None:
            self.on_relay_error(error)
        else:
            logger.error(str(error))
