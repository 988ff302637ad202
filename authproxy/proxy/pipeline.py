"""
Authenticating Reverse Proxy Pipeline
=====================================

Each inbound request goes through:

1. Authentication via the configured authenticate function
2. Header rewriting: reserved-prefix headers are stripped and one header
   per identity claim is injected under that prefix
3. Forwarding to the upstream and streaming the response back

Outcome to status mapping:
--------------------------
- UNAUTHORIZED          -> 401
- AUTHENTICATION_ERROR  -> 500
- FORWARD_CONFIG_ERROR  -> 500
- UPSTREAM_UNREACHABLE  -> 502
- FORWARDED             -> upstream status
- RELAY_ERROR           -> response already under way, logged only
"""

import logging
from enum import Enum
from types import MappingProxyType
from typing import Awaitable, Callable, Dict, Mapping, Optional

import httpx
from fastapi import Request, Response, status
from fastapi.responses import JSONResponse

from ..exceptions import (
    AuthenticationError,
    ConfigurationError,
    ForwardError,
    RelayError,
    UpstreamUnreachable,
)
from .forwarder import Forwarder
from .headers import normalize_header_prefix, rewrite_headers

logger = logging.getLogger(__name__)

Identity = Mapping[str, str]
AuthenticateFunc = Callable[[Request], Awaitable[Optional[Identity]]]


class Outcome(str, Enum):
    """Terminal state of one pass through the pipeline."""

    UNAUTHORIZED = "unauthorized"
    AUTHENTICATION_ERROR = "authentication_error"
    FORWARD_CONFIG_ERROR = "forward_config_error"
    UPSTREAM_UNREACHABLE = "upstream_unreachable"
    FORWARDED = "forwarded"
    RELAY_ERROR = "relay_error"


class ReverseProxy:
    """
    Reverse proxy that authenticates requests before forwarding them.

    Configuration is fixed at construction; an invalid header prefix raises
    ConfigurationError here rather than on the first request.

    Args:
        authenticate: Async callable returning the caller's claims
        forwarder: Sends the request upstream
        header_prefix: Namespace for injected claim headers, defaults to
                       ``Internal-``; must end with ``-``
        response_headers: Default response headers; upstream headers of the
                          same name replace them
    """

    def __init__(
        self,
        authenticate: AuthenticateFunc,
        forwarder: Forwarder,
        *,
        header_prefix: Optional[str] = None,
        response_headers: Optional[Mapping[str, str]] = None,
    ) -> None:
        if authenticate is None:
            raise ConfigurationError("authenticate function is required")
        if forwarder is None:
            raise ConfigurationError("forwarder is required")

        self._authenticate = authenticate
        self._forwarder = forwarder
        self._header_prefix = normalize_header_prefix(header_prefix)
        self._response_headers: Mapping[str, str] = MappingProxyType(dict(response_headers or {}))

    @property
    def header_prefix(self) -> str:
        return self._header_prefix

    @property
    def forwarder(self) -> Forwarder:
        return self._forwarder

    async def handle(self, request: Request) -> Response:
        """Run the pipeline for one request and return the response to send."""
        try:
            identity = await self._authenticate(request)
        except AuthenticationError as e:
            if e.is_unauthorized:
                logger.debug(
                    "Request rejected by authenticator",
                    extra={"path": request.url.path, "method": request.method}
                )
                return self._error(
                    request,
                    Outcome.UNAUTHORIZED,
                    status.HTTP_401_UNAUTHORIZED,
                    "Unauthorized",
                    headers=e.headers,
                )
            logger.error(f"Authentication failed: {e}")
            return self._error(
                request,
                Outcome.AUTHENTICATION_ERROR,
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "Internal server error",
            )
        except Exception as e:
            logger.error(f"Authentication failed: {e}", exc_info=True)
            return self._error(
                request,
                Outcome.AUTHENTICATION_ERROR,
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "Internal server error",
            )

        if identity is not None:
            identity = MappingProxyType(dict(identity))

        def configure(outbound: httpx.Request) -> None:
            outbound.headers = rewrite_headers(
                request.headers.raw,
                outbound.headers,
                self._header_prefix,
                identity,
            )

        def on_relay_error(error: RelayError) -> None:
            request.state.proxy_outcome = Outcome.RELAY_ERROR
            logger.error(
                f"could not forward request: {error}",
                extra={"path": request.url.path, "method": request.method}
            )

        try:
            response = await self._forwarder.forward(
                request,
                configure,
                response_headers=self._response_headers,
                on_relay_error=on_relay_error,
            )
        except ForwardError as e:
            outcome = _forward_outcome(e)
            logger.error(
                f"could not forward request: {e}",
                extra={"path": request.url.path, "outcome": outcome.value}
            )
            return self._error(request, outcome, e.status_code, _detail(outcome))

        request.state.proxy_outcome = Outcome.FORWARDED
        logger.debug(
            "Forwarded request",
            extra={
                "path": request.url.path,
                "method": request.method,
                "status_code": response.status_code,
            }
        )
        return response

    def _error(
        self,
        request: Request,
        outcome: Outcome,
        status_code: int,
        detail: str,
        headers: Optional[Dict[str, str]] = None,
    ) -> Response:
        request.state.proxy_outcome = outcome
        return JSONResponse(
            status_code=status_code,
            content={"detail": detail},
            headers=headers or None,
        )


def _forward_outcome(error: ForwardError) -> Outcome:
    if isinstance(error, UpstreamUnreachable):
        return Outcome.UPSTREAM_UNREACHABLE
    return Outcome.FORWARD_CONFIG_ERROR


def _detail(outcome: Outcome) -> str:
    if outcome is Outcome.UPSTREAM_UNREACHABLE:
        return "Upstream unreachable"
    return "Internal server error"
