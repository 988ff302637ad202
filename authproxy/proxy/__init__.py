"""
Proxy Package
=============

Authenticating reverse proxy core.

Main Components:
----------------
- pipeline.py: ReverseProxy, authenticate -> rewrite headers -> forward -> relay
- headers.py: Trust-boundary header rewriting (prefix stripping, claim injection)
- forwarder.py: HTTPBaseURLForwarder, URL joining, shared client, streaming relay

Usage:
------
    from authproxy.proxy import HTTPBaseURLForwarder, ReverseProxy

    proxy = ReverseProxy(
        authenticate,
        HTTPBaseURLForwarder("http://localhost:8000/"),
    )
    response = await proxy.handle(request)
"""

from .forwarder import Forwarder, HTTPBaseURLForwarder, join_url, replace_headers
from .headers import DEFAULT_HEADER_PREFIX, normalize_header_prefix, rewrite_headers
from .pipeline import AuthenticateFunc, Identity, Outcome, ReverseProxy

__all__ = [
    "AuthenticateFunc",
    "DEFAULT_HEADER_PREFIX",
    "Forwarder",
    "HTTPBaseURLForwarder",
    "Identity",
    "Outcome",
    "ReverseProxy",
    "join_url",
    "normalize_header_prefix",
    "replace_headers",
    "rewrite_headers",
]
