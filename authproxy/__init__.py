"""
authproxy
=========

Authenticating reverse HTTP proxy.

Inbound requests are authenticated by a pluggable authenticator, headers in
the trusted ``Internal-`` namespace are stripped and replaced by the caller's
claims, and the request is forwarded to a single upstream whose response is
streamed back unchanged.
"""

from .exceptions import (
    AuthenticationError,
    AuthFailure,
    ConfigurationError,
    ForwardConfigError,
    ForwardError,
    ProxyError,
    RelayError,
    UpstreamUnreachable,
)
from .proxy import HTTPBaseURLForwarder, Outcome, ReverseProxy

__all__ = [
    "AuthFailure",
    "AuthenticationError",
    "ConfigurationError",
    "ForwardConfigError",
    "ForwardError",
    "HTTPBaseURLForwarder",
    "Outcome",
    "ProxyError",
    "RelayError",
    "ReverseProxy",
    "UpstreamUnreachable",
]
