"""
Exception Hierarchy
===================

Every error raised by the proxy derives from ProxyError.

Authentication failures are classified by tag (AuthFailure) so the pipeline
can tell a rejected caller (401) from a broken authenticator (500) without
comparing against a shared error instance.

Forwarding errors carry the HTTP status the pipeline answers with. A
RelayError happens once the response is under way, so it has no status of
its own; it is reported to a callback and ends up in the logs.
"""

from enum import Enum
from typing import Dict, Optional


class ProxyError(Exception):
    """Base exception for all proxy errors."""


class ConfigurationError(ProxyError):
    """Raised when the proxy is constructed with invalid configuration."""


# =============================================================================
# Authentication
# =============================================================================

class AuthFailure(str, Enum):
    """Classification of an authentication failure."""

    UNAUTHORIZED = "unauthorized"
    INTERNAL = "internal"


class AuthenticationError(ProxyError):
    """
    Raised by an authenticator when a request cannot be authenticated.

    Attributes:
        kind: UNAUTHORIZED for absent or invalid credentials, INTERNAL for
              failures of the authenticator itself
        headers: Extra response headers for the rejection (e.g. WWW-Authenticate)
    """

    def __init__(
        self,
        message: str = "authentication failed",
        kind: AuthFailure = AuthFailure.INTERNAL,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.headers = headers or {}

    @classmethod
    def unauthorized(
        cls,
        message: str = "unauthorized",
        headers: Optional[Dict[str, str]] = None,
    ) -> "AuthenticationError":
        return cls(message, kind=AuthFailure.UNAUTHORIZED, headers=headers)

    @property
    def is_unauthorized(self) -> bool:
        return self.kind is AuthFailure.UNAUTHORIZED


# =============================================================================
# Forwarding
# =============================================================================

class ForwardError(ProxyError):
    """Base class for errors raised while forwarding a request upstream."""

    status_code: int = 500


class ForwardConfigError(ForwardError):
    """The outbound request could not be prepared (bad base URL, build or configure failure)."""

    status_code = 500


class UpstreamUnreachable(ForwardError):
    """The upstream could not be reached or the transport failed."""

    status_code = 502


class RelayError(ProxyError):
    """Relaying the upstream body failed mid-copy, on the read or the write side."""
