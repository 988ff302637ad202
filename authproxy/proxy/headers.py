"""
Trust-Boundary Header Rewriting
===============================

Headers under the configured prefix (``Internal-`` by default) are reserved
for identity claims injected by the proxy. Anything a client sends under that
prefix is dropped before forwarding, so a caller can never pose as another
user by setting ``Internal-User`` itself.
"""

import logging
from typing import Iterable, Mapping, Optional, Tuple

import httpx

from ..exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_HEADER_PREFIX = "Internal-"
HEADER_PREFIX_SEPARATOR = "-"

# Owned by the outbound transport; httpx derives them from the URL and body.
TRANSPORT_HEADERS = frozenset({
    b"host",
    b"content-length",
    b"transfer-encoding",
    b"connection",
})


def normalize_header_prefix(prefix: Optional[str]) -> str:
    """
    Validate a header prefix, falling back to the default when empty.

    Args:
        prefix: Configured prefix, possibly empty or None

    Returns:
        The prefix to use

    Raises:
        ConfigurationError: If the prefix does not end with the separator
    """
    if not prefix:
        logger.info(
            "Header prefix is empty, using default value",
            extra={"new_prefix": DEFAULT_HEADER_PREFIX}
        )
        return DEFAULT_HEADER_PREFIX

    if not prefix.endswith(HEADER_PREFIX_SEPARATOR):
        raise ConfigurationError(
            f"Header prefix {prefix!r} must end with a "
            f"{HEADER_PREFIX_SEPARATOR!r} character"
        )

    return prefix


def rewrite_headers(
    inbound: Iterable[Tuple[bytes, bytes]],
    outbound: httpx.Headers,
    prefix: str,
    identity: Optional[Mapping[str, str]] = None,
) -> httpx.Headers:
    """
    Build the outbound header set from the inbound one.

    Inbound headers starting with ``prefix`` are dropped, every other header
    is appended with all of its values, and each identity claim is set as
    ``prefix + claim`` with exactly one value.

    Args:
        inbound: Raw (name, value) pairs from the ASGI scope
        outbound: Headers already present on the outbound request
        prefix: Validated header prefix
        identity: Claims returned by the authenticator, or None

    Returns:
        The new outbound header set
    """
    reserved = prefix.lower().encode("latin-1")

    items = list(outbound.raw)
    for name, value in inbound:
        lowered = name.lower()
        if lowered.startswith(reserved) or lowered in TRANSPORT_HEADERS:
            continue
        items.append((name, value))

    headers = httpx.Headers(items)

    if identity:
        for claim, value in identity.items():
            # Replaces every existing value, so exactly one remains.
            headers[prefix + claim] = value

    return headers
