"""
Authentication Package

Authenticators plugged into the reverse proxy. Each one is an async callable
taking the inbound request and returning the caller's claims, or raising
AuthenticationError.

Modules:
- session: JWTAuthenticator, Bearer session JWTs verified with PyJWT
- tokens: StaticTokenAuthenticator, fixed credential -> claims table
"""

from .session import JWTAuthenticator, extract_token_from_header
from .tokens import StaticTokenAuthenticator

__all__ = [
    "JWTAuthenticator",
    "StaticTokenAuthenticator",
    "extract_token_from_header",
]
