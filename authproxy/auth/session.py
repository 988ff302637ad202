"""
JWT Session Authentication
==========================

Verifies HMAC-signed session JWTs presented as ``Authorization: Bearer <token>``
and turns a configured subset of their claims into the identity forwarded
upstream.
"""

import logging
from typing import Dict, Iterable, Optional

import jwt
from fastapi import Request
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError

from ..exceptions import AuthenticationError, AuthFailure, ConfigurationError

logger = logging.getLogger(__name__)

BEARER_CHALLENGE = {"WWW-Authenticate": "Bearer"}


def extract_token_from_header(authorization: Optional[str]) -> str:
    """
    Extract Bearer token from Authorization header.

    Args:
        authorization: Authorization header value

    Returns:
        Extracted token string

    Raises:
        AuthenticationError: If the header is missing or not a Bearer credential
    """
    if not authorization:
        raise AuthenticationError.unauthorized(
            "Missing Authorization header", headers=BEARER_CHALLENGE
        )

    parts = authorization.split()

    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AuthenticationError.unauthorized(
            "Invalid Authorization header format. Expected: 'Bearer <token>'",
            headers=BEARER_CHALLENGE,
        )

    return parts[1]


class JWTAuthenticator:
    """
    Authenticate requests carrying a session JWT.

    Args:
        secret: HMAC secret used to verify signatures
        algorithm: One of HS256, HS384, HS512
        claims: Token claims copied into the identity (missing ones are skipped)
        issuer: Expected ``iss`` claim, if any
    """

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        claims: Iterable[str] = ("sub", "email", "name"),
        issuer: Optional[str] = None,
    ) -> None:
        if not secret:
            raise ConfigurationError("SESSION_JWT_SECRET not configured")
        self.secret = secret
        self.algorithm = algorithm
        self.claims = tuple(claims)
        self.issuer = issuer

    async def __call__(self, request: Request) -> Dict[str, str]:
        token = extract_token_from_header(request.headers.get("Authorization"))
        decoded = self.verify(token)
        return {
            claim: str(decoded[claim])
            for claim in self.claims
            if decoded.get(claim) is not None
        }

    def verify(self, token: str) -> Dict:
        """
        Verify and decode a session JWT.

        Raises:
            AuthenticationError: UNAUTHORIZED for expired or invalid tokens,
                                 INTERNAL for anything else
        """
        options = {
            "verify_signature": True,
            "verify_exp": True,
            "verify_iat": True,
            "require": ["exp", "iat", "sub"],
        }

        try:
            if self.issuer:
                return jwt.decode(
                    token,
                    self.secret,
                    algorithms=[self.algorithm],
                    issuer=self.issuer,
                    options=options,
                )
            return jwt.decode(token, self.secret, algorithms=[self.algorithm], options=options)

        except ExpiredSignatureError as e:
            logger.warning("JWT token expired")
            raise AuthenticationError.unauthorized(
                "Token has expired", headers=BEARER_CHALLENGE
            ) from e
        except InvalidTokenError as e:
            logger.warning(f"Invalid JWT token: {e}")
            raise AuthenticationError.unauthorized(
                f"Invalid token: {e}", headers=BEARER_CHALLENGE
            ) from e
        except Exception as e:
            raise AuthenticationError(
                f"Token verification failed: {e}", kind=AuthFailure.INTERNAL
            ) from e
