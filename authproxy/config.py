"""
Configuration module for the authenticating reverse proxy.

This module uses Pydantic Settings to load and validate environment variables
for the forward destination, the trust-boundary header prefix, the
authenticator and the server.

Environment variables are loaded from .env file or system environment.
"""

from functools import lru_cache
from typing import Dict, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError
from .proxy.headers import DEFAULT_HEADER_PREFIX, normalize_header_prefix


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Values are validated once at startup; a bad header prefix fails here
    instead of on the first request.
    """

    # =========================================================================
    # Forwarding
    # =========================================================================

    FORWARD_BASE_URL: str = Field(
        ...,
        description="Upstream base URL every request is forwarded under (e.g., http://backend:8000/)",
        min_length=1,
    )

    HEADER_PREFIX: str = Field(
        default=DEFAULT_HEADER_PREFIX,
        description="Prefix of trusted identity headers; must end with '-'",
    )

    DEFAULT_RESPONSE_HEADERS: Dict[str, str] = Field(
        default_factory=dict,
        description="Headers added to every response unless the upstream sends the same header (JSON object)",
    )

    # =========================================================================
    # Authentication
    # =========================================================================

    AUTH_MODE: str = Field(
        default="static",
        description="Authenticator to use: 'static' (token table) or 'jwt'",
    )

    AUTH_HEADER: str = Field(
        default="Authorization",
        description="Header carrying the credential for static token authentication",
    )

    STATIC_TOKENS: Dict[str, Dict[str, str]] = Field(
        default_factory=dict,
        description="Token -> claims table for static authentication (JSON object)",
    )

    SESSION_JWT_SECRET: Optional[str] = Field(
        None,
        description="Secret key for verifying session JWTs",
        min_length=32,
    )

    SESSION_JWT_ALGORITHM: str = Field(
        default="HS256",
        description="JWT signing algorithm (HS256, HS384, or HS512)",
    )

    JWT_ISSUER: Optional[str] = Field(
        None,
        description="Expected 'iss' claim; not checked when unset",
    )

    JWT_CLAIMS: str = Field(
        default="sub,email,name",
        description="Comma-separated token claims forwarded as identity headers",
    )

    # =========================================================================
    # Server Configuration
    # =========================================================================

    MIDDLEWARE_HOST: str = Field(
        default="0.0.0.0",
        description="Host to bind the proxy server",
    )

    MIDDLEWARE_PORT: int = Field(
        default=8080,
        description="Port to bind the proxy server",
        ge=1,
        le=65535,
    )

    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    # =========================================================================
    # Pydantic Settings Configuration
    # =========================================================================

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def jwt_claims_list(self) -> List[str]:
        """
        Parse and return JWT_CLAIMS as a clean list.

        Returns:
            List of claim names without whitespace.
        """
        return [
            claim.strip()
            for claim in self.JWT_CLAIMS.split(",")
            if claim.strip()
        ]

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("HEADER_PREFIX")
    @classmethod
    def validate_header_prefix(cls, v: str) -> str:
        """
        Apply the default for an empty prefix and require the '-' suffix.

        Raises:
            ValueError: If the prefix does not end with '-'
        """
        try:
            return normalize_header_prefix(v)
        except ConfigurationError as e:
            raise ValueError(str(e)) from e

    @field_validator("AUTH_MODE")
    @classmethod
    def validate_auth_mode(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in ("static", "jwt"):
            raise ValueError(f"AUTH_MODE must be 'static' or 'jwt', got: {v}")
        return v

    @field_validator("SESSION_JWT_ALGORITHM")
    @classmethod
    def validate_jwt_algorithm(cls, v: str) -> str:
        """
        Validate JWT algorithm is one of the supported HMAC algorithms.

        Raises:
            ValueError: If algorithm is not supported
        """
        allowed_algorithms = ["HS256", "HS384", "HS512"]

        if v not in allowed_algorithms:
            raise ValueError(
                f"JWT algorithm must be one of {allowed_algorithms}, got: {v}"
            )

        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        v = v.upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid LOG_LEVEL: {v}")
        return v


# =============================================================================
# Settings Singleton
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get or create a singleton Settings instance.

    This function is cached so that the settings are loaded only once
    during the application lifecycle.

    Returns:
        Settings instance with all configuration loaded and validated.

    Raises:
        ValidationError: If required environment variables are missing
                        or invalid.
    """
    return Settings()
