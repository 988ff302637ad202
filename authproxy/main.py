"""
FastAPI Proxy Application Factory
=================================

Entry point for the authenticating reverse proxy.

Architecture:
    Clients → authproxy (this service) → Upstream service

Every path and method is handled by a single catch-all route that runs the
ReverseProxy pipeline: authenticate, rewrite identity headers, forward,
relay the upstream response.

Environment Variables:
    - FORWARD_BASE_URL: Upstream base URL (required)
    - HEADER_PREFIX: Identity header prefix (default: Internal-)
    - AUTH_MODE: 'static' or 'jwt' (default: static)
    - STATIC_TOKENS: JSON token -> claims table for static mode
    - SESSION_JWT_SECRET: Secret for verifying session JWTs in jwt mode
    - LOG_LEVEL: Logging level (default: INFO)

Running the Service:
    Development:
        uvicorn authproxy.main:create_app --factory --reload --port 8080

    Production:
        python -m authproxy.main
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.types import Receive, Scope, Send
import uvicorn

from .auth import JWTAuthenticator, StaticTokenAuthenticator
from .config import Settings, get_settings
from .exceptions import ConfigurationError
from .proxy import AuthenticateFunc, HTTPBaseURLForwarder, ReverseProxy


class ProxyEndpoint:
    """ASGI endpoint handing every method and path to the app's ReverseProxy."""

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        request = Request(scope, receive, send)
        response = await request.app.state.proxy.handle(request)
        await response(scope, receive, send)


# Configure structured JSON logging
def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s", "module": "%(module)s", "function": "%(funcName)s"}',
        handlers=[logging.StreamHandler(sys.stdout)]
    )


def build_authenticator(settings: Settings) -> AuthenticateFunc:
    """
    Create the authenticator selected by AUTH_MODE.

    Raises:
        ConfigurationError: If the selected mode is missing its settings
    """
    if settings.AUTH_MODE == "jwt":
        if not settings.SESSION_JWT_SECRET:
            raise ConfigurationError("AUTH_MODE=jwt requires SESSION_JWT_SECRET")
        return JWTAuthenticator(
            secret=settings.SESSION_JWT_SECRET,
            algorithm=settings.SESSION_JWT_ALGORITHM,
            claims=settings.jwt_claims_list,
            issuer=settings.JWT_ISSUER,
        )

    if not settings.STATIC_TOKENS:
        logging.getLogger("authproxy.main").warning(
            "STATIC_TOKENS is empty, every request will be rejected"
        )
    return StaticTokenAuthenticator(settings.STATIC_TOKENS, header=settings.AUTH_HEADER)


def build_proxy(settings: Settings) -> ReverseProxy:
    """Create the ReverseProxy described by ``settings``."""
    return ReverseProxy(
        build_authenticator(settings),
        HTTPBaseURLForwarder(settings.FORWARD_BASE_URL),
        header_prefix=settings.HEADER_PREFIX,
        response_headers=settings.DEFAULT_RESPONSE_HEADERS,
    )


def create_app(
    settings: Optional[Settings] = None,
    proxy: Optional[ReverseProxy] = None,
) -> FastAPI:
    """
    Application factory function.

    Creates the FastAPI application with:
        - Lifespan management (closes the upstream client on shutdown)
        - Catch-all proxy route
        - Global exception handler

    Args:
        settings: Settings to use, loaded from the environment when omitted
        proxy: Prebuilt proxy, built from settings when omitted

    Returns:
        FastAPI: Configured application instance
    """
    settings = settings or get_settings()
    proxy = proxy or build_proxy(settings)
    logger = logging.getLogger("authproxy.main")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Starting authproxy",
            extra={
                "forward_base_url": settings.FORWARD_BASE_URL,
                "header_prefix": proxy.header_prefix,
                "auth_mode": settings.AUTH_MODE,
            }
        )

        yield

        logger.info("Shutting down authproxy")
        aclose = getattr(proxy.forwarder, "aclose", None)
        if aclose is not None:
            await aclose()

    app = FastAPI(
        title="authproxy",
        description="Authenticating reverse proxy",
        version="1.0.0",
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.proxy = proxy

    # A class endpoint is mounted as raw ASGI, so no method is rejected.
    app.router.add_route("/{path:path}", ProxyEndpoint(), include_in_schema=False)

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Log unhandled errors and return a standardized 500 response."""
        logger.error(
            f"Unhandled exception: {str(exc)}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__
            },
            exc_info=True
        )

        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
                "detail": str(exc) if settings.LOG_LEVEL == "DEBUG" else None
            }
        )

    return app


def main() -> None:
    """Run the proxy with uvicorn using the configured host and port."""
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)

    uvicorn.run(
        create_app(settings),
        host=settings.MIDDLEWARE_HOST,
        port=settings.MIDDLEWARE_PORT,
        log_level=settings.LOG_LEVEL.lower()
    )


if __name__ == "__main__":
    main()
