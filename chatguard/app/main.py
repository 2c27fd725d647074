from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from chatguard.app.api.chat import router as chat_router
from chatguard.app.api.errors import internal_server_error, log_server_error
from chatguard.app.api.translate import router as translate_router
from chatguard.app.core.config import settings
from chatguard.app.core.http_client import init_http_client
from chatguard.app.core.logging import get_logger, setup_logging
from chatguard.app.exceptions import PayloadTooLargeError, ProviderError, RateLimitedError
from chatguard.app.middleware.rate_limit import RateLimiter
from chatguard.app.middleware.rate_limit.store import InMemoryBucketStore
from chatguard.app.middleware.request_id import REQUEST_ID_HEADER, RequestIdMiddleware, get_request_id
from chatguard.app.middleware.request_size import RequestSizeLimitMiddleware
from chatguard.app.providers.client import ProviderClient
from chatguard.app.providers.mock import MockProvider


def build_provider_client(http_client: Any = None) -> ProviderClient:
    """Provider client for the current settings (canned answers in mock mode)."""
    if settings.ai_mock_mode:
        return ProviderClient(api_keys=["mock-key"], provider_factory=lambda key: MockProvider(api_key=key))
    return ProviderClient(http_client=http_client)


def create_app(
    provider_client: Optional[ProviderClient] = None,
    rate_limiter: Optional[RateLimiter] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        provider_client: Use this client instead of building one at startup
        rate_limiter: Use this limiter instead of a fresh in-memory one

    Returns:
        Configured FastAPI application instance
    """
    setup_logging()
    logger = get_logger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Open the shared HTTP pool and build the provider client on startup."""
        async with init_http_client() as http_client:
            if getattr(app.state, "provider_client", None) is None:
                app.state.provider_client = build_provider_client(http_client)

            client = app.state.provider_client
            if not client.is_configured():
                logger.warning("No Gemini API keys configured; AI routes will answer 500")

            logger.info(
                f"Application startup complete: {client.key_count} provider key(s), "
                f"mock_mode={settings.ai_mock_mode}"
            )
            yield

        logger.info("Application shutdown complete")

    app = FastAPI(
        title="ChatGuard",
        description="Admission control and resilient provider access for AI chat and translation",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.rate_limiter = rate_limiter or RateLimiter(InMemoryBucketStore())
    app.state.provider_client = provider_client

    # Order matters: last added = first executed
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER, "Retry-After"],
        max_age=600,
    )
    app.add_middleware(RequestSizeLimitMiddleware, max_body_size=settings.max_raw_request_bytes)
    app.add_middleware(RequestIdMiddleware)

    app.include_router(translate_router)
    app.include_router(chat_router)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        client = app.state.provider_client
        configured = client is not None and client.is_configured()
        return {
            "status": "ok" if configured else "degraded",
            "components": {
                "provider": {
                    "configured": configured,
                    "keys": client.key_count if client is not None else 0,
                    "mock_mode": settings.ai_mock_mode,
                },
            },
        }

    @app.exception_handler(PayloadTooLargeError)
    async def payload_too_large_handler(request: Request, exc: PayloadTooLargeError) -> JSONResponse:
        """Handle PayloadTooLargeError and return HTTP 413 response."""
        return JSONResponse(status_code=413, content={"error": exc.message})

    @app.exception_handler(RateLimitedError)
    async def rate_limited_handler(request: Request, exc: RateLimitedError) -> JSONResponse:
        """Handle RateLimitedError and return HTTP 429 response."""
        return JSONResponse(
            status_code=429,
            content={"error": exc.message},
            headers={"Retry-After": str(exc.retry_after_seconds)},
        )

    @app.exception_handler(ProviderError)
    async def provider_error_handler(request: Request, exc: ProviderError) -> JSONResponse:
        """Handle provider failures that escaped a route; details stay in the logs."""
        request_id = get_request_id(request)
        log_server_error(request.url.path, request_id, exc)
        return internal_server_error("Failed to generate response", request_id)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler for unhandled exceptions.

        Never returns the exception message or traceback to the client, even
        in debug mode; the request id ties the response to the server log.
        """
        request_id = getattr(request.state, "request_id", None) or "unknown"
        logger.exception(
            f"Unhandled exception [request_id={request_id}]",
            extra={"request_id": request_id, "route": request.url.path},
        )
        return internal_server_error("Internal server error", request_id)

    return app


app = create_app()
