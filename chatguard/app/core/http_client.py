"""Shared HTTP client management for connection pooling.

The client is opened in the application lifespan and shared by every
provider handle so all API keys reuse one connection pool.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx

from chatguard.app.core.config import settings


def _build_timeout() -> httpx.Timeout:
    return httpx.Timeout(
        connect=settings.httpx_connect_timeout,
        read=settings.httpx_read_timeout,
        write=settings.httpx_write_timeout,
        pool=settings.httpx_pool_timeout,
    )


def _build_limits() -> httpx.Limits:
    return httpx.Limits(
        max_connections=settings.httpx_max_connections,
        max_keepalive_connections=settings.httpx_max_keepalive_connections,
        keepalive_expiry=settings.httpx_keepalive_expiry,
    )


@asynccontextmanager
async def init_http_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    """Open the shared HTTP client for the lifetime of the application.

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            async with init_http_client() as client:
                yield
    """
    client = httpx.AsyncClient(timeout=_build_timeout(), limits=_build_limits())
    try:
        yield client
    finally:
        await client.aclose()
