"""FastAPI dependencies for objects created by the application lifespan.

Usage:
    from chatguard.app.api.dependencies import ProviderClientDep

    @router.post("/api/translate")
    async def translate(client: ProviderClientDep):
        ...
"""

from typing import Annotated

from fastapi import Depends, Request

from chatguard.app.providers.client import ProviderClient


def get_provider_client(request: Request) -> ProviderClient:
    return request.app.state.provider_client


ProviderClientDep = Annotated[ProviderClient, Depends(get_provider_client)]

__all__ = ["ProviderClientDep", "get_provider_client"]
