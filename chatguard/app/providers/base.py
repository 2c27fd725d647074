from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Union

import httpx

# A prompt string, or a list of parts (strings, {"text": ...} or
# {"inline_data": {"mime_type": ..., "data": <base64>}}).
GenerateRequest = Union[str, List[Union[str, Dict[str, Any]]], Dict[str, Any]]


@dataclass
class GenerationResult:
    """Provider response wrapper exposing the generated text."""
    raw: Dict[str, Any] = field(default_factory=dict)
    model: Optional[str] = None

    def text(self) -> str:
        """Concatenate the text parts of the first candidate."""
        candidates = self.raw.get("candidates") or []
        if not candidates:
            return ""
        content = candidates[0].get("content") or {}
        parts = content.get("parts") or []
        return "".join(part.get("text", "") for part in parts if isinstance(part, dict))


class BaseProvider(ABC):
    """Base class for generation provider handles.

    One handle is bound to one API key. Subclasses can accept an external
    httpx.AsyncClient for connection pooling, or create their own per call.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 60.0
    ):
        """Initialize the provider.

        Args:
            base_url: The API base URL
            api_key: The API key for authentication
            http_client: Optional shared HTTP client for connection pooling
            timeout: Request timeout in seconds
        """
        self._http_client = http_client
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self.timeout = timeout
        self.headers = self._build_headers()

    def _build_headers(self) -> Dict[str, str]:
        """Common request headers; subclasses add their own credential header."""
        return {"Content-Type": "application/json"}

    @asynccontextmanager
    async def _client_context(self) -> AsyncIterator[httpx.AsyncClient]:
        """Yield the shared client, or a per-call client that is closed afterwards."""
        if self._http_client is not None:
            yield self._http_client
            return

        client = httpx.AsyncClient(timeout=self.timeout)
        try:
            yield client
        finally:
            await client.aclose()

    def _get_endpoint_url(self, endpoint: str) -> str:
        return f"{self.base_url}{endpoint}"

    @abstractmethod
    async def generate_content(
        self,
        request: GenerateRequest,
        model: str,
        request_options: Optional[Dict[str, Any]] = None,
    ) -> GenerationResult:
        """Run one generation call.

        Args:
            request: Prompt string or list of content parts
            model: Model name
            request_options: Optional per-call options (timeout, generation_config)

        Returns:
            GenerationResult for the call
        """
