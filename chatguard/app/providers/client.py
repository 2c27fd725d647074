"""Multi-key generation client.

Spreads calls across a pool of Gemini API keys so provider-side per-key
quotas are shared. Every attempt takes the next key round-robin, which
keeps one exhausted key from being retried back-to-back, and retryable
failures are retried with linear backoff up to ``min(max_attempts, pool size)``
attempts.

Usage:
    client = ProviderClient(http_client=http_client)
    if not client.is_configured():
        ...  # answer 500 without doing any work
    result = await client.generate("Translate ...")
    text = result.text()
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Tuple

import httpx

from chatguard.app.core.config import settings
from chatguard.app.core.logging import get_logger
from chatguard.app.exceptions import (
    ProviderFatalError,
    ProviderNotConfiguredError,
    ProviderRetryExhaustedError,
)
from chatguard.app.providers.base import BaseProvider, GenerateRequest, GenerationResult
from chatguard.app.providers.gemini import GeminiProvider
from chatguard.app.providers.retry import RetryPolicy, extract_status

logger = get_logger(__name__)

ProviderFactory = Callable[[str], BaseProvider]


def normalize_keys(keys: Iterable[Optional[str]]) -> Tuple[str, ...]:
    """Trim, drop empties and de-duplicate while keeping order."""
    unique: Dict[str, None] = {}
    for key in keys:
        trimmed = (key or "").strip()
        if trimmed:
            unique.setdefault(trimmed, None)
    return tuple(unique)


def load_api_keys() -> Tuple[str, ...]:
    """Read the key pool from settings (combined list first, then slots)."""
    return normalize_keys(settings.gemini_key_candidates())


class ProviderClient:
    """Round-robin, retrying client over a pool of provider API keys.

    Holds one cached provider handle per key and a rotation cursor shared
    by every call made through this instance.
    """

    def __init__(
        self,
        api_keys: Optional[Iterable[str]] = None,
        provider_factory: Optional[ProviderFactory] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        retry_policy: Optional[RetryPolicy] = None,
        default_model: Optional[str] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """Initialize the client.

        Args:
            api_keys: Key pool (loaded from settings once if omitted)
            provider_factory: Builds a provider handle for a key
            http_client: Shared HTTP client for the default Gemini handles
            retry_policy: Attempt ceiling and backoff (defaults from settings)
            default_model: Model used when generate() gets none
            sleep: Backoff sleep, injectable for tests
        """
        self._api_keys = normalize_keys(api_keys) if api_keys is not None else load_api_keys()
        self._http_client = http_client
        self._provider_factory = provider_factory or self._default_factory
        self.retry_policy = retry_policy or RetryPolicy(
            max_attempts=settings.provider_max_attempts,
            base_delay=settings.provider_backoff_seconds,
        )
        self.default_model = default_model or settings.gemini_model
        self._sleep = sleep

        self._providers: Dict[str, BaseProvider] = {}
        self._cursor = 0
        self._cursor_lock = asyncio.Lock()

    def _default_factory(self, api_key: str) -> BaseProvider:
        return GeminiProvider(
            api_key=api_key,
            base_url=settings.gemini_base_url,
            http_client=self._http_client,
        )

    @property
    def api_keys(self) -> Tuple[str, ...]:
        return self._api_keys

    @property
    def key_count(self) -> int:
        return len(self._api_keys)

    def is_configured(self) -> bool:
        """True when at least one API key is available."""
        return bool(self._api_keys)

    async def _next_key(self) -> Tuple[int, str]:
        """Take the next key slot; the cursor moves on every call."""
        async with self._cursor_lock:
            slot = self._cursor % len(self._api_keys)
            self._cursor = (self._cursor + 1) % len(self._api_keys)
        return slot, self._api_keys[slot]

    def _get_provider(self, api_key: str) -> BaseProvider:
        provider = self._providers.get(api_key)
        if provider is None:
            provider = self._provider_factory(api_key)
            self._providers[api_key] = provider
        return provider

    async def generate(
        self,
        request: GenerateRequest,
        model: Optional[str] = None,
        request_options: Optional[Dict[str, Any]] = None,
    ) -> GenerationResult:
        """Run a generation call with key rotation and retries.

        Cancelling the calling task aborts the in-flight attempt or backoff
        sleep; no further attempts are made.

        Raises:
            ProviderNotConfiguredError: No API key is configured
            ProviderFatalError: The provider rejected the request outright
            ProviderRetryExhaustedError: Every attempt failed with a retryable error
        """
        if not self._api_keys:
            raise ProviderNotConfiguredError()

        model_name = model or self.default_model
        max_attempts = min(self.retry_policy.max_attempts, len(self._api_keys))
        last_error: Optional[Exception] = None

        for attempt in range(max_attempts):
            slot, api_key = await self._next_key()
            provider = self._get_provider(api_key)

            try:
                return await provider.generate_content(
                    request, model=model_name, request_options=request_options
                )
            except Exception as exc:
                last_error = exc
                retryable = self.retry_policy.is_retryable(exc)
                status = extract_status(exc)
                logger.warning(
                    f"Gemini request failed (attempt {attempt + 1}/{max_attempts}, "
                    f"key slot {slot}, retryable={retryable}): {type(exc).__name__}",
                    extra={
                        "attempt": attempt + 1,
                        "retryable": retryable,
                        "status_code": status,
                    },
                )

                if not retryable:
                    raise ProviderFatalError(
                        f"Gemini request rejected: {type(exc).__name__}",
                        attempt=attempt + 1,
                        status=status,
                    ) from exc

                if attempt < max_attempts - 1:
                    await self._sleep(self.retry_policy.calculate_delay(attempt))

        if last_error is None:
            raise ProviderRetryExhaustedError(
                "Gemini request failed after maximum retry attempts",
                attempts=max_attempts,
            )

        logger.error(
            f"Gemini request failed after {max_attempts} attempts: {type(last_error).__name__}",
            extra={"attempt": max_attempts, "status_code": extract_status(last_error)},
        )
        raise ProviderRetryExhaustedError(
            f"Gemini request failed after {max_attempts} attempts: {type(last_error).__name__}",
            attempts=max_attempts,
            status=extract_status(last_error),
        ) from last_error

    def reset(self) -> None:
        """Drop cached handles and rewind the rotation cursor. Intended for tests."""
        self._providers.clear()
        self._cursor = 0
