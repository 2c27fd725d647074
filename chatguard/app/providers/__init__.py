"""Generation provider package.

This package provides:
- Base provider handle interface (BaseProvider, GenerationResult)
- Provider implementations (GeminiProvider, MockProvider)
- Multi-key client with rotation and retries (ProviderClient)
- Retry policy and failure classification (RetryPolicy)
"""

from chatguard.app.providers.base import BaseProvider, GenerateRequest, GenerationResult
from chatguard.app.providers.client import ProviderClient, load_api_keys, normalize_keys
from chatguard.app.providers.gemini import GeminiAPIError, GeminiProvider
from chatguard.app.providers.mock import MockProvider
from chatguard.app.providers.retry import RetryPolicy, extract_status

__all__ = [
    # Base
    "BaseProvider",
    "GenerateRequest",
    "GenerationResult",
    # Providers
    "GeminiAPIError",
    "GeminiProvider",
    "MockProvider",
    # Client
    "ProviderClient",
    "load_api_keys",
    "normalize_keys",
    # Retry
    "RetryPolicy",
    "extract_status",
]
