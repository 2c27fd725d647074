"""Mock provider for development and tests.

This provider answers without making external API calls. Enable it by
setting:
    AI_MOCK_MODE=true
"""

import asyncio
from typing import Any, Dict, Optional

from chatguard.app.providers.base import BaseProvider, GenerateRequest, GenerationResult

MOCK_RESPONSE = (
    "[MOCK] This is a placeholder Gemini response. "
    "Set AI_MOCK_MODE=false and provide GEMINI_API_KEYS for real responses."
)


class MockProvider(BaseProvider):
    """Provider handle that returns a canned candidate.

    Optionally delays each answer, which is handy for exercising
    cancellation and concurrency.
    """

    def __init__(
        self,
        api_key: str = "mock-key",
        base_url: str = "http://mock.provider",
        http_client: Optional[Any] = None,
        timeout: float = 60.0,
        delay: float = 0.0,
        response_text: str = MOCK_RESPONSE,
    ):
        super().__init__(base_url, api_key, http_client, timeout)
        self.delay = delay
        self.response_text = response_text
        self.calls = 0

    async def generate_content(
        self,
        request: GenerateRequest,
        model: str,
        request_options: Optional[Dict[str, Any]] = None,
    ) -> GenerationResult:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return GenerationResult(
            raw={
                "candidates": [
                    {
                        "content": {"role": "model", "parts": [{"text": self.response_text}]},
                        "finishReason": "STOP",
                    }
                ],
                "modelVersion": model,
            },
            model=model,
        )
