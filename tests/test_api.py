"""Tests for the HTTP routes, guards and error handling end to end."""

from typing import List, Optional
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from chatguard.app.main import create_app
from chatguard.app.middleware.rate_limit import (
    InMemoryBucketStore,
    RateLimitConfig,
    RateLimiter,
    TokenBucketConfig,
)
from chatguard.app.providers.client import ProviderClient
from chatguard.app.providers.gemini import GeminiAPIError
from chatguard.app.providers.mock import MockProvider
from chatguard.app.providers.retry import RetryPolicy


class RecordingProvider(MockProvider):
    """Mock provider that remembers prompts and can fail on demand."""

    def __init__(self, api_key: str, prompts: List[str], error: Optional[Exception] = None, **kwargs):
        super().__init__(api_key=api_key, **kwargs)
        self.prompts = prompts
        self.error = error

    async def generate_content(self, request, model, request_options=None):
        self.prompts.append(request)
        if self.error is not None:
            raise self.error
        return await super().generate_content(request, model, request_options)


def make_client(
    response_text="Hola mundo",
    error=None,
    keys=("key-a",),
    ip_capacity=20,
):
    prompts: List[str] = []
    provider_client = ProviderClient(
        api_keys=list(keys),
        provider_factory=lambda key: RecordingProvider(
            key, prompts, error=error, response_text=response_text
        ),
        retry_policy=RetryPolicy(max_attempts=4, base_delay=0),
        default_model="gemini-test",
    )
    limits = TokenBucketConfig(capacity=ip_capacity, refill_tokens_per_second=0)
    rate_limiter = RateLimiter(
        store=InMemoryBucketStore(fallback_window_seconds=60),
        presets={"aiText": RateLimitConfig(ip=limits, user=limits)},
    )
    app = create_app(provider_client=provider_client, rate_limiter=rate_limiter)
    return TestClient(app, raise_server_exceptions=False), prompts, rate_limiter


def history_turn(turn_id, role, content, minute):
    return {
        "id": str(turn_id),
        "role": role,
        "content": content,
        "created_at": f"2026-01-01T00:{minute:02d}:00Z",
    }


class TestHealth:
    def test_health_reports_provider(self):
        client, _, _ = make_client(keys=("a", "b"))
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert response.json()["components"]["provider"]["keys"] == 2

    def test_lifespan_builds_mock_client(self):
        with patch("chatguard.app.main.settings.ai_mock_mode", True):
            with TestClient(create_app()) as client:
                response = client.post(
                    "/api/translate",
                    json={"text": "Hello", "source_lang": "en", "target_lang": "es"},
                )

        assert response.status_code == 200
        assert response.json()["translated_text"].startswith("[MOCK]")


class TestTranslate:
    """Tests for POST /api/translate."""

    def test_translates(self):
        client, prompts, _ = make_client()

        response = client.post(
            "/api/translate", json={"text": "Hello world", "source_lang": "en", "target_lang": "es"}
        )

        assert response.status_code == 200
        assert response.json() == {
            "translated_text": "Hola mundo",
            "source_language": "en",
            "target_language": "es",
        }
        assert "from English to Spanish" in prompts[0]
        assert "X-Request-ID" in response.headers

    def test_same_language_echoes_without_calling_provider(self):
        client, prompts, _ = make_client()

        response = client.post(
            "/api/translate", json={"text": "Hello", "source_lang": "en", "target_lang": "en"}
        )

        assert response.json()["translated_text"] == "Hello"
        assert prompts == []

    def test_missing_fields(self):
        client, _, _ = make_client()

        response = client.post("/api/translate", json={"text": "Hello"})

        assert response.status_code == 400
        assert response.json() == {"error": "Missing required fields: text, source_lang, target_lang"}

    def test_text_too_long(self):
        client, prompts, _ = make_client()

        response = client.post(
            "/api/translate", json={"text": "x" * 5001, "source_lang": "en", "target_lang": "es"}
        )

        assert response.status_code == 413
        assert response.json() == {"error": "Payload too large. Maximum text length is 5000 characters."}
        assert prompts == []

    def test_oversized_body_rejected_before_rate_limit(self):
        client, _, limiter = make_client()

        response = client.post(
            "/api/translate",
            json={"text": "x" * 40000, "source_lang": "en", "target_lang": "es"},
        )

        assert response.status_code == 413
        assert response.json()["error"] == "Payload too large. Maximum request size is 32768 bytes."
        assert len(limiter.store) == 0

    def test_rate_limited(self):
        client, _, _ = make_client(ip_capacity=2)
        body = {"text": "Hello", "source_lang": "en", "target_lang": "en"}

        assert client.post("/api/translate", json=body).status_code == 200
        assert client.post("/api/translate", json=body).status_code == 200
        response = client.post("/api/translate", json=body)

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "60"
        assert response.json() == {"error": "Too many requests. Please retry later."}

    def test_not_configured(self):
        client, _, _ = make_client(keys=())

        response = client.post(
            "/api/translate", json={"text": "Hello", "source_lang": "en", "target_lang": "es"}
        )

        assert response.status_code == 500
        assert response.json() == {"error": "Translation service not configured"}

    def test_provider_failure_is_generic(self):
        error = GeminiAPIError(400, "secret upstream detail", "INVALID_ARGUMENT")
        client, _, _ = make_client(error=error)

        response = client.post(
            "/api/translate",
            json={"text": "Hello", "source_lang": "en", "target_lang": "es"},
            headers={"X-Request-ID": "req-123"},
        )

        assert response.status_code == 500
        assert response.json() == {"error": "Translation failed", "requestId": "req-123"}
        assert "secret" not in response.text


class TestAiChat:
    """Tests for POST /api/ai-chat."""

    def test_answers_with_relevant_context(self):
        client, prompts, _ = make_client(response_text="  Aquí está.  ")
        history = [
            history_turn(1, "user", "How do I translate to Spanish?", 1),
            history_turn(2, "assistant", "Use the button.", 2),
            history_turn(3, "user", "Translation in French is also needed", 3),
            history_turn(4, "assistant", "Sure.", 4),
            history_turn(5, "user", "Translate this sentence to Spanish", 5),
        ]

        response = client.post("/api/ai-chat", json={"history": history, "message_id": "5"})

        assert response.status_code == 200
        assert response.json() == {"content": "Aquí está."}
        prompt = prompts[0]
        assert "User: How do I translate to Spanish?" in prompt
        assert "French" not in prompt
        assert prompt.rstrip().endswith("Assistant:")

    def test_system_prompt_and_language(self):
        client, prompts, _ = make_client()
        history = [history_turn(1, "user", "Hello", 1)]

        client.post(
            "/api/ai-chat",
            json={"history": history, "system_prompt": "Be terse.", "response_language": "fr"},
        )

        assert "System prompt: Be terse." in prompts[0]
        assert "Respond in French." in prompts[0]

    def test_no_user_message(self):
        client, prompts, _ = make_client()
        history = [history_turn(1, "assistant", "Welcome!", 1)]

        response = client.post("/api/ai-chat", json={"history": history})

        assert response.status_code == 400
        assert prompts == []

    def test_too_many_messages(self):
        client, _, _ = make_client()
        history = [history_turn(i, "user", "hi", i) for i in range(31)]

        response = client.post("/api/ai-chat", json={"history": history})

        assert response.status_code == 413
        assert response.json()["error"] == "Payload too large. Maximum messages size is 30 items."

    def test_message_too_long(self):
        client, _, _ = make_client()
        history = [history_turn(1, "user", "x" * 4001, 1)]

        response = client.post("/api/ai-chat", json={"history": history})

        assert response.status_code == 413
        assert response.json()["error"] == "Payload too large. Maximum message length is 4000 characters."

    def test_empty_model_answer(self):
        client, _, _ = make_client(response_text="   ")
        history = [history_turn(1, "user", "Hello", 1)]

        response = client.post(
            "/api/ai-chat", json={"history": history}, headers={"X-Request-ID": "req-9"}
        )

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to generate response", "requestId": "req-9"}

    def test_retries_across_keys(self):
        client, prompts, _ = make_client(
            keys=("a", "b"), error=GeminiAPIError(429, "quota")
        )
        history = [history_turn(1, "user", "Hello", 1)]

        response = client.post("/api/ai-chat", json={"history": history})

        assert response.status_code == 500
        assert response.json()["error"] == "Failed to generate response"
        assert len(prompts) == 2

    def test_mixed_naive_and_aware_timestamps(self):
        client, prompts, _ = make_client()
        history = [
            {"id": "1", "role": "user", "content": "Earlier question", "created_at": "2024-01-01T00:00:00"},
            {"id": "2", "role": "assistant", "content": "Earlier answer", "created_at": "2024-01-01T00:01:00Z"},
            {"id": "3", "role": "user", "content": "Latest question", "created_at": "2024-01-01T00:02:00+00:00"},
        ]

        response = client.post("/api/ai-chat", json={"history": history})

        assert response.status_code == 200
        assert prompts[0].rstrip().endswith("User: Latest question\n\nAssistant:")

    def test_unhandled_errors_are_generic(self):
        client, _, _ = make_client()
        history = [history_turn(1, "user", "Hello", 1)]

        with patch("chatguard.app.api.chat.build_chat_prompt", side_effect=RuntimeError("secret")):
            response = client.post(
                "/api/ai-chat", json={"history": history}, headers={"X-Request-ID": "req-500"}
            )

        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error", "requestId": "req-500"}


class TestTemporaryChat:
    """Tests for POST /api/ai-chat/temporary."""

    def test_answers_transcript_up_to_last_user_message(self):
        client, prompts, _ = make_client(response_text="Sure thing")
        messages = [
            {"role": "user", "content": "First question"},
            {"role": "assistant", "content": "First answer"},
            {"role": "user", "content": "Second question"},
            {"role": "assistant", "content": "Stale trailing answer"},
        ]

        response = client.post("/api/ai-chat/temporary", json={"messages": messages})

        assert response.status_code == 200
        assert response.json() == {"content": "Sure thing"}
        prompt = prompts[0]
        assert "User: First question\nAssistant: First answer\nUser: Second question" in prompt
        assert "Stale trailing answer" not in prompt

    def test_no_messages(self):
        client, _, _ = make_client()
        response = client.post("/api/ai-chat/temporary", json={"messages": []})

        assert response.status_code == 400
        assert response.json() == {"error": "No messages provided"}

    def test_no_user_message(self):
        client, _, _ = make_client()
        response = client.post(
            "/api/ai-chat/temporary", json={"messages": [{"role": "assistant", "content": "Hi"}]}
        )

        assert response.status_code == 400
        assert response.json() == {"error": "No user message found"}

    def test_total_characters_limit(self):
        client, _, _ = make_client()
        messages = [{"role": "user", "content": "x" * 4000} for _ in range(4)]

        response = client.post("/api/ai-chat/temporary", json={"messages": messages})

        assert response.status_code == 413
        assert response.json()["error"] == "Payload too large. Maximum messages length is 12000 characters."

    @pytest.mark.parametrize("count,status", [(30, 200), (31, 413)])
    def test_message_count_limit(self, count, status):
        client, _, _ = make_client()
        messages = [{"role": "user", "content": "hi"} for _ in range(count)]

        response = client.post("/api/ai-chat/temporary", json={"messages": messages})

        assert response.status_code == status
