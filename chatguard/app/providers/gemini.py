from typing import Any, Dict, List, Optional

import httpx

from chatguard.app.providers.base import BaseProvider, GenerateRequest, GenerationResult

DEFAULT_GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


class GeminiAPIError(Exception):
    """Non-2xx answer from the Gemini REST API.

    Carries the HTTP status and the upstream status name (e.g.
    ``INVALID_ARGUMENT``) so the retry policy can classify it.
    """

    def __init__(self, status: int, message: str, reason: Optional[str] = None):
        self.status = status
        self.reason = reason
        detail = f"{reason}: {message}" if reason else message
        super().__init__(f"Gemini API error {status}: {detail}")


def _normalize_part(part: Any) -> Dict[str, Any]:
    if isinstance(part, str):
        return {"text": part}
    if isinstance(part, dict):
        return part
    raise TypeError(f"Unsupported content part: {type(part).__name__}")


def build_request_body(
    request: GenerateRequest,
    request_options: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Translate a prompt or part list into a generateContent body."""
    if isinstance(request, dict) and "contents" in request:
        body = dict(request)
    else:
        parts: List[Any] = request if isinstance(request, list) else [request]
        body = {
            "contents": [
                {"role": "user", "parts": [_normalize_part(part) for part in parts]}
            ]
        }

    options = request_options or {}
    if options.get("generation_config"):
        body["generationConfig"] = options["generation_config"]
    if options.get("system_instruction"):
        body["systemInstruction"] = {"parts": [{"text": options["system_instruction"]}]}
    return body


def _error_from_response(response: httpx.Response) -> GeminiAPIError:
    message = response.reason_phrase or "request failed"
    reason = None
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
        error = payload["error"]
        message = str(error.get("message") or message)
        reason = error.get("status")
    return GeminiAPIError(response.status_code, message, reason)


class GeminiProvider(BaseProvider):
    """Gemini generateContent over REST, bound to one API key.

    If http_client is provided, it will be used for all requests (connection reuse).
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_GEMINI_BASE_URL,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 60.0
    ):
        super().__init__(base_url, api_key, http_client, timeout)

    def _build_headers(self) -> Dict[str, str]:
        return {**super()._build_headers(), "x-goog-api-key": self.api_key}

    async def generate_content(
        self,
        request: GenerateRequest,
        model: str,
        request_options: Optional[Dict[str, Any]] = None,
    ) -> GenerationResult:
        """Send a generateContent request.

        Raises:
            GeminiAPIError: If the API answers with a non-2xx status
            httpx.TransportError: On network failures and timeouts
        """
        url = self._get_endpoint_url(f"/models/{model}:generateContent")
        body = build_request_body(request, request_options)
        timeout = (request_options or {}).get("timeout", self.timeout)

        async with self._client_context() as client:
            resp = await client.post(url, headers=self.headers, json=body, timeout=timeout)

        if resp.is_error:
            raise _error_from_response(resp)
        return GenerationResult(raw=resp.json(), model=model)
