import json
import re
from typing import Annotated, Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _parse_cors_origins(raw: Any) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, list):
        items = [str(v).strip() for v in raw]
        return [v for v in items if v]

    raw = str(raw).strip()
    if not raw or raw == "[]":
        return []
    if raw == "*":
        return ["*"]

    # Prefer JSON, but tolerate comma/space separated values so a
    # misconfigured deployment doesn't crash at startup.
    if raw.startswith(("[", '"')):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            items = [str(v).strip() for v in parsed]
            return [v for v in items if v]
        if isinstance(parsed, str):
            raw = parsed.strip()

    parts = [p for p in re.split(r"[,\s]+", raw) if p]
    if "*" in parts:
        return ["*"]

    seen: set[str] = set()
    origins: list[str] = []
    for part in parts:
        if part not in seen:
            seen.add(part)
            origins.append(part)
    return origins


def _parse_key_list(raw: Any) -> list[str]:
    """Split a comma separated credential list, keeping order."""
    if raw is None:
        return []
    if isinstance(raw, (list, tuple)):
        return [str(v) for v in raw]
    return str(raw).split(",")


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be configured via environment variables or .env file.
    """

    # Debug mode - enables detailed error responses
    debug: bool = False

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    # Serve canned responses instead of calling Gemini
    ai_mock_mode: bool = False

    # Gemini credentials. GEMINI_API_KEYS wins over the discrete slots.
    gemini_api_keys: Annotated[list[str], NoDecode] = []
    gemini_api_key: str = ""
    gemini_api_key_1: str = ""
    gemini_api_key_2: str = ""
    gemini_api_key_3: str = ""
    gemini_api_key_4: str = ""
    gemini_api_key_5: str = ""

    gemini_model: str = "gemini-3-flash-preview"
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"

    # Provider retry settings
    provider_max_attempts: int = 4
    provider_backoff_seconds: float = 0.25

    # Rate limiting settings
    rate_limit_sweep_threshold: int = 2000
    rate_limit_stale_ttl_seconds: float = 3600.0
    rate_limit_fallback_window_seconds: int = 60

    # Context selection
    context_min_token_length: int = 4
    context_max_turns: int = 3
    context_fallback_turns: int = 2
    context_max_chars: int = 2000

    # Absolute ceiling on any request body, enforced at the ASGI layer
    max_raw_request_bytes: int = 8 * 1024 * 1024

    # HTTP client connection pool settings
    httpx_connect_timeout: float = 10.0
    httpx_read_timeout: float = 60.0
    httpx_write_timeout: float = 10.0
    httpx_pool_timeout: float = 5.0
    httpx_keepalive_expiry: float = 30.0
    httpx_max_connections: int = 100
    httpx_max_keepalive_connections: int = 20

    # CORS settings
    cors_origins: Annotated[list[str], NoDecode] = ["*"]

    @field_validator("cors_origins", mode="before")
    @classmethod
    def decode_cors_origins(cls, v: Any) -> list[str]:
        return _parse_cors_origins(v)

    @field_validator("gemini_api_keys", mode="before")
    @classmethod
    def decode_gemini_api_keys(cls, v: Any) -> list[str]:
        return _parse_key_list(v)

    @field_validator(
        "provider_max_attempts",
        "rate_limit_sweep_threshold",
        "rate_limit_fallback_window_seconds",
        "context_min_token_length",
        "context_max_turns",
        "max_raw_request_bytes",
    )
    @classmethod
    def validate_positive_int(cls, v: int) -> int:
        """Validate counters and ceilings are at least 1."""
        if v < 1:
            raise ValueError("value must be at least 1")
        return v

    @field_validator("context_fallback_turns", "context_max_chars")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("value must not be negative")
        return v

    @field_validator(
        "provider_backoff_seconds",
        "rate_limit_stale_ttl_seconds",
    )
    @classmethod
    def validate_non_negative_float(cls, v: float) -> float:
        if v < 0:
            raise ValueError("value must not be negative")
        return v

    @field_validator("httpx_connect_timeout", "httpx_read_timeout", "httpx_write_timeout")
    @classmethod
    def validate_timeout_positive(cls, v: float) -> float:
        """Validate timeout values are positive."""
        if v <= 0:
            raise ValueError("Timeout values must be positive")
        return v

    def gemini_key_candidates(self) -> list[str]:
        """Raw credential values, before trimming and de-duplication.

        The combined list takes precedence when it holds anything.
        """
        if any(key.strip() for key in self.gemini_api_keys):
            return list(self.gemini_api_keys)
        return [
            self.gemini_api_key,
            self.gemini_api_key_1,
            self.gemini_api_key_2,
            self.gemini_api_key_3,
            self.gemini_api_key_4,
            self.gemini_api_key_5,
        ]

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


# Global settings instance
settings = Settings()
