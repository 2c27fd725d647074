"""Best-effort caller identity hints for rate limit bucketing.

Tokens are decoded without verifying their signature. The resulting
``IdentityHint`` only widens or narrows rate limit scope; it is not an
authenticated principal and must never be used for authorization.

Supported sources, in order:

1. ``Authorization: Bearer <jwt>``
2. Cookies whose name contains ``auth-token``, in any of the encodings
   session libraries have used over time: a raw JWT, a percent-encoded JSON
   array, a ``base64-`` prefixed JSON object, or a JSON object carrying
   ``access_token`` directly or under ``session`` / ``currentSession``.
"""

import base64
import binascii
import json
import re
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional, Tuple
from urllib.parse import unquote

from chatguard.app.core.logging import get_logger

logger = get_logger(__name__)

AUTH_COOKIE_MARKER = "auth-token"
BASE64_COOKIE_PREFIX = "base64-"

# Cookie headers this large are not worth parsing for a hint
MAX_TOKEN_LENGTH = 8192

_JWT_SHAPE = re.compile(r"^[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]*$")


@dataclass(frozen=True)
class IdentityHint:
    """Unverified subject claim taken from request credentials."""
    subject: str

    def __str__(self) -> str:
        return self.subject


def _decode_base64(value: str, urlsafe: bool) -> Optional[str]:
    """Decode base64 with padding restored; None on any failure."""
    normalized = value.strip()
    if urlsafe:
        normalized = normalized.replace("-", "+").replace("_", "/")
    normalized += "=" * (-len(normalized) % 4)
    try:
        return base64.b64decode(normalized).decode("utf-8")
    except (binascii.Error, ValueError):
        return None


def _looks_like_jwt(value: Any) -> bool:
    return isinstance(value, str) and _JWT_SHAPE.match(value) is not None


def subject_from_jwt(token: str) -> Optional[str]:
    """Return the ``sub`` claim of an unverified JWT, or None."""
    if not token or len(token) > MAX_TOKEN_LENGTH:
        return None

    parts = token.split(".")
    if len(parts) < 2:
        return None

    payload = _decode_base64(parts[1], urlsafe=True)
    if payload is None:
        return None

    try:
        claims = json.loads(payload)
    except (ValueError, RecursionError):
        return None

    if not isinstance(claims, dict):
        return None
    subject = claims.get("sub")
    return subject if isinstance(subject, str) and subject else None


def _cookie_value_candidates(raw_value: str) -> List[str]:
    candidates = [unquote(raw_value)]

    decoded = candidates[0]
    if decoded.startswith(BASE64_COOKIE_PREFIX):
        body = decoded[len(BASE64_COOKIE_PREFIX):]
        # Standard alphabet first; the lenient decoder may mangle url-safe text
        for urlsafe in (False, True):
            unwrapped = _decode_base64(body, urlsafe=urlsafe)
            if unwrapped is not None and unwrapped not in candidates:
                candidates.append(unwrapped)

    return candidates


def _token_from_json(parsed: Any) -> Optional[str]:
    if isinstance(parsed, list):
        return next((item for item in parsed if _looks_like_jwt(item)), None)

    if not isinstance(parsed, dict):
        return None

    direct = parsed.get("access_token")
    if isinstance(direct, str):
        return direct

    for container in ("session", "currentSession"):
        nested = parsed.get(container)
        if isinstance(nested, dict) and isinstance(nested.get("access_token"), str):
            return nested["access_token"]

    return None


def token_from_cookie_value(raw_value: str) -> Optional[str]:
    """Dig an access token out of an auth cookie value, whatever its encoding."""
    for candidate in _cookie_value_candidates(raw_value):
        if _looks_like_jwt(candidate):
            return candidate

        try:
            parsed = json.loads(candidate)
        except (ValueError, RecursionError):
            continue

        token = _token_from_json(parsed)
        if token:
            return token

    return None


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return credentials.strip() or None


def extract_identity(
    headers: Mapping[str, str],
    cookies: Mapping[str, str] | Iterable[Tuple[str, str]],
) -> Optional[IdentityHint]:
    """Derive an identity hint from request headers and cookies.

    Never raises; any malformed input simply yields no hint.

    Args:
        headers: Request headers (case-insensitive mapping as in Starlette)
        cookies: Cookie name/value mapping or pairs

    Returns:
        IdentityHint, or None for anonymous callers
    """
    try:
        token = _bearer_token(headers.get("authorization"))
        if token:
            subject = subject_from_jwt(token)
            if subject:
                return IdentityHint(subject)

        pairs = cookies.items() if isinstance(cookies, Mapping) else cookies
        for name, value in pairs:
            if AUTH_COOKIE_MARKER not in name or not value:
                continue
            cookie_token = token_from_cookie_value(value)
            if not cookie_token:
                continue
            subject = subject_from_jwt(cookie_token)
            if subject:
                return IdentityHint(subject)
    except Exception as exc:
        # Hostile input must never fail the request
        logger.debug(f"Identity extraction skipped malformed credentials: {type(exc).__name__}")

    return None
