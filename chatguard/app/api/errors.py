"""Generic error responses for API routes.

Upstream error bodies and tracebacks never reach clients. Routes answer
with a generic message and the request id, and the real error is logged
server-side under that same id.
"""

from typing import Any, Dict, Optional

from fastapi.responses import JSONResponse

from chatguard.app.core.logging import get_logger
from chatguard.app.providers.retry import extract_status

logger = get_logger(__name__)


def summarize_error(error: BaseException) -> Dict[str, Any]:
    """Error name and status only, never the message or upstream body."""
    summary: Dict[str, Any] = {"error_name": type(error).__name__}
    status = getattr(error, "status", None)
    if not isinstance(status, int):
        status = extract_status(error)
    if isinstance(status, int):
        summary["upstream_status"] = status
    cause = error.__cause__
    if cause is not None:
        summary["cause"] = type(cause).__name__
    return summary


def log_server_error(
    scope: str,
    request_id: str,
    error: BaseException,
    meta: Optional[Dict[str, Any]] = None,
) -> None:
    details = {**(meta or {}), **summarize_error(error)}
    logger.error(
        f"[{scope}] request_id={request_id} {details}",
        extra={"request_id": request_id, "route": scope},
        exc_info=error,
    )


def internal_server_error(message: str, request_id: str) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={"error": message, "requestId": request_id},
    )


def bad_request(message: str) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": message})
