"""Request body size limit middleware.

This middleware caps the raw size of every request body, whatever route it
targets. Per-route ceilings are enforced by the request guard; this layer
is the absolute backstop for streamed and chunked uploads that carry no
usable Content-Length.
"""

import json

from starlette.types import Message, Receive, Scope, Send


class SizeLimitedStream:
    """A receive wrapper that counts body bytes as they are read.

    This prevents chunked transfer encoding from bypassing the limit.
    """

    class SizeExceededError(Exception):
        """Raised when request body exceeds size limit."""

    def __init__(self, receive: Receive, max_size: int):
        self._receive = receive
        self._max_size = max_size
        self._bytes_read = 0
        self.exceeded = False

    async def receive(self) -> Message:
        message = await self._receive()

        if message["type"] == "http.request":
            self._bytes_read += len(message.get("body", b""))
            if self._bytes_read > self._max_size:
                self.exceeded = True
                raise self.SizeExceededError(
                    f"Payload too large. Maximum request size is {self._max_size} bytes."
                )

        return message


class RequestSizeLimitMiddleware:
    """ASGI middleware to limit request body size.

    Returns HTTP 413 (Payload Too Large) with a JSON body if the limit is
    exceeded, either by the declared Content-Length or while streaming.

    Usage:
        app.add_middleware(RequestSizeLimitMiddleware, max_body_size=8*1024*1024)
    """

    def __init__(self, app, max_body_size: int = 8 * 1024 * 1024):
        self.app = app
        self.max_body_size = max_body_size

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        content_length = None
        for name, value in scope.get("headers", []):
            if name.lower() == b"content-length":
                content_length = value.decode("latin-1")
                break

        if content_length:
            try:
                declared = int(content_length)
            except ValueError:
                # Invalid Content-Length, fall back to counting the stream
                declared = None
            if declared is not None and declared > self.max_body_size:
                await self._send_413_response(send)
                return

        stream = SizeLimitedStream(receive, self.max_body_size)
        response_started = False
        replaced = False

        async def tracking_send(message: Message) -> None:
            nonlocal response_started, replaced
            if replaced:
                return
            if message["type"] == "http.response.start":
                if stream.exceeded:
                    # Routes that parse the body report the overflow as their own error
                    replaced = True
                    await self._send_413_response(send)
                    return
                response_started = True
            await send(message)

        try:
            await self.app(scope, stream.receive, tracking_send)
        except SizeLimitedStream.SizeExceededError as exc:
            if response_started:
                raise
            if not replaced:
                await self._send_413_response(send, detail=str(exc))

    async def _send_413_response(self, send: Send, detail: str | None = None) -> None:
        if detail is None:
            detail = f"Payload too large. Maximum request size is {self.max_body_size} bytes."

        body = json.dumps({"error": detail, "detail": detail}).encode()
        await send(
            {
                "type": "http.response.start",
                "status": 413,
                "headers": [
                    [b"content-type", b"application/json"],
                    [b"content-length", str(len(body)).encode()],
                ],
            }
        )
        await send({"type": "http.response.body", "body": body})
