from fastapi import FastAPI, Request
from fastapi.testclient import TestClient
from pydantic import BaseModel

from chatguard.app.middleware.request_size import RequestSizeLimitMiddleware


class Payload(BaseModel):
    text: str


def make_app(max_body_size: int) -> FastAPI:
    app = FastAPI()
    app.add_middleware(RequestSizeLimitMiddleware, max_body_size=max_body_size)

    @app.post("/echo")
    async def echo(req: Request):
        return {"size": len(await req.body())}

    @app.post("/model")
    async def model(payload: Payload):
        return {"size": len(payload.text)}

    @app.post("/boom")
    async def boom(_: Request):
        raise RuntimeError("boom")

    return app


def test_request_size_middleware_does_not_mask_exceptions():
    client = TestClient(make_app(1024), raise_server_exceptions=False)
    resp = client.post("/boom", json={"x": 1})

    # If middleware masks exceptions, this would be 413.
    assert resp.status_code == 500


def test_request_size_middleware_returns_json_413_on_declared_length():
    client = TestClient(make_app(10), raise_server_exceptions=False)
    resp = client.post("/echo", content=b"x" * 11)

    assert resp.status_code == 413
    assert resp.headers.get("content-type", "").startswith("application/json")
    assert resp.json()["error"] == "Payload too large. Maximum request size is 10 bytes."


def test_request_size_middleware_allows_body_at_limit():
    client = TestClient(make_app(10))
    resp = client.post("/echo", content=b"x" * 10)

    assert resp.status_code == 200
    assert resp.json() == {"size": 10}


def test_request_size_middleware_counts_chunked_bodies():
    client = TestClient(make_app(10), raise_server_exceptions=False)
    resp = client.post("/echo", content=iter([b"x" * 6, b"x" * 6]))

    assert resp.status_code == 413
    assert "detail" in resp.json()


def test_request_size_middleware_overrides_body_parse_errors():
    client = TestClient(make_app(10), raise_server_exceptions=False)
    body = b'{"text": "' + b"x" * 20 + b'"}'
    resp = client.post(
        "/model",
        content=iter([body[:8], body[8:]]),
        headers={"content-type": "application/json"},
    )

    assert resp.status_code == 413
