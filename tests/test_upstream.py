"""Tests for the outbound JSON fetcher."""

import asyncio
import json

import httpx
import pytest

from services.api_gateway.app.upstream import UpstreamError, fetch_json


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _run(coro):
    return asyncio.run(coro)


def test_fetch_json_returns_parsed_body_and_sends_json() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"snippets": []})

    async def go():
        async with _client(handler) as c:
            return await fetch_json(
                c, "POST", "http://proxy.test/retrieve",
                headers={"x-api-key": "k"}, json_body={"query": "¿hola?"},
            )

    data = _run(go())
    assert data == {"snippets": []}
    assert seen["method"] == "POST"
    assert seen["headers"]["x-api-key"] == "k"
    assert seen["headers"]["content-type"] == "application/json"
    assert seen["body"] == {"query": "¿hola?"}


def test_fetch_json_empty_body_is_empty_object() -> None:
    async def go():
        async with _client(lambda r: httpx.Response(200, content=b"")) as c:
            return await fetch_json(c, "GET", "http://proxy.test/x")

    assert _run(go()) == {}


def test_fetch_json_non_2xx_carries_status_and_body() -> None:
    async def go():
        async with _client(lambda r: httpx.Response(403, json={"error": "bad key"})) as c:
            return await fetch_json(c, "POST", "http://proxy.test/retrieve", json_body={})

    with pytest.raises(UpstreamError) as ei:
        _run(go())
    assert ei.value.status == 403
    assert ei.value.data == {"error": "bad key"}
    assert str(ei.value) == "HTTP 403"


def test_fetch_json_non_2xx_with_text_body() -> None:
    async def go():
        async with _client(lambda r: httpx.Response(502, text="Bad Gateway")) as c:
            return await fetch_json(c, "GET", "http://proxy.test/x")

    with pytest.raises(UpstreamError) as ei:
        _run(go())
    assert ei.value.status == 502
    assert ei.value.data == {"body": "Bad Gateway"}


def test_fetch_json_non_object_json_error_is_wrapped() -> None:
    async def go():
        async with _client(lambda r: httpx.Response(400, json=["bad", "request"])) as c:
            return await fetch_json(c, "GET", "http://proxy.test/x")

    with pytest.raises(UpstreamError) as ei:
        _run(go())
    assert ei.value.data == {"body": ["bad", "request"]}


def test_fetch_json_follows_redirects() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.scheme == "http":
            return httpx.Response(
                301, headers={"Location": "https://proxy.test/retrieve"}
            )
        return httpx.Response(200, json={"snippets": [], "topFiles": []})

    async def go():
        async with _client(handler) as c:
            return await fetch_json(c, "POST", "http://proxy.test/retrieve", json_body={"query": "q"})

    assert _run(go()) == {"snippets": [], "topFiles": []}


def test_fetch_json_timeout_cancels_call() -> None:
    cancelled = {"flag": False}

    async def slow(request: httpx.Request) -> httpx.Response:
        try:
            await asyncio.sleep(5)
        except asyncio.CancelledError:
            cancelled["flag"] = True
            raise
        return httpx.Response(200, json={})

    async def go():
        async with _client(slow) as c:
            return await fetch_json(c, "GET", "http://proxy.test/x", timeout=0.05)

    with pytest.raises(UpstreamError) as ei:
        _run(go())
    assert ei.value.status is None
    assert "Timeout" in str(ei.value)
    assert cancelled["flag"] is True


def test_fetch_json_transport_error_has_no_status() -> None:
    def boom(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async def go():
        async with _client(boom) as c:
            return await fetch_json(c, "GET", "http://proxy.test/x")

    with pytest.raises(UpstreamError) as ei:
        _run(go())
    assert ei.value.status is None
    assert ei.value.data is None


def test_fetch_json_invalid_json_propagates() -> None:
    async def go():
        async with _client(lambda r: httpx.Response(200, text="<html>")) as c:
            return await fetch_json(c, "GET", "http://proxy.test/x")

    with pytest.raises(json.JSONDecodeError):
        _run(go())
