"""Tests for the Slim API client.

Tests use ``httpx.ASGITransport`` pointed at the real Starlette app
so we get a genuine HTTP-level integration without starting a server.
"""

import httpx
import pytest
from app.server import app
from client.client import ApiCallError, SlimApiClient, form_value


@pytest.fixture
async def api():
    """SlimApiClient wired to the in-process Starlette app."""
    transport = httpx.ASGITransport(app=app)  # type: ignore[arg-type]
    client = SlimApiClient.__new__(SlimApiClient)
    client.base_url = "http://test"
    client.max_retries = 3
    client.path = "/api"
    client._client = httpx.AsyncClient(transport=transport, base_url="http://test")
    yield client
    await client.close()


@pytest.mark.anyio
async def test_call_json(api):
    assert await api.call("add", {"a": 10, "b": 20}) == 30


@pytest.mark.anyio
@pytest.mark.parametrize("fmt", ["post", "get"])
async def test_call_form(api, fmt):
    assert await api.call("sum", {"values": [1, 2, 3.5]}, fmt=fmt) == 6.5


@pytest.mark.anyio
async def test_call_method_not_found(api):
    with pytest.raises(ApiCallError) as exc_info:
        await api.call("does_not_exist")
    assert exc_info.value.code == 400
    assert exc_info.value.response.message == "Method not found."


@pytest.mark.anyio
async def test_business_code(api):
    with pytest.raises(ApiCallError) as exc_info:
        await api.call("withdraw", {"amount": 101})
    assert exc_info.value.code == 1001


@pytest.mark.anyio
async def test_send_returns_envelope(api):
    response = await api.send("error", {"i": 1})
    assert response.code == 500
    assert response.data is None


@pytest.mark.anyio
async def test_unknown_format(api):
    with pytest.raises(ValueError, match="xml"):
        await api.call("add", {}, fmt="xml")


def test_form_value():
    assert form_value([1, 2]) == "1,2"
    assert form_value({"a": 1, "b": True}) == "a:1,b:true"
    assert form_value(None) == ""
    assert form_value(2.5) == "2.5"
