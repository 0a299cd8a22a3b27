"""Unit tests for HTTP client wrapper."""

import pytest
import httpx

from dynprov.fetcher.http_client import AsyncHTTPClient


class TestAsyncHTTPClient:

    @pytest.mark.asyncio
    async def test_initialization_with_defaults(self):
        async with AsyncHTTPClient() as client:
            assert client.timeout == 30.0
            assert client.is_open

    @pytest.mark.asyncio
    async def test_context_manager_lifecycle(self):
        client = AsyncHTTPClient()

        async with client:
            assert client._client is not None

        assert client._client is None
        assert not client.is_open

    @pytest.mark.asyncio
    async def test_open_is_idempotent(self):
        client = AsyncHTTPClient()
        await client.open()
        inner = client._client
        await client.open()
        assert client._client is inner
        await client.aclose()

    @pytest.mark.asyncio
    async def test_request_with_mock_transport(self):
        def handler(request):
            assert request.headers["Accept"] == "application/json"
            return httpx.Response(200, json={"status": "ok"})

        async with AsyncHTTPClient(transport=httpx.MockTransport(handler)) as client:
            response = await client.request("GET", "http://test.com/api", headers={"Accept": "application/json"})

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    @pytest.mark.asyncio
    async def test_request_with_ordered_params(self):
        def handler(request):
            assert str(request.url) == "http://test.com/api?action=getStatus&id=1"
            return httpx.Response(200, text="STATUS_WAIT_CODE")

        async with AsyncHTTPClient(transport=httpx.MockTransport(handler)) as client:
            response = await client.request("GET", "http://test.com/api", params=[("action", "getStatus"), ("id", "1")])

        assert response.text == "STATUS_WAIT_CODE"

    @pytest.mark.asyncio
    async def test_request_without_context_raises(self):
        client = AsyncHTTPClient()

        with pytest.raises(RuntimeError, match="Client not initialized"):
            await client.request("GET", "http://test.com/api")
