"""Tests for the retrieval-context client.

Tests cover:
- Snippets returned in service order
- Results memoised in the shared TTL cache
- Every failure degrades to an empty list
"""

import json

import httpx
import pytest

from getcare.core.cache import TTLCache
from getcare.integrations.retrieval import RetrievalClient


class Handler:
    def __init__(self, response: httpx.Response) -> None:
        self.response = response
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.response


def client_for(handler: Handler, cache: TTLCache | None = None) -> RetrievalClient:
    return RetrievalClient(
        cache=cache,
        base_url="https://rag.test",
        api_key="rag-key",
        top_k=3,
        transport=httpx.MockTransport(handler),
    )


RESULTS = {"results": [{"text": " First "}, "Second", {"text": ""}, {"score": 0.2}]}


class TestSearch:
    """Tests for snippet lookups."""

    @pytest.mark.asyncio
    async def test_snippets_in_order(self) -> None:
        """Snippets keep service order and blank results are dropped."""
        handler = Handler(httpx.Response(200, json=RESULTS))
        client = client_for(handler)

        snippets = await client.search("lasik Seoul", "en", "ophthalmology")

        assert snippets == ["First", "Second"]
        request = handler.requests[0]
        assert request.url.path == "/query"
        assert request.headers["Authorization"] == "Bearer rag-key"
        assert json.loads(request.content) == {
            "query": "lasik Seoul",
            "locale": "en",
            "category": "ophthalmology",
            "top_k": 3,
        }
        await client.close()

    @pytest.mark.asyncio
    async def test_results_cached(self) -> None:
        """A repeated lookup is served from the cache."""
        handler = Handler(httpx.Response(200, json=RESULTS))
        client = client_for(handler, cache=TTLCache())

        await client.search("lasik Seoul", "en", "ophthalmology")
        await client.search("LASIK Seoul", "en", "ophthalmology")

        assert len(handler.requests) == 1
        await client.close()

    @pytest.mark.asyncio
    async def test_server_error_gives_empty(self) -> None:
        """Server errors degrade to no snippets."""
        client = client_for(Handler(httpx.Response(500)))
        assert await client.search("lasik", "en", "general") == []
        await client.close()

    @pytest.mark.asyncio
    async def test_malformed_payload_gives_empty(self) -> None:
        client = client_for(Handler(httpx.Response(200, json={"hits": []})))
        assert await client.search("lasik", "en", "general") == []
        await client.close()

    @pytest.mark.asyncio
    async def test_non_json_gives_empty(self) -> None:
        client = client_for(Handler(httpx.Response(200, text="<html>")))
        assert await client.search("lasik", "en", "general") == []
        await client.close()

    @pytest.mark.asyncio
    async def test_unconfigured(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Without a configured URL no request is made."""
        from getcare.core.config import get_settings

        monkeypatch.setattr(get_settings(), "retrieval_api_url", None)
        client = RetrievalClient()
        assert client.available is False
        assert await client.search("lasik", "en", "general") == []
