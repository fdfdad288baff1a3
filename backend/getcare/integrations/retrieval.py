"""Retrieval context provider backed by a vector-search HTTP service.

Returns prior high-performing content snippets for a keyword so the prompt
can be grounded in what worked before. Retrieval is optional enrichment:
every failure is logged and turned into an empty list.
"""

import time
from typing import Any, Protocol

import httpx

from getcare.core.cache import TTLCache
from getcare.core.config import get_settings
from getcare.core.logging import get_logger

logger = get_logger(__name__)


class RetrievalError(Exception):
    """Raised when the search service returns an unusable response."""


class RetrievalProvider(Protocol):
    """What the content pipeline needs from a retrieval backend."""

    async def search(
        self,
        keyword_text: str,
        locale: str,
        category: str,
        top_k: int | None = None,
    ) -> list[str]: ...


class RetrievalClient:
    """httpx client for the vector-search service, memoised in a TTLCache."""

    def __init__(
        self,
        cache: TTLCache | None = None,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        top_k: int | None = None,
        cache_ttl: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()

        self._cache = cache
        self._base_url = base_url or settings.retrieval_api_url
        self._api_key = api_key or settings.retrieval_api_key
        self._timeout = timeout or settings.retrieval_timeout
        self._top_k = top_k or settings.retrieval_top_k
        self._cache_ttl = cache_ttl or settings.retrieval_cache_ttl
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def available(self) -> bool:
        """Check if a search service is configured."""
        return bool(self._base_url)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Content-Type": "application/json"}
            if self._api_key:
                headers["Authorization"] = f"Bearer {self._api_key}"
            self._client = httpx.AsyncClient(
                base_url=self._base_url or "",
                headers=headers,
                timeout=httpx.Timeout(self._timeout),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @staticmethod
    def _parse(data: Any) -> list[str]:
        if not isinstance(data, dict) or not isinstance(data.get("results"), list):
            raise RetrievalError("Response has no 'results' list")
        snippets: list[str] = []
        for item in data["results"]:
            text = item.get("text") if isinstance(item, dict) else item
            if isinstance(text, str) and text.strip():
                snippets.append(text.strip())
        return snippets

    async def _fetch(
        self, keyword_text: str, locale: str, category: str, top_k: int
    ) -> list[str]:
        client = await self._get_client()
        response = await client.post(
            "/query",
            json={
                "query": keyword_text,
                "locale": locale,
                "category": category,
                "top_k": top_k,
            },
        )
        response.raise_for_status()
        return self._parse(response.json())

    async def search(
        self,
        keyword_text: str,
        locale: str,
        category: str,
        top_k: int | None = None,
    ) -> list[str]:
        """Ordered snippets relevant to the keyword; empty on any failure."""
        if not self.available:
            return []

        top_k = top_k or self._top_k
        start_time = time.monotonic()

        async def fetch() -> list[str]:
            return await self._fetch(keyword_text, locale, category, top_k)

        try:
            if self._cache is None:
                snippets = await fetch()
            else:
                key = f"retrieval:{locale}:{category}:{top_k}:{keyword_text.lower()}"
                snippets = await self._cache.get_or_set(key, fetch, ttl=self._cache_ttl)
        except (httpx.HTTPError, RetrievalError, ValueError) as e:
            logger.warning(
                "Retrieval context unavailable, continuing without it",
                extra={
                    "keyword": keyword_text[:100],
                    "locale": locale,
                    "error_type": type(e).__name__,
                    "error": str(e),
                },
            )
            return []

        logger.debug(
            "Retrieval context fetched",
            extra={
                "keyword": keyword_text[:100],
                "locale": locale,
                "snippets": len(snippets),
                "duration_ms": round((time.monotonic() - start_time) * 1000, 2),
            },
        )
        return snippets
