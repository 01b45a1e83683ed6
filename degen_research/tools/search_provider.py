from __future__ import annotations

import re
from typing import Any, Protocol

from loguru import logger

from degen_research.config import settings
from degen_research.errors import ConfigurationError
from degen_research.models.research import SearchResponse, SourceDocument
from degen_research.services.retry import is_rate_limit_error
from degen_research.tools import tavily_search

CRYPTO_NEWS_DOMAINS = [
    "cointelegraph.com",
    "coindesk.com",
    "coingecko.com",
    "coinmarketcap.com",
]

CRYPTO_KEYWORDS = (
    "crypto",
    "cryptocurrency",
    "bitcoin",
    "ethereum",
    "token",
    "defi",
    "blockchain",
    "coin",
)

_UNSAFE_CHARS = re.compile(r'[^\w\s\-_.@#:"/]')


class SearchBackend(Protocol):
    async def search(
        self,
        query: str,
        *,
        max_results: int = 5,
        depth: str = "advanced",
        domain_filter: list[str] | None = None,
    ) -> SearchResponse: ...


def sanitize_query(query: str, *, max_chars: int | None = None) -> str:
    """Trim, replace characters outside the safe set, collapse whitespace, cap length."""
    if not query or not isinstance(query, str):
        return ""
    limit = settings.search_query_max_chars if max_chars is None else max_chars
    cleaned = _UNSAFE_CHARS.sub(" ", query.strip())
    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    return cleaned[:limit].strip()


def is_crypto_query(query: str) -> bool:
    lowered = query.lower()
    return any(keyword in lowered for keyword in CRYPTO_KEYWORDS)


class SearchProvider:
    """Search boundary in front of Tavily.

    Transport errors and malformed payloads become empty responses. Rate-limit
    errors are re-raised so the caller's retry wrapper can back off.
    """

    def __init__(self, client: Any | None = None):
        self.client = client

    async def _attempt(
        self,
        query: str,
        *,
        max_results: int,
        depth: str,
        domains: list[str] | None,
    ) -> list[SourceDocument]:
        try:
            payload = await tavily_search.search(
                query,
                search_depth=depth,
                max_results=max_results,
                include_domains=domains,
                client=self.client,
            )
        except Exception as exc:
            if is_rate_limit_error(exc):
                raise
            logger.warning(f"Search failed for '{query[:80]}' ({depth}): {exc}")
            return []

        documents = tavily_search.results_to_documents(payload)
        if documents is None:
            logger.warning(f"Malformed search payload for '{query[:80]}', treating as empty")
            return []
        return documents

    async def search(
        self,
        query: str,
        *,
        max_results: int = 5,
        depth: str = "advanced",
        domain_filter: list[str] | None = None,
    ) -> SearchResponse:
        """Search with the fallback chain: filtered advanced, unfiltered, basic.

        ``domain_filter=None`` applies the crypto-news filter to crypto-looking
        queries; an explicit empty list disables filtering.
        """
        sanitized = sanitize_query(query)
        if not sanitized:
            logger.warning(f"Skipping invalid search query: {query!r}")
            return SearchResponse(results=[], total_queries=0)

        domains = domain_filter
        if domains is None:
            domains = CRYPTO_NEWS_DOMAINS if is_crypto_query(sanitized) else []

        attempts: list[tuple[str, list[str] | None]] = []
        if domains:
            attempts.append((depth, list(domains)))
        attempts.append((depth, None))
        if depth != "basic":
            attempts.append(("basic", None))

        results: list[SourceDocument] = []
        calls = 0
        for attempt_depth, attempt_domains in attempts:
            calls += 1
            results = await self._attempt(
                sanitized,
                max_results=max_results,
                depth=attempt_depth,
                domains=attempt_domains,
            )
            if results:
                break

        logger.debug(f"Search '{sanitized[:80]}' -> {len(results)} results after {calls} call(s)")
        return SearchResponse(results=results, total_queries=calls, cache_hit_rate=0.0)


def get_search_provider() -> SearchProvider:
    """Build the Tavily-backed provider from settings."""
    if not settings.tavily_api_key:
        raise ConfigurationError("TAVILY_API_KEY is not configured")
    return SearchProvider(client=tavily_search.get_client())
