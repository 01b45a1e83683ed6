from __future__ import annotations

from typing import Any

from tavily import AsyncTavilyClient

from degen_research.config import settings
from degen_research.models.research import SourceDocument


def get_client() -> AsyncTavilyClient:
    return AsyncTavilyClient(api_key=settings.tavily_api_key)


async def search(
    query: str,
    *,
    search_depth: str = "advanced",
    max_results: int = 5,
    include_domains: list[str] | None = None,
    client: AsyncTavilyClient | None = None,
) -> dict[str, Any]:
    """Execute a raw Tavily web search and return the provider payload."""
    active_client = client or get_client()

    kwargs: dict[str, Any] = {
        "query": query,
        "search_depth": search_depth,
        "max_results": max_results,
        "include_answer": False,
        "include_images": False,
        "include_raw_content": True,
    }
    if include_domains:
        kwargs["include_domains"] = include_domains

    return await active_client.search(**kwargs)


def results_to_documents(payload: Any) -> list[SourceDocument] | None:
    """Normalize a Tavily payload; ``None`` means the payload was malformed."""
    if not isinstance(payload, dict):
        return None
    raw_results = payload.get("results")
    if raw_results is None:
        return []
    if not isinstance(raw_results, list):
        return None

    documents: list[SourceDocument] = []
    for item in raw_results:
        if not isinstance(item, dict):
            continue
        url = str(item.get("url") or "").strip()
        if not url:
            continue
        documents.append(
            SourceDocument(
                title=str(item.get("title") or "No Title"),
                url=url,
                content=str(item.get("raw_content") or item.get("content") or ""),
            )
        )
    return documents
