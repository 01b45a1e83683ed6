from __future__ import annotations

from functools import lru_cache

from degen_research.agents.orchestrator import ResearchOrchestrator
from degen_research.config import settings
from degen_research.llm_client import get_client
from degen_research.services.analytics import SearchAnalytics
from degen_research.services.cost_tracker import CostTracker
from degen_research.tools.search_provider import get_search_provider


def api_keys_status() -> dict[str, bool]:
    return {
        "openai": bool(settings.openai_api_key.strip()),
        "tavily": bool(settings.tavily_api_key.strip()),
    }


@lru_cache
def get_cost_tracker() -> CostTracker:
    return CostTracker()


@lru_cache
def get_analytics() -> SearchAnalytics:
    return SearchAnalytics()


@lru_cache
def get_orchestrator() -> ResearchOrchestrator:
    """Process-wide orchestrator; raises ``ConfigurationError`` without API keys."""
    return ResearchOrchestrator(
        llm=get_client(),
        search_provider=get_search_provider(),
        cost_tracker=get_cost_tracker(),
        analytics=get_analytics(),
    )
