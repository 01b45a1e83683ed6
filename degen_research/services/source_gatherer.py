from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from degen_research.config import settings
from degen_research.errors import NoSourcesError
from degen_research.models.research import GatherResult, ResearchRequest, SourceDocument
from degen_research.services.query_expansion import expand_queries
from degen_research.services.retry import retry_budget, with_backoff
from degen_research.services.source_ranking import deduplicate_sources
from degen_research.tools import web_utils
from degen_research.tools.search_provider import SearchBackend


@dataclass(slots=True)
class SearchStage:
    name: str
    base_terms: list[str]
    variation_count: int
    essential: bool
    max_queries: int
    max_results: int


@dataclass(slots=True)
class StageOutcome:
    name: str
    queries: list[str] = field(default_factory=list)
    sources: list[SourceDocument] = field(default_factory=list)
    total_queries: int = 0
    success: bool = True
    error: str | None = None
    duration_ms: int = 0

    def metrics(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "queries": len(self.queries),
            "sources": len(self.sources),
            "duration_ms": self.duration_ms,
            "success": self.success,
        }
        if self.error:
            data["error"] = self.error
        return data


def build_search_stages(request: ResearchRequest) -> list[SearchStage]:
    """Ordered search stages, simplest and most essential first."""
    name = request.project_name.strip()

    base_terms = [name, f"{name} crypto", f"{name} token", f"{name} blockchain"]
    if request.website:
        base_terms.append(f"site:{web_utils.strip_scheme(request.website)}")
    if request.twitter:
        handle = request.twitter.strip().lstrip("@").rsplit("/", 1)[-1]
        base_terms.append(f"site:twitter.com {handle or name}")
    if request.contract_address:
        base_terms.append(f"{request.contract_address} token contract")

    return [
        SearchStage(
            name="base",
            base_terms=base_terms,
            variation_count=3,
            essential=True,
            max_queries=15,
            max_results=4,
        ),
        SearchStage(
            name="deep",
            base_terms=[
                f"{name} team founders CEO",
                f"{name} tokenomics supply distribution",
                f"{name} roadmap development milestones",
                f"{name} partnerships investors funding",
                f"{name} use case utility value proposition",
                f"{name} competition comparison analysis",
            ],
            variation_count=3,
            essential=True,
            max_queries=20,
            max_results=3,
        ),
        SearchStage(
            name="market",
            base_terms=[
                f"{name} price prediction market cap",
                f"{name} community social telegram discord",
                f"{name} smart contract security audit",
                f"{name} airdrop rewards incentives",
                f"{name} listing exchange trading volume",
            ],
            variation_count=2,
            essential=False,
            max_queries=15,
            max_results=3,
        ),
        SearchStage(
            name="risk",
            base_terms=[
                f"{name} risks concerns red flags",
                f"{name} technical implementation architecture",
                f"{name} regulatory compliance legal",
                f"{name} news updates recent developments",
                f'"{name}" review analysis report',
            ],
            variation_count=0,
            essential=False,
            max_queries=10,
            max_results=2,
        ),
    ]


class MultiStageSourceGatherer:
    """Runs the search stages in order; one failing stage never stops the rest."""

    def __init__(
        self,
        provider: SearchBackend,
        *,
        query_delay_ms: int | None = None,
        batch_max_queries: int | None = None,
    ):
        self.provider = provider
        self.query_delay_ms = settings.search_query_delay_ms if query_delay_ms is None else query_delay_ms
        self.batch_max_queries = (
            settings.search_batch_max_queries if batch_max_queries is None else batch_max_queries
        )

    async def _search_one(
        self, query: str, *, max_results: int, essential: bool, label: str
    ) -> tuple[list[SourceDocument], int]:
        response = await with_backoff(
            lambda: self.provider.search(query, max_results=max_results),
            label=label,
            **retry_budget(essential),
        )
        return list(response.results), response.total_queries

    async def _search_batch(
        self, queries: list[str], stage: SearchStage, outcome: StageOutcome
    ) -> None:
        """Search each query in turn, appending into ``outcome`` as results arrive."""
        seen_urls = {web_utils.normalize_url(s.url) for s in outcome.sources}
        successes = 0

        for index, query in enumerate(queries):
            if index > 0 and self.query_delay_ms > 0:
                delay = self.query_delay_ms if successes else self.query_delay_ms * 2
                await asyncio.sleep(delay / 1000)

            results, calls = await self._search_one(
                query,
                max_results=stage.max_results,
                essential=stage.essential,
                label=f"search.{stage.name}",
            )
            outcome.queries.append(query)
            outcome.total_queries += calls
            if results:
                successes += 1
            for result in results:
                key = web_utils.normalize_url(result.url)
                if key and key not in seen_urls:
                    seen_urls.add(key)
                    outcome.sources.append(result)

    async def run_stage(self, stage: SearchStage) -> StageOutcome:
        outcome = StageOutcome(name=stage.name)
        t0 = time.monotonic()
        queries = expand_queries(stage.base_terms, stage.variation_count)[: stage.max_queries]

        batch_size = max(self.batch_max_queries, 1)
        try:
            for start in range(0, len(queries), batch_size):
                if start and self.query_delay_ms > 0:
                    await asyncio.sleep(self.query_delay_ms / 1000)
                await self._search_batch(queries[start : start + batch_size], stage, outcome)
            if not outcome.sources and stage.essential and stage.base_terms:
                logger.warning(
                    f"Essential stage '{stage.name}' found nothing, retrying with '{stage.base_terms[0]}'"
                )
                await self._search_batch([stage.base_terms[0]], stage, outcome)
        except Exception as exc:
            outcome.success = False
            outcome.error = str(exc)
            logger.warning(
                f"Search stage '{stage.name}' failed after {len(outcome.queries)} queries "
                f"({len(outcome.sources)} sources kept): {exc}"
            )

        outcome.duration_ms = int((time.monotonic() - t0) * 1000)
        logger.info(
            f"Search stage '{stage.name}': {len(outcome.queries)} queries, "
            f"{len(outcome.sources)} sources, {outcome.duration_ms}ms"
        )
        return outcome

    async def gather(
        self, request: ResearchRequest, stages: list[SearchStage] | None = None
    ) -> GatherResult:
        stages = build_search_stages(request) if stages is None else stages
        all_sources: list[SourceDocument] = []
        stage_metrics: dict[str, dict[str, Any]] = {}
        total_queries = 0

        for stage in stages:
            outcome = await self.run_stage(stage)
            all_sources.extend(outcome.sources)
            stage_metrics[stage.name] = outcome.metrics()
            total_queries += outcome.total_queries

        sources = deduplicate_sources(all_sources)
        used_emergency = False

        if not sources:
            used_emergency = True
            emergency_query = f"{request.project_name} {settings.emergency_query_suffix}"
            logger.warning(f"No sources from any stage, trying emergency query '{emergency_query}'")
            try:
                results, calls = await self._search_one(
                    emergency_query, max_results=5, essential=True, label="search.emergency"
                )
                total_queries += calls
                sources = deduplicate_sources(results)
            except Exception as exc:
                logger.error(f"Emergency search failed: {exc}")
                stage_metrics["emergency"] = {"queries": 1, "sources": 0, "success": False, "error": str(exc)}
            else:
                stage_metrics["emergency"] = {"queries": 1, "sources": len(sources), "success": True}

        if not sources:
            raise NoSourcesError(
                f"No sources found for project '{request.project_name}'",
                phase="gathering",
                context={"stage_metrics": stage_metrics, "total_queries": total_queries},
            )

        logger.info(
            f"Gathered {len(sources)} unique sources from {len(all_sources)} results "
            f"over {total_queries} queries"
        )
        return GatherResult(
            sources=sources,
            stage_metrics=stage_metrics,
            total_queries=total_queries,
            used_emergency_fallback=used_emergency,
        )
