"""Tests for the research orchestrator."""
from __future__ import annotations

from types import SimpleNamespace

import pytest

from degen_research.agents.orchestrator import ResearchOrchestrator
from degen_research.errors import (
    BudgetExceededError,
    EmptyContentError,
    NoSourcesError,
    ProviderError,
)
from degen_research.llm_client import Completion
from degen_research.models.research import ResearchRequest, SearchResponse, SourceDocument
from degen_research.services.analytics import SearchAnalytics
from degen_research.services.cost_tracker import CostTracker
from degen_research.services.query_expansion import expand_queries
from degen_research.services.source_gatherer import build_search_stages

REASONING = "o4-mini-2025-04-16"
FAST = "gpt-4.1-mini-2025-04-14"


def _raise(exc: Exception):
    def responder(prompt: str) -> str:
        raise exc

    return responder


def _default_reply(caller: str, prompt: str) -> str:
    if caller.startswith("compression_"):
        count = prompt.count("URL: ")
        return "\n".join(f"SOURCE {i}: batch summary {i}" for i in range(1, count + 1))
    return {
        "rerank": "[1]",
        "extraction": "Extracted facts about Acme.",
        "synthesis": "SYNTHESIS STUB",
        "speculation": "SPECULATION STUB",
        "assembly": "ASSEMBLY STUB REPORT",
        "validation": "PASS",
    }.get(caller, "ok")


class FakeLLM:
    def __init__(self, overrides: dict | None = None):
        self.overrides = overrides or {}
        self.calls: list[SimpleNamespace] = []

    async def complete(self, model, max_tokens, temperature, prompt, *, caller="llm"):
        self.calls.append(
            SimpleNamespace(caller=caller, model=model, prompt=prompt, max_tokens=max_tokens)
        )
        override = self.overrides.get(caller)
        if callable(override):
            text = override(prompt)
        elif override is not None:
            text = override
        else:
            text = _default_reply(caller, prompt)
        return Completion(content=text, model=model, input_tokens=10, output_tokens=5)

    def callers(self) -> list[str]:
        return [call.caller for call in self.calls]


class StubSearch:
    def __init__(self, responder):
        self.responder = responder
        self.queries: list[str] = []

    async def search(self, query, *, max_results=5, depth="advanced", domain_filter=None):
        self.queries.append(query)
        return SearchResponse(results=self.responder(query, len(self.queries)), total_queries=1)


BASE_QUERIES = set(expand_queries(build_search_stages(ResearchRequest("Acme"))[0].base_terms, 3))


def _base_only(query: str, n: int) -> list[SourceDocument]:
    if query not in BASE_QUERIES:
        return []
    return [
        SourceDocument(
            title=f"Acme source {i}",
            url=f"https://acme-{i}.com/post",
            content=f"Acme tokenomics and team overview number {i}. " * 20,
        )
        for i in range(3)
    ]


def _many(query: str, n: int) -> list[SourceDocument]:
    return [
        SourceDocument(
            title=f"Doc {n}-{i}",
            url=f"https://site{n}.com/{i}",
            content="Acme roadmap and community notes. " * 20,
        )
        for i in range(2)
    ]


def _orchestrator(llm, search, **kwargs) -> ResearchOrchestrator:
    return ResearchOrchestrator(
        llm=llm,
        search_provider=search,
        cost_tracker=kwargs.pop("cost_tracker", CostTracker()),
        analytics=kwargs.pop("analytics", SearchAnalytics()),
        reasoning_model=REASONING,
        fast_model=FAST,
        query_delay_ms=0,
        batch_delay_ms=0,
        **kwargs,
    )


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_happy_path_with_three_base_sources(self):
        llm = FakeLLM()
        analytics = SearchAnalytics()
        tracker = CostTracker()
        orchestrator = _orchestrator(llm, StubSearch(_base_only), analytics=analytics, cost_tracker=tracker)

        report = await orchestrator.generate_report(ResearchRequest("Acme"))

        assert len(report.sources) == 3
        assert "ASSEMBLY STUB REPORT" in report.report
        assert report.synthesis == "SYNTHESIS STUB"
        assert report.speculation == "SPECULATION STUB"
        assert report.metadata["validationPassed"] is True
        assert report.metadata["validationAttempts"] == 1
        assert report.metadata["sourcesUsed"] == 3
        assert 0 <= report.confidence_score <= 100

        # No rerank and no compression for a small premium-only set.
        assert "rerank" not in llm.callers()
        assert not any(c.startswith("compression_") for c in llm.callers())
        assert llm.callers().count("extraction") == 3

        assert analytics.records[-1].success is True
        assert tracker.remaining_budget < tracker.daily_budget

        body = report.to_dict()
        assert body["requestId"] == report.request_id
        assert len(body["sources"]) == 3

    @pytest.mark.asyncio
    async def test_no_sources_anywhere_makes_no_llm_calls(self):
        llm = FakeLLM()
        search = StubSearch(lambda q, n: [])
        orchestrator = _orchestrator(llm, search)

        with pytest.raises(NoSourcesError) as exc_info:
            await orchestrator.generate_report(ResearchRequest("Acme"))

        assert exc_info.value.phase == "gathering"
        assert search.queries[-1] == "Acme cryptocurrency"
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_empty_synthesis_keeps_extracted_summaries_in_error_context(self):
        llm = FakeLLM({"synthesis": "   "})
        orchestrator = _orchestrator(llm, StubSearch(_base_only))

        with pytest.raises(EmptyContentError) as exc_info:
            await orchestrator.generate_report(ResearchRequest("Acme"))

        err = exc_info.value
        assert isinstance(err, ProviderError)
        assert err.phase == "synthesis"
        assert len(err.context["extracted"]) == 3
        assert all(item["summary"] for item in err.context["extracted"])
        failed = [r for r in err.context["stage_log"] if r["status"] == "failed"]
        assert [r["name"] for r in failed] == ["synthesis"]
        assert "speculation" not in llm.callers()


class TestStages:
    @pytest.mark.asyncio
    async def test_models_follow_stage_class(self):
        llm = FakeLLM()
        await _orchestrator(llm, StubSearch(_base_only)).generate_report(ResearchRequest("Acme"))

        models = {call.caller: call.model for call in llm.calls}
        assert models["extraction"] == FAST
        assert models["validation"] == FAST
        assert models["synthesis"] == REASONING
        assert models["assembly"] == REASONING

    @pytest.mark.asyncio
    async def test_validation_loop_is_bounded(self):
        llm = FakeLLM({"validation": "FAIL missing tokenomics table"})
        orchestrator = _orchestrator(llm, StubSearch(_base_only), max_validation_attempts=2)

        report = await orchestrator.generate_report(ResearchRequest("Acme"))

        assert llm.callers().count("assembly") == 2
        assert llm.callers().count("validation") == 2
        assert report.metadata["validationPassed"] is False
        assert report.metadata["validationAttempts"] == 2
        second_assembly = [c for c in llm.calls if c.caller == "assembly"][1]
        assert "missing tokenomics table" in second_assembly.prompt

    @pytest.mark.asyncio
    async def test_validation_passes_on_second_attempt(self):
        verdicts = iter(["FAIL no TLDR", "PASS"])
        llm = FakeLLM({"validation": lambda prompt: next(verdicts)})
        orchestrator = _orchestrator(llm, StubSearch(_base_only), max_validation_attempts=3)

        report = await orchestrator.generate_report(ResearchRequest("Acme"))

        assert report.metadata["validationPassed"] is True
        assert report.metadata["validationAttempts"] == 2

    @pytest.mark.asyncio
    async def test_validation_errors_count_as_failed_review(self):
        llm = FakeLLM({"validation": _raise(RuntimeError("validator offline"))})
        orchestrator = _orchestrator(llm, StubSearch(_base_only), max_validation_attempts=2)

        report = await orchestrator.generate_report(ResearchRequest("Acme"))

        assert report.report == "ASSEMBLY STUB REPORT"
        assert report.metadata["validationPassed"] is False
        assert llm.callers().count("assembly") == 2

    @pytest.mark.asyncio
    async def test_not_relevant_extractions_are_dropped(self):
        replies = iter(["NOT RELEVANT", "Facts one.", "Facts two."])
        llm = FakeLLM({"extraction": lambda prompt: next(replies)})
        orchestrator = _orchestrator(llm, StubSearch(_base_only))

        report = await orchestrator.generate_report(ResearchRequest("Acme"))

        assert report.metadata["sourcesUsed"] == 2

    @pytest.mark.asyncio
    async def test_all_extractions_failing_is_a_provider_error(self):
        llm = FakeLLM({"extraction": _raise(RuntimeError("down"))})
        orchestrator = _orchestrator(llm, StubSearch(_base_only))

        with pytest.raises(ProviderError) as exc_info:
            await orchestrator.generate_report(ResearchRequest("Acme"))

        assert exc_info.value.phase == "extraction"
        assert "synthesis" not in llm.callers()

    @pytest.mark.asyncio
    async def test_unexpected_errors_are_wrapped_with_phase(self):
        llm = FakeLLM({"speculation": _raise(KeyError("weird"))})
        orchestrator = _orchestrator(llm, StubSearch(_base_only))

        with pytest.raises(ProviderError) as exc_info:
            await orchestrator.generate_report(ResearchRequest("Acme"))

        assert exc_info.value.phase == "speculation"
        assert isinstance(exc_info.value.__cause__, KeyError)
        assert exc_info.value.context["request_id"]


class TestRankingAndCompression:
    @pytest.mark.asyncio
    async def test_large_source_sets_are_reranked_tiered_and_compressed(self):
        llm = FakeLLM({"rerank": "Ranking: [3, 1, 2]"})
        orchestrator = _orchestrator(llm, StubSearch(_many))

        report = await orchestrator.generate_report(ResearchRequest("Acme"))

        assert llm.callers().count("rerank") == 1
        assert [s.url for s in report.sources[:3]] == [
            "https://site2.com/0",
            "https://site1.com/0",
            "https://site1.com/1",
        ]
        assert len(report.sources) == 20
        tiers = report.metadata["tiers"]
        assert tiers["premium"] == 15
        assert tiers["standard"] == 40
        assert llm.callers().count("extraction") == 15
        assert llm.callers().count("compression_standard") == 8
        assert report.metadata["sourcesUsed"] == report.metadata["tiers"]["premium"] + 40 + tiers["compressed"]

    @pytest.mark.asyncio
    async def test_rerank_failure_keeps_score_order(self):
        llm = FakeLLM({"rerank": _raise(RuntimeError("rerank down"))})
        orchestrator = _orchestrator(llm, StubSearch(_many))

        report = await orchestrator.generate_report(ResearchRequest("Acme"))

        assert report.sources[0].url == "https://site1.com/0"
        rerank_records = [s for s in report.metadata["stages"] if s["name"] == "rerank"]
        assert rerank_records[0]["status"] == "failed"


class TestCostGate:
    @pytest.mark.asyncio
    async def test_budget_gate_rejects_before_any_work(self):
        llm = FakeLLM()
        search = StubSearch(_base_only)
        orchestrator = _orchestrator(llm, search, cost_tracker=CostTracker(daily_budget=0.0))

        with pytest.raises(BudgetExceededError) as exc_info:
            await orchestrator.generate_report(ResearchRequest("Acme"))

        assert exc_info.value.phase == "budget"
        assert search.queries == []
        assert llm.calls == []
