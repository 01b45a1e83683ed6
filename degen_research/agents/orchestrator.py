from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import partial
from typing import Any, Protocol
from uuid import uuid4

from loguru import logger

from degen_research.agents.validation_agent import ReportValidator
from degen_research.config import settings
from degen_research.errors import (
    BudgetExceededError,
    EmptyContentError,
    ProviderError,
    ResearchError,
)
from degen_research.llm_client import Completion
from degen_research.models.research import (
    ResearchReport,
    ResearchRequest,
    SourceDocument,
    StageRecord,
    TieredSources,
    ValidationResult,
)
from degen_research.services import logger as log_service
from degen_research.services import metrics
from degen_research.services.analytics import SearchAnalytics
from degen_research.services.compression import PLACEHOLDER_SUMMARY, SourceCompressor
from degen_research.services.cost_tracker import CostTracker
from degen_research.services.prompt_store import render_prompt
from degen_research.services.retry import with_backoff
from degen_research.services.source_gatherer import MultiStageSourceGatherer
from degen_research.services.source_ranking import (
    apply_ranking,
    build_ranking_preview,
    parse_ranking,
    score_sources,
    tier_sources,
)
from degen_research.services.token_budget import budget_for
from degen_research.tools.search_provider import SearchBackend

REASONING_STAGES = {"synthesis", "speculation", "assembly"}

STAGE_TEMPERATURES = {
    "rerank": 0.0,
    "compression_standard": 0.2,
    "compression_compressed": 0.2,
    "extraction": 0.2,
    "synthesis": 0.3,
    "speculation": 0.7,
    "assembly": 0.4,
    "validation": 0.0,
}

NOT_RELEVANT_MARKER = "NOT RELEVANT"


class CompletionBackend(Protocol):
    async def complete(
        self,
        model: str,
        max_tokens: int,
        temperature: float,
        prompt: str,
        *,
        caller: str = "llm",
    ) -> Completion: ...


@dataclass
class PipelineRun:
    """Mutable state of one ``generate_report`` call."""

    request: ResearchRequest
    request_id: str = field(default_factory=lambda: uuid4().hex)
    started: float = field(default_factory=time.monotonic)
    phase: str = "budget"
    stage_log: list[StageRecord] = field(default_factory=list)
    extracted: list[SourceDocument] = field(default_factory=list)
    total_tokens: int = 0
    total_queries: int = 0

    @property
    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.started) * 1000)

    def record(self, name: str, model: str, status: str, **metrics_data: Any) -> None:
        self.stage_log.append(StageRecord(name=name, model=model, status=status, metrics=metrics_data))

    def error_context(self) -> dict[str, Any]:
        return {
            "request_id": self.request_id,
            "stage_log": [record.to_dict() for record in self.stage_log],
            "extracted": [
                {"title": s.title, "url": s.url, "summary": s.extracted_content}
                for s in self.extracted
            ],
        }


def project_info(request: ResearchRequest) -> str:
    return "\n".join(
        [
            f"Project Name: {request.project_name}",
            f"Website: {request.website or 'Not provided'}",
            f"Twitter: {request.twitter or 'Not provided'}",
            f"Contract Address: {request.contract_address or 'Not provided'}",
        ]
    )


class ResearchOrchestrator:
    """Runs the research pipeline for one project.

    Flow:
      1. Cost gate
      2. Multi-stage source gathering (with emergency fallback)
      3. Scoring, optional AI re-ranking, tiering
      4. Compression of standard/compressed tiers
      5. Extraction -> synthesis -> speculation -> assembly
      6. Bounded validation loop
    """

    def __init__(
        self,
        *,
        llm: CompletionBackend,
        search_provider: SearchBackend,
        cost_tracker: CostTracker,
        analytics: SearchAnalytics,
        reasoning_model: str | None = None,
        fast_model: str | None = None,
        query_delay_ms: int | None = None,
        batch_delay_ms: int | None = None,
        max_validation_attempts: int | None = None,
        extraction_batch_size: int | None = None,
    ):
        self.llm = llm
        self.cost_tracker = cost_tracker
        self.analytics = analytics
        self.gatherer = MultiStageSourceGatherer(search_provider, query_delay_ms=query_delay_ms)
        self.reasoning_model = reasoning_model or settings.reasoning_model
        self.fast_model = fast_model or settings.fast_model
        self.batch_delay_ms = batch_delay_ms
        self.max_validation_attempts = max(
            int(settings.validation_max_attempts if max_validation_attempts is None else max_validation_attempts),
            1,
        )
        self.extraction_batch_size = max(
            int(settings.extraction_batch_size if extraction_batch_size is None else extraction_batch_size),
            1,
        )

    def model_for(self, stage: str) -> str:
        return self.reasoning_model if stage in REASONING_STAGES else self.fast_model

    async def _call_stage(
        self,
        run: PipelineRun,
        stage: str,
        prompt: str,
        *,
        content_chars: int = 0,
    ) -> str:
        """One LLM call with backoff, token budgeting and a non-empty content check."""
        model = self.model_for(stage)
        max_tokens = budget_for(stage, content_chars)
        temperature = STAGE_TEMPERATURES.get(stage, 0.3)
        t0 = time.monotonic()
        try:
            completion = await with_backoff(
                lambda: self.llm.complete(model, max_tokens, temperature, prompt, caller=stage),
                label=f"llm.{stage}",
            )
            content = (completion.content or "").strip()
            if not content:
                raise EmptyContentError(f"{stage}: {model} returned no content")
        except Exception as exc:
            run.record(
                stage,
                model,
                "failed",
                duration_ms=int((time.monotonic() - t0) * 1000),
                max_tokens=max_tokens,
                error=str(exc),
            )
            raise

        run.total_tokens += completion.total_tokens
        run.record(
            stage,
            completion.model or model,
            "success",
            duration_ms=int((time.monotonic() - t0) * 1000),
            max_tokens=max_tokens,
            prompt_chars=len(prompt),
            output_chars=len(content),
            input_tokens=completion.input_tokens,
            output_tokens=completion.output_tokens,
        )
        return content

    # --- Source preparation ---

    async def rerank_sources(self, run: PipelineRun, sources: list[SourceDocument]) -> list[SourceDocument]:
        """Best-effort AI ordering; any failure keeps the score order."""
        if len(sources) <= settings.rerank_threshold:
            return sources
        preview_count = min(len(sources), settings.rerank_preview_limit)
        prompt = render_prompt(
            "ranking.rerank",
            project_name=run.request.project_name,
            count=preview_count,
            preview=build_ranking_preview(sources, preview_count),
        )
        try:
            reply = await self._call_stage(run, "rerank", prompt, content_chars=len(prompt))
        except Exception as exc:
            logger.warning(f"Re-ranking failed, keeping score order: {exc}")
            return apply_ranking(sources, None)

        positions = parse_ranking(reply, preview_count)
        if positions is None:
            logger.warning("Re-ranking reply had no usable indices, keeping score order")
        else:
            logger.info(f"Re-ranking placed {len(positions)} of {preview_count} previewed sources")
        return apply_ranking(sources, positions)

    async def _prepare_sources(self, run: PipelineRun, sources: list[SourceDocument]) -> TieredSources:
        ranked = await self.rerank_sources(run, score_sources(sources))
        tiered = tier_sources(ranked)
        logger.info(
            f"Tiered sources: premium={len(tiered.premium)} standard={len(tiered.standard)} "
            f"compressed={len(tiered.compressed)}"
        )

        run.phase = "compression"
        compressor = SourceCompressor(
            partial(self._call_stage, run),
            project_name=run.request.project_name,
            batch_delay_ms=self.batch_delay_ms,
        )
        await compressor.compress(tiered.standard, "standard")
        await compressor.compress(tiered.compressed, "compressed")
        return tiered

    # --- LLM stages ---

    async def _extract_one(self, run: PipelineRun, source: SourceDocument, info: str) -> str:
        content = source.cleaned_content or source.content
        prompt = render_prompt(
            "stages.extraction",
            project_info=info,
            title=source.title,
            url=source.url,
            content=content,
        )
        return await self._call_stage(run, "extraction", prompt, content_chars=len(content))

    async def _extract(self, run: PipelineRun, tiered: TieredSources, info: str) -> list[SourceDocument]:
        premium = tiered.premium
        failed = 0
        for start in range(0, len(premium), self.extraction_batch_size):
            batch = premium[start : start + self.extraction_batch_size]
            results = await asyncio.gather(
                *(self._extract_one(run, source, info) for source in batch),
                return_exceptions=True,
            )
            for source, result in zip(batch, results):
                if isinstance(result, Exception):
                    failed += 1
                    logger.warning(f"Extraction failed for {source.url}: {result}")
                    continue
                if result.upper().startswith(NOT_RELEVANT_MARKER):
                    logger.debug(f"Extraction marked {source.url} as not relevant")
                    continue
                source.extracted_content = result
                run.extracted.append(source)

        summarized = [
            source
            for source in (*tiered.standard, *tiered.compressed)
            if source.extracted_content and source.extracted_content != PLACEHOLDER_SUMMARY
        ]
        run.extracted.extend(summarized)
        log_service.log_research_step(
            run.request_id,
            "extraction",
            "success" if run.extracted else "failed",
            {"premium_extracted": len(run.extracted) - len(summarized), "failed": failed, "summarized": len(summarized)},
        )
        if not run.extracted:
            raise ProviderError("No source produced usable extracted content", phase="extraction")
        return run.extracted

    def _format_summaries(self, extracted: list[SourceDocument], ranked: list[SourceDocument]) -> str:
        positions = {id(source): index for index, source in enumerate(ranked, start=1)}
        blocks = []
        for source in extracted:
            number = positions.get(id(source), 0)
            tier = source.tier.value if source.tier else "unknown"
            blocks.append(f"[S{number}] {source.title} ({source.url}) [{tier}]\n{source.extracted_content}")
        return "\n\n".join(blocks)

    async def _synthesize(self, run: PipelineRun, info: str, summaries: str) -> str:
        prompt = render_prompt("stages.synthesis", project_info=info, summaries=summaries)
        return await self._call_stage(run, "synthesis", prompt, content_chars=len(summaries))

    async def _speculate(self, run: PipelineRun, info: str, synthesis: str) -> str:
        prompt = render_prompt("stages.speculation", project_info=info, synthesis=synthesis)
        return await self._call_stage(run, "speculation", prompt, content_chars=len(synthesis))

    async def _assemble(
        self, run: PipelineRun, info: str, synthesis: str, speculation: str, issues: str = ""
    ) -> str:
        feedback = render_prompt("stages.assembly_feedback", issues=issues) if issues else ""
        prompt = render_prompt(
            "stages.assembly",
            project_info=info,
            synthesis=synthesis,
            speculation=speculation,
            feedback=feedback,
        )
        return await self._call_stage(
            run, "assembly", prompt, content_chars=len(synthesis) + len(speculation)
        )

    async def _validate(self, validator: ReportValidator, report: str) -> ValidationResult:
        try:
            return await validator.validate(report)
        except Exception as exc:
            logger.warning(f"Validation call failed, counting it as a failed review: {exc}")
            return ValidationResult(passed=False, issues=f"Validation unavailable: {exc}")

    async def _assemble_and_validate(
        self, run: PipelineRun, info: str, synthesis: str, speculation: str
    ) -> tuple[str, ValidationResult, int]:
        """Assemble, review, and re-assemble with reviewer issues until PASS or out of attempts."""
        validator = ReportValidator(
            partial(self._call_stage, run), project_name=run.request.project_name
        )
        report = ""
        result = ValidationResult(passed=False)
        attempts = 0
        issues = ""

        while attempts < self.max_validation_attempts:
            attempts += 1
            run.phase = "assembly"
            report = await self._assemble(run, info, synthesis, speculation, issues)
            run.phase = "validation"
            result = await self._validate(validator, report)
            log_service.log_research_step(
                run.request_id,
                "validation",
                "success" if result.passed else "failed",
                {"attempt": attempts, "issues": result.issues[:500]},
            )
            if result.passed:
                break
            issues = result.issues

        if not result.passed:
            logger.warning(
                f"Report accepted without passing validation after {attempts} attempt(s)"
            )
        return report, result, attempts

    # --- Entry point ---

    async def generate_report(self, request: ResearchRequest) -> ResearchReport:
        run = PipelineRun(request=request)
        logger.info(f"Starting research {run.request_id} for '{request.project_name}'")

        units = settings.estimated_operation_units
        if not self.cost_tracker.can_afford(units):
            raise BudgetExceededError(
                f"Daily budget exceeded. Remaining budget: ${self.cost_tracker.remaining_budget:.4f}",
                phase="budget",
                context={"request_id": run.request_id},
            )

        try:
            report = await self._run(run)
        except ResearchError as exc:
            exc.phase = exc.phase or run.phase
            exc.context.update(run.error_context())
            logger.error(f"Research {run.request_id} failed in {exc.phase}: {exc}")
            self._track(run, results_count=0, success=False)
            raise
        except Exception as exc:
            logger.exception(f"Research {run.request_id} failed unexpectedly in {run.phase}")
            self._track(run, results_count=0, success=False)
            raise ProviderError(
                f"{run.phase} failed: {exc}", phase=run.phase, context=run.error_context()
            ) from exc

        self._track(run, results_count=report.metadata["sourcesFound"], success=True)
        return report

    async def _run(self, run: PipelineRun) -> ResearchReport:
        request = run.request
        info = project_info(request)

        run.phase = "gathering"
        gathered = await self.gatherer.gather(request)
        run.total_queries = gathered.total_queries
        for name, stage_metrics in gathered.stage_metrics.items():
            run.record(
                f"search.{name}",
                "tavily",
                "success" if stage_metrics.get("success") else "failed",
                **stage_metrics,
            )
        sources = gathered.sources

        run.phase = "ranking"
        tiered = await self._prepare_sources(run, sources)
        ranked = tiered.all()

        run.phase = "extraction"
        extracted = await self._extract(run, tiered, info)

        run.phase = "synthesis"
        synthesis = await self._synthesize(run, info, self._format_summaries(extracted, ranked))

        run.phase = "speculation"
        speculation = await self._speculate(run, info, synthesis)

        report_text, validation, attempts = await self._assemble_and_validate(
            run, info, synthesis, speculation
        )

        run.phase = "finalize"
        return self._build_report(run, report_text, synthesis, speculation, ranked, sources, tiered, validation, attempts)

    def _build_report(
        self,
        run: PipelineRun,
        report_text: str,
        synthesis: str,
        speculation: str,
        ranked: list[SourceDocument],
        all_sources: list[SourceDocument],
        tiered: TieredSources,
        validation: ValidationResult,
        attempts: int,
    ) -> ResearchReport:
        confidence = metrics.confidence_score(run.stage_log, all_sources)
        estimated_cost = (
            run.total_queries * settings.search_cost_per_query
            + run.total_tokens / 1000 * settings.llm_cost_per_1k_tokens
        )
        self.cost_tracker.track_cost(estimated_cost)

        metadata: dict[str, Any] = {
            "requestId": run.request_id,
            "createdAt": datetime.now(timezone.utc).isoformat(),
            "durationMs": run.elapsed_ms,
            "sourcesFound": len(all_sources),
            "sourcesUsed": len(run.extracted),
            "tiers": {
                "premium": len(tiered.premium),
                "standard": len(tiered.standard),
                "compressed": len(tiered.compressed),
            },
            "wordCount": len(report_text.split()),
            "searchQueries": run.total_queries,
            "totalTokens": run.total_tokens,
            "estimatedCost": round(estimated_cost, 4),
            "detailScore": round(metrics.detail_score(all_sources), 2),
            "sourceVariety": round(metrics.source_variety(all_sources), 2),
            "topicCoverage": metrics.topic_coverage(all_sources),
            "searchQualityScore": metrics.search_quality(all_sources),
            "validationPassed": validation.passed,
            "validationAttempts": attempts,
            "validationIssues": validation.issues,
            "pipelineStages": metrics.successful_llm_stages(run.stage_log),
            "stages": [record.to_dict() for record in run.stage_log],
        }

        logger.info(
            f"Research {run.request_id} complete in {run.elapsed_ms}ms: "
            f"{len(all_sources)} sources, {run.total_tokens} tokens, validation={validation.passed}"
        )
        return ResearchReport(
            report=report_text,
            synthesis=synthesis,
            speculation=speculation,
            sources=ranked[: settings.report_source_limit],
            request_id=run.request_id,
            confidence_score=confidence,
            metadata=metadata,
        )

    def _track(self, run: PipelineRun, *, results_count: int, success: bool) -> None:
        try:
            self.analytics.track_search(
                query=run.request.project_name,
                results_count=results_count,
                duration_ms=run.elapsed_ms,
                success=success,
            )
        except Exception as exc:
            log_service.log_event(
                event_type="analytics_error",
                message="Failed to record research analytics",
                error=str(exc),
                request_id=run.request_id,
            )
