"""Report quality metrics.

The confidence weights below are a placeholder policy carried over from the
first version of the service; they are not calibrated against anything.
"""
from __future__ import annotations

from degen_research.models.research import SourceDocument, StageRecord
from degen_research.tools import web_utils

TOPICS = ("tokenomics", "team", "roadmap", "community", "price", "technical")

DETAIL_CHARS_FOR_FULL_SCORE = 500
PIPELINE_SCORE_HEALTHY = 80
PIPELINE_SCORE_DEGRADED = 40
MIN_HEALTHY_LLM_STAGES = 3
LLM_STAGE_NAMES = ("extraction", "synthesis", "speculation", "assembly", "validation")


def detail_score(sources: list[SourceDocument]) -> float:
    if not sources:
        return 0.0
    avg_length = sum(len(s.content or "") for s in sources) / len(sources)
    return min(100.0, avg_length / DETAIL_CHARS_FOR_FULL_SCORE * 100)


def source_variety(sources: list[SourceDocument]) -> float:
    if not sources:
        return 0.0
    domains = {web_utils.extract_domain(s.url) or "unknown" for s in sources}
    return min(100.0, len(domains) / len(sources) * 100)


def topic_coverage(sources: list[SourceDocument]) -> list[str]:
    bodies = [(s.content or "").lower() for s in sources]
    return [topic for topic in TOPICS if any(topic in body for body in bodies)]


def search_quality(sources: list[SourceDocument]) -> int:
    topic_score = len(topic_coverage(sources)) / len(TOPICS) * 100
    return round((detail_score(sources) + source_variety(sources) + topic_score) / 3)


def successful_llm_stages(stage_log: list[StageRecord]) -> int:
    """Distinct LLM stage names with at least one successful record."""
    return len(
        {
            record.name
            for record in stage_log
            if record.status == "success" and record.name in LLM_STAGE_NAMES
        }
    )


def confidence_score(stage_log: list[StageRecord], sources: list[SourceDocument]) -> int:
    healthy = successful_llm_stages(stage_log) >= MIN_HEALTHY_LLM_STAGES
    pipeline_score = PIPELINE_SCORE_HEALTHY if healthy else PIPELINE_SCORE_DEGRADED
    return round((pipeline_score + search_quality(sources)) / 2)
