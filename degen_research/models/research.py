from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal


StageStatus = Literal["success", "failed", "skipped"]


class Tier(str, Enum):
    PREMIUM = "premium"
    STANDARD = "standard"
    COMPRESSED = "compressed"


@dataclass(frozen=True, slots=True)
class ResearchRequest:
    project_name: str
    website: str = ""
    twitter: str = ""
    contract_address: str = ""

    def __post_init__(self) -> None:
        if not self.project_name or not self.project_name.strip():
            raise ValueError("Project name is required")


@dataclass(slots=True)
class SourceDocument:
    title: str
    url: str
    content: str
    quality_score: float = 0.0
    cleaned_content: str = ""
    tier: Tier | None = None
    extracted_content: str | None = None

    @property
    def best_text(self) -> str:
        """Most condensed text available for downstream prompts."""
        return self.extracted_content or self.cleaned_content or self.content

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "url": self.url,
            "content": self.content,
            "qualityScore": round(self.quality_score, 2),
            "tier": self.tier.value if self.tier else None,
        }


@dataclass(slots=True)
class SearchResponse:
    results: list[SourceDocument] = field(default_factory=list)
    total_queries: int = 0
    cache_hit_rate: float = 0.0


@dataclass(slots=True)
class StageRecord:
    name: str
    model: str
    status: StageStatus
    metrics: dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class ValidationResult:
    passed: bool
    issues: str = ""


@dataclass(slots=True)
class TieredSources:
    premium: list[SourceDocument] = field(default_factory=list)
    standard: list[SourceDocument] = field(default_factory=list)
    compressed: list[SourceDocument] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.premium) + len(self.standard) + len(self.compressed)

    def all(self) -> list[SourceDocument]:
        return [*self.premium, *self.standard, *self.compressed]


@dataclass(slots=True)
class GatherResult:
    sources: list[SourceDocument]
    stage_metrics: dict[str, dict[str, Any]] = field(default_factory=dict)
    total_queries: int = 0
    used_emergency_fallback: bool = False


@dataclass(slots=True)
class ResearchReport:
    report: str
    synthesis: str
    speculation: str
    sources: list[SourceDocument]
    request_id: str
    confidence_score: int
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "report": self.report,
            "synthesis": self.synthesis,
            "speculation": self.speculation,
            "sources": [source.to_dict() for source in self.sources],
            "requestId": self.request_id,
            "confidenceScore": self.confidence_score,
            "metadata": self.metadata,
        }
