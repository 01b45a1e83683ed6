from __future__ import annotations

from degen_research.models.research import SourceDocument, StageRecord
from degen_research.services import metrics


def _doc(url: str, content: str) -> SourceDocument:
    return SourceDocument(title="t", url=url, content=content)


def _stages(*names: str, status: str = "success") -> list[StageRecord]:
    return [StageRecord(name=name, model="m", status=status) for name in names]


def test_detail_and_variety_scores():
    sources = [_doc("https://a.com/1", "x" * 1000), _doc("https://a.com/2", "")]

    assert metrics.detail_score(sources) == 100.0
    assert metrics.source_variety(sources) == 50.0
    assert metrics.detail_score([]) == 0.0


def test_topic_coverage():
    sources = [_doc("https://a.com", "Tokenomics and TEAM details"), _doc("https://b.com", "roadmap")]
    assert metrics.topic_coverage(sources) == ["tokenomics", "team", "roadmap"]


def test_successful_llm_stages_counts_distinct_names():
    log = _stages("extraction", "extraction", "synthesis", "search.base")
    log += _stages("speculation", status="failed")
    assert metrics.successful_llm_stages(log) == 2


def test_confidence_score_depends_on_pipeline_health():
    sources = [_doc("https://a.com", "tokenomics team roadmap community price technical " + "x" * 500)]
    quality = metrics.search_quality(sources)
    assert quality == 100

    healthy = metrics.confidence_score(_stages("extraction", "synthesis", "speculation"), sources)
    degraded = metrics.confidence_score(_stages("extraction"), sources)

    assert healthy == round((80 + 100) / 2)
    assert degraded == round((40 + 100) / 2)
    assert 0 <= degraded < healthy <= 100
