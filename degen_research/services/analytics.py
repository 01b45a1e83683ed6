from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

MAX_RECORDS = 100


@dataclass(slots=True)
class SearchRecord:
    query: str
    results_count: int
    duration_ms: int
    success: bool = True
    timestamp: float = field(default_factory=time.time)


class SearchAnalytics:
    """In-memory ring of the most recent research runs."""

    def __init__(self, max_records: int = MAX_RECORDS):
        self.max_records = max(max_records, 1)
        self.records: list[SearchRecord] = []

    def track_search(
        self,
        *,
        query: str,
        results_count: int,
        duration_ms: int,
        success: bool = True,
    ) -> None:
        self.records.append(
            SearchRecord(
                query=query,
                results_count=results_count,
                duration_ms=duration_ms,
                success=success,
            )
        )
        if len(self.records) > self.max_records:
            self.records = self.records[-self.max_records :]

    def stats(self) -> dict[str, Any]:
        total = len(self.records)
        if not total:
            return {"total_searches": 0, "average_duration_ms": 0, "total_results": 0, "success_rate": 0.0}
        successes = sum(1 for record in self.records if record.success)
        return {
            "total_searches": total,
            "average_duration_ms": round(sum(r.duration_ms for r in self.records) / total),
            "total_results": sum(r.results_count for r in self.records),
            "success_rate": successes / total * 100,
        }
