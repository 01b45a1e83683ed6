from __future__ import annotations

import pytest

from degen_research.services.analytics import SearchAnalytics
from degen_research.services.cost_tracker import CostTracker


def test_cost_tracker_gate():
    tracker = CostTracker(daily_budget=1.0, unit_cost=0.01)

    assert tracker.can_afford(100)
    assert not tracker.can_afford(101)

    tracker.track_cost(0.5)
    assert tracker.remaining_budget == pytest.approx(0.5)
    assert not tracker.can_afford(51)

    tracker.track_cost(-3)
    assert tracker.remaining_budget == pytest.approx(0.5)

    tracker.reset()
    assert tracker.remaining_budget == pytest.approx(1.0)


def test_analytics_keeps_last_records_and_stats():
    analytics = SearchAnalytics(max_records=3)
    for i in range(5):
        analytics.track_search(query=f"q{i}", results_count=i, duration_ms=100, success=i != 4)

    assert [r.query for r in analytics.records] == ["q2", "q3", "q4"]
    stats = analytics.stats()
    assert stats["total_searches"] == 3
    assert stats["total_results"] == 2 + 3 + 4
    assert stats["average_duration_ms"] == 100
    assert stats["success_rate"] == pytest.approx(200 / 3)


def test_empty_analytics_stats():
    assert SearchAnalytics().stats()["total_searches"] == 0
