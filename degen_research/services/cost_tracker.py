from __future__ import annotations

from loguru import logger

from degen_research.config import settings


class CostTracker:
    """Daily spend counter used as a gate before a research run starts.

    ``can_afford`` takes abstract operation units; each unit is priced at
    ``unit_cost`` dollars.
    """

    def __init__(self, daily_budget: float | None = None, unit_cost: float | None = None):
        self.daily_budget = settings.daily_budget_usd if daily_budget is None else daily_budget
        self.unit_cost = settings.cost_unit_usd if unit_cost is None else unit_cost
        self.current_spend = 0.0

    def can_afford(self, estimated_units: float) -> bool:
        return self.current_spend + estimated_units * self.unit_cost <= self.daily_budget

    def track_cost(self, cost: float) -> None:
        if cost <= 0:
            return
        self.current_spend += cost
        logger.debug(f"Tracked ${cost:.4f}, spend today ${self.current_spend:.4f}")

    @property
    def remaining_budget(self) -> float:
        return max(0.0, self.daily_budget - self.current_spend)

    def reset(self) -> None:
        self.current_spend = 0.0
