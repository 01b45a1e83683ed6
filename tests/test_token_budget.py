from __future__ import annotations

from degen_research.services.token_budget import BASE_TOKENS, MAX_TOKENS, budget_for


def test_base_allowance_without_content():
    for stage, base in BASE_TOKENS.items():
        assert budget_for(stage) == min(base, MAX_TOKENS[stage])


def test_allowance_grows_with_content_and_is_clamped():
    small = budget_for("synthesis", 1000)
    large = budget_for("synthesis", 15000)
    huge = budget_for("synthesis", 10_000_000)

    assert small <= large <= huge
    assert huge == MAX_TOKENS["synthesis"]
    assert huge <= BASE_TOKENS["synthesis"] * 2


def test_unknown_stage_uses_defaults():
    assert budget_for("mystery") == 1000
    assert budget_for("mystery", 10_000_000) == 2000
