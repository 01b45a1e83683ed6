from __future__ import annotations

import pytest

from degen_research.services.prompt_store import REPORT_SECTIONS, numbered_sections, render_prompt


def test_render_prompt_substitutes_template_values():
    prompt = render_prompt(
        "stages.synthesis",
        project_info="Project Name: Acme",
        summaries="[S1] summary",
        today_iso="2026-02-21",
    )
    assert "Project Name: Acme" in prompt
    assert "[S1] summary" in prompt
    assert "2026-02-21" in prompt
    assert "1. TLDR" in prompt


def test_render_prompt_raises_for_unknown_key():
    with pytest.raises(KeyError):
        render_prompt("missing.prompt.key")


def test_render_prompt_raises_for_missing_value():
    with pytest.raises(KeyError, match="project_info"):
        render_prompt("stages.speculation", synthesis="x")


def test_numbered_sections_cover_the_report_outline():
    lines = numbered_sections().splitlines()
    assert len(lines) == len(REPORT_SECTIONS)
    assert lines[-1] == f"{len(REPORT_SECTIONS)}. Conclusion"


def test_rerank_prompt_only_asks_for_an_order():
    prompt = render_prompt("ranking.rerank", project_name="Acme", count=3, preview="1. a\n2. b\n3. c")

    assert "JSON array of source numbers" in prompt
    assert "drop" not in prompt.lower()
