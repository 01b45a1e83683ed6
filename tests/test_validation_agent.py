from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from degen_research.agents.validation_agent import ReportValidator, chunk_report, parse_verdict


def test_parse_verdict_pass_and_fail():
    assert parse_verdict("PASS").passed is True
    assert parse_verdict("**PASSED** looks good").passed is True

    failed = parse_verdict("FAIL\n- Missing Tokenomics section")
    assert failed.passed is False
    assert failed.issues == "Missing Tokenomics section"


def test_parse_verdict_without_verdict_is_a_fail():
    result = parse_verdict("The report seems fine overall.")
    assert result.passed is False
    assert "seems fine" in result.issues

    assert parse_verdict("").passed is False
    assert parse_verdict("PASSABLE but weak").passed is False


def test_chunk_report_respects_size_and_keeps_text():
    paragraphs = [f"Paragraph {i} " + "word " * 40 for i in range(10)]
    report = "\n\n".join(paragraphs)

    chunks = chunk_report(report, 500)

    assert len(chunks) > 1
    assert all(len(chunk) <= 500 for chunk in chunks)
    assert "".join(chunks).replace("\n", "").replace(" ", "") == report.replace("\n", "").replace(" ", "")


def test_chunk_report_hard_splits_long_paragraphs():
    chunks = chunk_report("x" * 1200, 500)
    assert [len(c) for c in chunks] == [500, 500, 200]


@pytest.mark.asyncio
async def test_short_report_is_reviewed_whole_with_section_check():
    call = AsyncMock(return_value="PASS")
    validator = ReportValidator(call, project_name="Acme", chunk_threshold=1000, chunk_size=500)

    result = await validator.validate("# TLDR\nShort report.")

    assert result.passed is True
    assert call.await_count == 1
    stage, prompt = call.await_args.args
    assert stage == "validation"
    assert "Tokenomics" in prompt


@pytest.mark.asyncio
async def test_long_report_passes_only_if_every_chunk_passes():
    call = AsyncMock(side_effect=["PASS", "FAIL wrong supply figure", "PASS"])
    validator = ReportValidator(call, project_name="Acme", chunk_threshold=100, chunk_size=100)
    report = "\n\n".join(["a" * 90, "b" * 90, "c" * 90])

    result = await validator.validate(report)

    assert call.await_count == 3
    assert result.passed is False
    assert result.issues == "Part 2: wrong supply figure"
