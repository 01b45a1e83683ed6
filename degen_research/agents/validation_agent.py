from __future__ import annotations

import re
from typing import Awaitable, Callable

from loguru import logger

from degen_research.config import settings
from degen_research.models.research import ValidationResult
from degen_research.services.prompt_store import render_prompt

StageCall = Callable[..., Awaitable[str]]


def chunk_report(report: str, max_chars: int) -> list[str]:
    """Split on blank-line paragraph boundaries into chunks of at most ``max_chars``.

    A single paragraph longer than ``max_chars`` is hard-split.
    """
    max_chars = max(max_chars, 1)
    paragraphs = [p.strip() for p in re.split(r"\n\s*\n", report or "") if p.strip()]
    chunks: list[str] = []
    current = ""

    for paragraph in paragraphs:
        pieces = [paragraph[i : i + max_chars] for i in range(0, len(paragraph), max_chars)]
        for piece in pieces:
            candidate = f"{current}\n\n{piece}" if current else piece
            if len(candidate) <= max_chars:
                current = candidate
                continue
            if current:
                chunks.append(current)
            current = piece
    if current:
        chunks.append(current)
    return chunks


def parse_verdict(text: str) -> ValidationResult:
    """First word ``PASS`` passes; anything else fails with the rest as issues."""
    stripped = (text or "").strip()
    match = re.match(r"[\W_]*(PASS(?:ED)?|FAIL(?:ED)?)\b[\W_]*", stripped, flags=re.IGNORECASE)
    if match is None:
        return ValidationResult(passed=False, issues=stripped or "Reviewer returned no verdict.")
    issues = stripped[match.end() :].strip()
    if match.group(1).upper().startswith("PASS"):
        return ValidationResult(passed=True, issues=issues)
    return ValidationResult(passed=False, issues=issues or "Reviewer rejected the report.")


class ReportValidator:
    """Reviews an assembled report, chunk by chunk when it is long."""

    name = "validation"

    def __init__(
        self,
        call_llm: StageCall,
        *,
        project_name: str,
        chunk_threshold: int | None = None,
        chunk_size: int | None = None,
    ):
        self.call_llm = call_llm
        self.project_name = project_name
        self.chunk_threshold = (
            settings.validation_chunk_threshold if chunk_threshold is None else chunk_threshold
        )
        self.chunk_size = settings.validation_chunk_size if chunk_size is None else chunk_size

    async def _review(self, text: str, *, chunk_label: str, check_sections: bool) -> ValidationResult:
        prompt = render_prompt(
            "validation.review",
            project_name=self.project_name,
            chunk_label=chunk_label,
            section_check=render_prompt("validation.section_check") if check_sections else "",
            report=text,
        )
        reply = await self.call_llm(self.name, prompt, content_chars=len(text))
        return parse_verdict(reply)

    async def validate(self, report: str) -> ValidationResult:
        if len(report) <= self.chunk_threshold:
            return await self._review(report, chunk_label="the full text", check_sections=True)

        chunks = chunk_report(report, self.chunk_size)
        logger.info(f"Validating report in {len(chunks)} chunks ({len(report)} chars)")
        failures: list[str] = []
        for index, chunk in enumerate(chunks, start=1):
            result = await self._review(
                chunk,
                chunk_label=f"part {index} of {len(chunks)}",
                check_sections=False,
            )
            if not result.passed:
                failures.append(f"Part {index}: {result.issues}")

        if failures:
            return ValidationResult(passed=False, issues="\n".join(failures))
        return ValidationResult(passed=True)
