"""Batch summarization of standard and compressed tier sources."""
from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from typing import Awaitable, Callable, Literal

from loguru import logger

from degen_research.config import settings
from degen_research.models.research import SourceDocument
from degen_research.services.prompt_store import render_prompt
from degen_research.tools import web_utils

CompressionMode = Literal["standard", "compressed"]
StageCall = Callable[..., Awaitable[str]]

PLACEHOLDER_SUMMARY = "Summary unavailable for this source."
BATCH_INPUT_CHARS = 3000

_SOURCE_MARKER = re.compile(r"^\s*(?:[#*\[]+\s*)?SOURCE\s+\d+\s*\]?[:.)\-]*\**", re.IGNORECASE | re.MULTILINE)


@dataclass(frozen=True)
class ModeProfile:
    batch_size: int
    target_chars: int


def _profile(mode: CompressionMode) -> ModeProfile:
    if mode == "standard":
        return ModeProfile(settings.standard_batch_size, settings.standard_summary_chars)
    return ModeProfile(settings.compressed_batch_size, settings.compressed_summary_chars)


def split_summaries(text: str, expected: int) -> list[str]:
    """Split a batch reply on ``SOURCE n`` markers into exactly ``expected`` items.

    Missing summaries become a placeholder; extras are dropped.
    """
    parts = _SOURCE_MARKER.split(text or "")
    if len(parts) > 1:
        summaries = [part.strip() for part in parts[1:]]
    else:
        summaries = [text.strip()] if text and text.strip() else []
    summaries = [summary or PLACEHOLDER_SUMMARY for summary in summaries]

    if len(summaries) < expected:
        summaries.extend([PLACEHOLDER_SUMMARY] * (expected - len(summaries)))
    return summaries[:expected]


def truncation_fallback(source: SourceDocument, target_chars: int) -> str:
    return web_utils.truncate(source.cleaned_content or source.content, target_chars)


class SourceCompressor:
    """Summarizes sources in batches, one LLM call per batch.

    ``call_llm(stage, prompt, content_chars=...)`` is the pipeline's LLM wrapper.
    A failed batch degrades to truncated raw content so the run never stalls.
    """

    def __init__(
        self,
        call_llm: StageCall,
        *,
        project_name: str,
        batch_delay_ms: int | None = None,
    ):
        self.call_llm = call_llm
        self.project_name = project_name
        self.batch_delay_ms = (
            settings.summarization_batch_delay_ms if batch_delay_ms is None else batch_delay_ms
        )

    def _batch_prompt(self, batch: list[SourceDocument], mode: CompressionMode, target: int) -> str:
        blocks = []
        for index, source in enumerate(batch, start=1):
            body = web_utils.truncate(source.cleaned_content or source.content, BATCH_INPUT_CHARS)
            blocks.append(f"SOURCE {index}: {source.title}\nURL: {source.url}\n{body}")
        return render_prompt(
            f"compression.{mode}",
            project_name=self.project_name,
            count=len(batch),
            target_chars=target,
            sources="\n\n".join(blocks),
        )

    async def _summarize_batch(
        self, batch: list[SourceDocument], mode: CompressionMode, target: int
    ) -> list[str]:
        prompt = self._batch_prompt(batch, mode, target)
        text = await self.call_llm(f"compression_{mode}", prompt, content_chars=len(prompt))
        return split_summaries(text, len(batch))

    async def compress(
        self, sources: list[SourceDocument], mode: CompressionMode
    ) -> list[SourceDocument]:
        """Set ``extracted_content`` on every source and return them."""
        if not sources:
            return sources
        profile = _profile(mode)
        batch_size = max(profile.batch_size, 1)
        batches = [sources[i : i + batch_size] for i in range(0, len(sources), batch_size)]

        for index, batch in enumerate(batches):
            if index > 0 and self.batch_delay_ms > 0:
                await asyncio.sleep(self.batch_delay_ms / 1000)
            try:
                summaries = await self._summarize_batch(batch, mode, profile.target_chars)
            except Exception as exc:
                logger.warning(
                    f"{mode} compression batch {index + 1}/{len(batches)} failed, "
                    f"truncating instead: {exc}"
                )
                summaries = [truncation_fallback(source, profile.target_chars) for source in batch]

            for source, summary in zip(batch, summaries):
                source.extracted_content = summary

        logger.info(f"Compressed {len(sources)} sources in {len(batches)} {mode} batch(es)")
        return sources
