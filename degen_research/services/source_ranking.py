"""Deduplication, quality scoring, re-rank parsing and tiering of sources."""
from __future__ import annotations

import json
import re
from typing import Any

from degen_research.config import settings
from degen_research.models.research import SourceDocument, Tier, TieredSources
from degen_research.tools import web_utils

TITLE_KEYWORDS = ("analysis", "review", "report", "research")
BODY_KEYWORDS = ("tokenomics", "whitepaper", "audit", "roadmap")

REPUTABLE_DOMAINS = {
    "coindesk.com",
    "cointelegraph.com",
    "coingecko.com",
    "coinmarketcap.com",
    "messari.io",
    "theblock.co",
    "decrypt.co",
    "defillama.com",
    "etherscan.io",
    "bscscan.com",
    "solscan.io",
    "dune.com",
    "github.com",
    "gitbook.io",
    "binance.com",
    "blockworks.co",
    "bankless.com",
    "cryptoslate.com",
}

LENGTH_WEIGHT_CAP = 40.0
TITLE_BONUS = 15.0
DOMAIN_BONUS = 25.0
BODY_KEYWORD_BONUS = 5.0
MAX_SCORE = 100.0

_UNTITLED = {"", "no title", "untitled"}


def title_key(title: str) -> str | None:
    """First five lower-cased title words, or ``None`` when the title is unusable."""
    words = re.findall(r"[\w']+", (title or "").lower())
    if not words or " ".join(words) in _UNTITLED:
        return None
    return " ".join(words[:5])


def deduplicate_sources(sources: list[SourceDocument]) -> list[SourceDocument]:
    """Single pass dedup on normalized URL, then on title key.

    On a collision the document with the longer ``content`` takes the slot of
    the first occurrence, so output order follows first appearance.
    """
    kept: list[SourceDocument] = []
    by_url: dict[str, int] = {}
    by_title: dict[str, int] = {}

    for source in sources:
        url_key = web_utils.normalize_url(source.url)
        if not url_key:
            continue
        tkey = title_key(source.title)

        slot = by_url.get(url_key)
        if slot is None and tkey is not None:
            slot = by_title.get(tkey)

        if slot is None:
            slot = len(kept)
            kept.append(source)
        elif len(source.content or "") > len(kept[slot].content or ""):
            kept[slot] = source

        by_url[url_key] = slot
        if tkey is not None:
            by_title.setdefault(tkey, slot)

    return kept


def _is_reputable(url: str) -> bool:
    domain = web_utils.extract_domain(url)
    if domain.startswith("www."):
        domain = domain[4:]
    if domain.startswith("docs.") or domain.endswith(".gitbook.io"):
        return True
    return any(domain == known or domain.endswith(f".{known}") for known in REPUTABLE_DOMAINS)


def score_source(source: SourceDocument) -> float:
    content = source.content or ""
    score = min(len(content) / 100.0, LENGTH_WEIGHT_CAP)

    title = (source.title or "").lower()
    if any(keyword in title for keyword in TITLE_KEYWORDS):
        score += TITLE_BONUS

    if _is_reputable(source.url):
        score += DOMAIN_BONUS

    body = content.lower()
    score += BODY_KEYWORD_BONUS * sum(1 for keyword in BODY_KEYWORDS if keyword in body)

    return min(score, MAX_SCORE)


def score_sources(sources: list[SourceDocument]) -> list[SourceDocument]:
    """Set ``quality_score``/``cleaned_content`` and sort best first (stable)."""
    for source in sources:
        source.quality_score = score_source(source)
        source.cleaned_content = web_utils.clean_content(source.content, max_length=0)
    return sorted(sources, key=lambda s: s.quality_score, reverse=True)


def build_ranking_preview(sources: list[SourceDocument], limit: int | None = None) -> str:
    limit = settings.rerank_preview_limit if limit is None else limit
    lines: list[str] = []
    for index, source in enumerate(sources[:limit], start=1):
        snippet = web_utils.truncate(source.cleaned_content or source.content, 200)
        lines.append(
            f"{index}. {source.title} | {web_utils.extract_domain(source.url)} | {snippet}"
        )
    return "\n".join(lines)


def _strip_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        parts = text.split("```")
        if len(parts) >= 2:
            text = parts[1]
            if text.lower().startswith("json"):
                text = text[4:]
    return text.strip()


def _structured_indices(text: str) -> list[Any] | None:
    start = text.find("[")
    end = text.rfind("]")
    if start < 0 or end <= start:
        return None
    try:
        parsed = json.loads(text[start : end + 1])
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, list) else None


def parse_ranking(text: str, count: int) -> list[int] | None:
    """Turn an LLM ranking reply into 0-based positions.

    Tries a JSON array first, then falls back to every integer in the text.
    Numbers are the 1-based preview numbers. Returns ``None`` when nothing
    usable was found.
    """
    if not text or count <= 0:
        return None
    body = _strip_fences(text)
    positions = _to_positions(_structured_indices(body) or [], count)
    if not positions:
        positions = _to_positions(re.findall(r"\d+", body), count)
    return positions or None


def _to_positions(raw: list[Any], count: int) -> list[int]:
    positions: list[int] = []
    seen: set[int] = set()
    for item in raw:
        if isinstance(item, bool):
            continue
        try:
            number = int(item)
        except (TypeError, ValueError):
            continue
        position = number - 1
        if position < 0 or position >= count or position in seen:
            continue
        seen.add(position)
        positions.append(position)
    return positions


def apply_ranking(
    sources: list[SourceDocument],
    positions: list[int] | None,
    *,
    limit: int | None = None,
) -> list[SourceDocument]:
    """Reorder by ``positions``; unmentioned sources follow in original order."""
    limit = settings.rerank_max_sources if limit is None else limit
    if not positions:
        return list(sources)[:limit]
    ordered = [sources[p] for p in positions if 0 <= p < len(sources)]
    mentioned = set(positions)
    ordered.extend(source for i, source in enumerate(sources) if i not in mentioned)
    return ordered[:limit]


def tier_sources(
    sources: list[SourceDocument],
    *,
    premium_size: int | None = None,
    standard_size: int | None = None,
    max_total: int | None = None,
    premium_max_chars: int | None = None,
) -> TieredSources:
    """Partition ranked sources into premium / standard / compressed tiers."""
    premium_size = settings.premium_tier_size if premium_size is None else premium_size
    standard_size = settings.standard_tier_size if standard_size is None else standard_size
    max_total = settings.max_tiered_sources if max_total is None else max_total
    premium_max_chars = (
        settings.premium_max_chars if premium_max_chars is None else premium_max_chars
    )

    count = min(len(sources), max_total)
    premium_count = min(premium_size, count)
    standard_count = min(standard_size, count - premium_count)
    compressed_count = count - premium_count - standard_count

    tiered = TieredSources(
        premium=list(sources[:premium_count]),
        standard=list(sources[premium_count : premium_count + standard_count]),
        compressed=list(
            sources[premium_count + standard_count : premium_count + standard_count + compressed_count]
        ),
    )

    for source in tiered.premium:
        source.tier = Tier.PREMIUM
        base = source.cleaned_content or web_utils.clean_content(source.content, max_length=0)
        source.cleaned_content = web_utils.clean_content(base, max_length=premium_max_chars)
    for source in tiered.standard:
        source.tier = Tier.STANDARD
    for source in tiered.compressed:
        source.tier = Tier.COMPRESSED
    return tiered
