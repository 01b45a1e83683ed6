from __future__ import annotations

import re
from urllib.parse import urlparse


def is_valid_url(url: str) -> bool:
    """Basic URL validation."""
    try:
        result = urlparse(url)
        return all([result.scheme in ("http", "https"), result.netloc])
    except ValueError:
        return False


def normalize_url(url: str) -> str:
    """Identity key for a source: trimmed, lower-cased, no trailing slash."""
    return (url or "").strip().lower().rstrip("/")


def clean_content(text: str, max_length: int = 8000) -> str:
    """Clean scraped content: collapse whitespace, trim to max length."""
    text = re.sub(r"\s+", " ", text or "").strip()
    if max_length > 0 and len(text) > max_length:
        text = text[:max_length] + "..."
    return text


def truncate(text: str, max_length: int) -> str:
    """Deterministic cut at a word boundary when one is close enough."""
    text = " ".join((text or "").split())
    if len(text) <= max_length:
        return text
    cut = text[:max_length]
    space = cut.rfind(" ")
    if space > max_length * 0.6:
        cut = cut[:space]
    return cut.rstrip() + "..."


def extract_domain(url: str) -> str:
    """Extract domain from URL for display."""
    try:
        return urlparse(url).netloc.lower()
    except ValueError:
        return url


def strip_scheme(url: str) -> str:
    """``https://www.acme.io/`` -> ``www.acme.io``; used for ``site:`` queries."""
    return re.sub(r"^https?://", "", (url or "").strip(), flags=re.IGNORECASE).rstrip("/")
