from __future__ import annotations

BASE_TOKENS = {
    "rerank": 600,
    "compression_standard": 1500,
    "compression_compressed": 1200,
    "extraction": 800,
    "synthesis": 6000,
    "speculation": 3000,
    "assembly": 8000,
    "validation": 600,
}

MAX_TOKENS = {
    "rerank": 1000,
    "compression_standard": 3000,
    "compression_compressed": 2400,
    "extraction": 1500,
    "synthesis": 12000,
    "speculation": 6000,
    "assembly": 16000,
    "validation": 1200,
}

DEFAULT_BASE_TOKENS = 1000
DEFAULT_MAX_TOKENS = 4000
CHARS_PER_SCALE_STEP = 20000
MAX_SCALE = 2.0


def budget_for(stage: str, content_chars: int = 0) -> int:
    """Output-token allowance for ``stage`` given the size of its input.

    The base allowance grows with input length up to ``MAX_SCALE`` times and
    is then clamped to the stage ceiling.
    """
    base = BASE_TOKENS.get(stage, DEFAULT_BASE_TOKENS)
    ceiling = MAX_TOKENS.get(stage, DEFAULT_MAX_TOKENS)
    scale = min(1.0 + max(content_chars, 0) / CHARS_PER_SCALE_STEP, MAX_SCALE)
    return min(int(base * scale), ceiling)
