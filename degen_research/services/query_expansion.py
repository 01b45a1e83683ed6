from __future__ import annotations

KEYWORD_SUFFIXES = (
    "crypto token analysis",
    "blockchain project review",
    "tokenomics breakdown",
    "team funding investors",
    "price prediction analysis",
    "community social media",
    "smart contract audit",
    "roadmap development",
)


def _variants(term: str) -> list[str]:
    variants: list[str] = []
    if '"' not in term and "site:" not in term.lower():
        variants.append(f'"{term}"')
    variants.extend(f"{term} {suffix}" for suffix in KEYWORD_SUFFIXES)
    return variants


def expand_queries(base_terms: list[str], variation_count: int = 3) -> list[str]:
    """Return the base terms followed by up to ``variation_count`` variants of each.

    Base terms are kept verbatim and come first so that truncating the list to a
    stage budget always keeps the plain queries.
    """
    count = max(int(variation_count), 0)
    queries = list(base_terms)
    for term in base_terms:
        cleaned = " ".join(term.split())
        if not cleaned:
            continue
        queries.extend(_variants(cleaned)[:count])
    return queries
