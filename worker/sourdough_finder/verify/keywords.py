"""Literal keyword matching over evidence text."""

from typing import Dict, FrozenSet, Iterable, Set

from sourdough_finder.core.config import DEFAULT_KEYWORDS


def keyword_variants(keyword: str) -> Set[str]:
    """Return the spellings that count as ``keyword`` (itself plus a hyphenated form)."""
    canonical = " ".join(keyword.lower().split())
    variants = {canonical}
    if " " in canonical:
        variants.add(canonical.replace(" ", "-"))
    return variants


def find_keyword_tokens(text: str, vocabulary: Iterable[str] = DEFAULT_KEYWORDS) -> Dict[str, str]:
    """Map each literal token found in ``text`` to the canonical keyword it proves."""
    if not text:
        return {}

    haystack = text.lower()
    found: Dict[str, str] = {}
    for keyword in vocabulary:
        canonical = " ".join(keyword.lower().split())
        if not canonical:
            continue
        for token in keyword_variants(canonical):
            if token in haystack:
                found[token] = canonical
    return found


def match_keywords(text: str, vocabulary: Iterable[str] = DEFAULT_KEYWORDS) -> FrozenSet[str]:
    return frozenset(find_keyword_tokens(text, vocabulary).values())
