"""Combine per-source evidence into a verification decision."""

from typing import Iterable

from sourdough_finder.models import EvidenceResult, VerificationDecision


def combine(results: Iterable[EvidenceResult]) -> VerificationDecision:
    """Union keywords across sources; a candidate is verified when any keyword matched.

    Only set unions are involved, so the decision does not depend on the order
    of ``results`` and adding a result can never remove a keyword or source.
    """
    evidence = tuple(results)
    keywords = frozenset().union(*(result.matched_keywords for result in evidence))
    sources = frozenset(result.source for result in evidence if result.matched_keywords)
    return VerificationDecision(
        verified=bool(keywords),
        keywords=keywords,
        sources=sources,
        evidence=tuple(sorted(evidence, key=lambda result: result.source.value)),
    )
