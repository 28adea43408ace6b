"""Evidence fetcher contract and the business-profile fetcher."""

from typing import Iterable, Protocol

from sourdough_finder.models import Candidate, EvidenceResult, SourceKind
from sourdough_finder.verify.keywords import find_keyword_tokens


class EvidenceFetcher(Protocol):
    source: SourceKind

    def fetch(self, candidate: Candidate, vocabulary: Iterable[str]) -> EvidenceResult:
        ...


class BusinessProfileFetcher:
    """Scan the description and categories that came back with the search result."""

    source = SourceKind.BUSINESS_PROFILE

    def fetch(self, candidate: Candidate, vocabulary: Iterable[str]) -> EvidenceResult:
        parts = [candidate.raw_description or "", " ".join(sorted(candidate.categories))]
        text = " ".join(part for part in parts if part).lower()
        if not text:
            return EvidenceResult.failed(self.source, "no business description", attempted=False)

        tokens = find_keyword_tokens(text, vocabulary)
        return EvidenceResult(
            source=self.source,
            matched_keywords=frozenset(tokens.values()),
            matched_tokens=frozenset(tokens),
        )
