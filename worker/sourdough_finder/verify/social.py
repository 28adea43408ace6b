"""Social bio evidence: guess profile handles and scan their public bio text."""

import logging
import re
from typing import Iterable, List, Optional, Sequence

from sourdough_finder.core.config import DEFAULT_SOCIAL_NETWORKS
from sourdough_finder.core.errors import FetchError, RunCancelled
from sourdough_finder.core.rate_limit import SpacingLimiter
from sourdough_finder.models import Candidate, EvidenceResult, SourceKind
from sourdough_finder.vendors import serp_search
from sourdough_finder.verify.keywords import find_keyword_tokens

logger = logging.getLogger(__name__)

MAX_HANDLES_PER_NETWORK = 3
_NON_HANDLE = re.compile(r"[^a-z0-9\s]")


def _city_suffix(city: str) -> str:
    words = _NON_HANDLE.sub("", (city or "").lower()).split()
    if len(words) > 1:
        return "".join(word[0] for word in words)
    return words[0] if words else ""


def generate_handles(name: str, *, category: str = "", city: str = "") -> List[str]:
    """Best-effort username guesses for a business name, most likely first."""
    words = _NON_HANDLE.sub("", (name or "").lower()).split()
    if not words:
        return []

    clean = "".join(words)
    underscored = "_".join(words)
    guesses = [clean, underscored]
    category_slug = "".join(_NON_HANDLE.sub("", (category or "").lower()).split())
    if category_slug:
        guesses.append(f"{clean}{category_slug}" if category_slug not in clean else clean.replace(category_slug, ""))
    suffix = _city_suffix(city)
    if suffix:
        guesses.append(f"{clean}{suffix}")

    handles: List[str] = []
    for guess in guesses:
        if len(guess) > 2 and guess not in handles:
            handles.append(guess)
    return handles


class SocialBioFetcher:
    """Look up guessed handles on each network through SerpAPI ``site:`` searches."""

    source = SourceKind.SOCIAL_BIO

    def __init__(
        self,
        api_key: str,
        *,
        networks: Sequence[str] = DEFAULT_SOCIAL_NETWORKS,
        category: str = "",
        limiter: Optional[SpacingLimiter] = None,
        max_handles: int = MAX_HANDLES_PER_NETWORK,
    ) -> None:
        self.api_key = api_key
        self.networks = tuple(networks)
        self.category = category
        self.limiter = limiter
        self.max_handles = max_handles

    def _bio_text(self, network: str, handle: str) -> Optional[str]:
        if self.limiter is not None:
            self.limiter.acquire()
        data = serp_search.search(f"site:{network}/{handle}", self.api_key)
        return serp_search.first_profile_snippet(data, network, handle)

    def fetch(self, candidate: Candidate, vocabulary: Iterable[str]) -> EvidenceResult:
        if not self.api_key:
            return EvidenceResult.failed(self.source, "social search not configured", attempted=False)

        handles = generate_handles(candidate.name, category=self.category, city=candidate.city)[: self.max_handles]
        if not handles:
            return EvidenceResult.failed(self.source, "no resolvable handle", attempted=False)

        vocabulary = tuple(vocabulary)
        tokens = {}
        profiles: List[str] = []
        errors: List[str] = []
        answered = 0
        cancelled = False

        for network in self.networks:
            if cancelled:
                break
            for handle in handles:
                try:
                    bio = self._bio_text(network, handle)
                except RunCancelled:
                    cancelled = True
                    break
                except FetchError as exc:
                    errors.append(f"{network}/{handle}: {exc}")
                    continue
                answered += 1
                if not bio:
                    continue
                found = find_keyword_tokens(bio, vocabulary)
                if found:
                    tokens.update(found)
                    profiles.append(f"{network}/{handle}")
                    logger.info("Social bio %s/%s for %s: %s", network, handle, candidate.name, ", ".join(sorted(set(found.values()))))
                    break

        if cancelled and not tokens:
            return EvidenceResult.failed(self.source, "run cancelled", attempted=False)
        if errors and not answered:
            return EvidenceResult.failed(self.source, "; ".join(errors[:3]))

        return EvidenceResult(
            source=self.source,
            matched_keywords=frozenset(tokens.values()),
            matched_tokens=frozenset(tokens),
            fetched_ok=True,
            detail=", ".join(profiles) or None,
        )
