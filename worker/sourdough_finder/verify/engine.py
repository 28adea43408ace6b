"""Run every evidence fetcher for a candidate and decide whether it is verified."""

import logging
from typing import Iterable, List, Optional, Sequence

from sourdough_finder.core.config import DEFAULT_KEYWORDS, Settings
from sourdough_finder.core.rate_limit import LimiterRegistry
from sourdough_finder.models import Candidate, EvidenceResult, VerificationDecision
from sourdough_finder.verify.evidence import combine
from sourdough_finder.verify.fetchers import BusinessProfileFetcher, EvidenceFetcher
from sourdough_finder.verify.social import SocialBioFetcher
from sourdough_finder.verify.website import WebsiteFetcher

logger = logging.getLogger(__name__)


class VerificationEngine:
    def __init__(self, fetchers: Sequence[EvidenceFetcher], keywords: Iterable[str] = DEFAULT_KEYWORDS) -> None:
        self.fetchers = list(fetchers)
        self.keywords = tuple(keywords)

    @classmethod
    def from_settings(cls, settings: Settings, limiters: Optional[LimiterRegistry] = None) -> "VerificationEngine":
        strategy = settings.strategy
        fetchers: List[EvidenceFetcher] = [
            BusinessProfileFetcher(),
            WebsiteFetcher(
                timeout=settings.website_timeout,
                limiters=limiters,
                use_js_renderer=settings.enrich_use_js_renderer,
            ),
            SocialBioFetcher(
                settings.serpapi_api_key,
                networks=strategy.social_networks,
                category=strategy.category,
                limiter=limiters.for_endpoint("serpapi") if limiters is not None else None,
            ),
        ]
        return cls(fetchers, strategy.keywords)

    def _run_fetcher(self, fetcher: EvidenceFetcher, candidate: Candidate) -> EvidenceResult:
        try:
            return fetcher.fetch(candidate, self.keywords)
        except Exception as exc:  # noqa: BLE001
            logger.exception("%s fetcher crashed for %s", fetcher.source.value, candidate.name)
            return EvidenceResult.failed(fetcher.source, f"unexpected error: {exc}")

    def verify(self, candidate: Candidate) -> VerificationDecision:
        results = [self._run_fetcher(fetcher, candidate) for fetcher in self.fetchers]
        decision = combine(results)
        if decision.verified:
            logger.info(
                "VERIFIED %s via %s: %s",
                candidate.name,
                ", ".join(sorted(source.value for source in decision.sources)),
                ", ".join(sorted(decision.keywords)),
            )
        else:
            logger.info("No keyword evidence for %s", candidate.name)
        return decision

    def close(self) -> None:
        for fetcher in self.fetchers:
            close = getattr(fetcher, "close", None)
            if close is not None:
                close()
