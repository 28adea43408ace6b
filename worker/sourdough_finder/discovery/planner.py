"""Query planning: run every search variant for a locale and merge the results."""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from sourdough_finder.core.config import DiscoveryStrategy, QueryTemplate, Settings
from sourdough_finder.core.errors import RunCancelled, UpstreamTransientError
from sourdough_finder.core.poller import BackoffPoller
from sourdough_finder.core.rate_limit import SpacingLimiter
from sourdough_finder.etl.dedup import CandidateSet
from sourdough_finder.etl.relevance import is_relevant
from sourdough_finder.etl.transform import to_candidate
from sourdough_finder.vendors import outscraper

logger = logging.getLogger(__name__)


@dataclass
class PlanResult:
    candidates: CandidateSet = field(default_factory=CandidateSet)
    queries_run: int = 0
    raw_results: int = 0
    rejected: int = 0
    requests_made: int = 0
    errors: List[str] = field(default_factory=list)
    cancelled: bool = False


class QueryPlanner:
    """Submit each rendered query template and fold the hits into one ``CandidateSet``."""

    def __init__(
        self,
        settings: Settings,
        *,
        limiter: SpacingLimiter,
        poller: Optional[BackoffPoller] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self.settings = settings
        self.limiter = limiter
        self.cancel_event = cancel_event
        if poller is None:
            poller = BackoffPoller(
                self._submit,
                self._poll,
                max_attempts=settings.poll_max_attempts,
                base_delay=settings.poll_base_delay,
                step_delay=settings.poll_step_delay,
                cap_delay=settings.poll_cap_delay,
                # waiting on the event wakes the poll loop as soon as the run is cancelled
                sleep=cancel_event.wait if cancel_event is not None else time.sleep,
                cancel_event=cancel_event,
            )
        self.poller = poller

    def _submit(self, request: Dict[str, Any]) -> Dict[str, Any]:
        self.limiter.acquire()
        return outscraper.submit_search(
            request["query"],
            self.settings.outscraper_api_key,
            limit=request["limit"],
            language=self.settings.search_language,
            region=self.settings.search_region,
        )

    def _poll(self, ticket_id: str) -> Dict[str, Any]:
        return outscraper.get_request(ticket_id, self.settings.outscraper_api_key)

    def build_candidate_set(
        self,
        city: str,
        state: str,
        templates: Optional[Sequence[QueryTemplate]] = None,
        strategy: Optional[DiscoveryStrategy] = None,
    ) -> PlanResult:
        strategy = strategy or self.settings.strategy
        templates = templates if templates is not None else strategy.query_templates
        result = PlanResult()
        requests_before = self.poller.request_count

        for index, template in enumerate(templates, start=1):
            if self.cancel_event is not None and self.cancel_event.is_set():
                result.cancelled = True
                break

            query = template.render(city=city, state=state, product=strategy.product, category=strategy.category)
            logger.info("[%d/%d] Searching %r (limit=%d)", index, len(templates), query, template.limit)

            try:
                data = self.poller.submit_and_await({"query": query, "limit": template.limit})
            except RunCancelled:
                result.cancelled = True
                break
            except UpstreamTransientError as exc:
                result.queries_run += 1
                logger.warning("Query %r contributed nothing: %s", query, exc)
                result.errors.append(f"query {query!r}: {exc}")
                continue

            result.queries_run += 1
            self._merge(result, outscraper.flatten_data(data), city, state, strategy)

        result.requests_made = self.poller.request_count - requests_before
        logger.info(
            "Planned %d unique candidates from %d raw results (%d rejected) for %s, %s",
            len(result.candidates),
            result.raw_results,
            result.rejected,
            city,
            state,
        )
        return result

    def _merge(self, result: PlanResult, records: List[Dict[str, Any]], city: str, state: str, strategy: DiscoveryStrategy) -> None:
        for record in records:
            result.raw_results += 1
            candidate = to_candidate(record, city, state)
            if candidate is None:
                result.rejected += 1
                continue
            if not is_relevant(
                candidate,
                category=strategy.category,
                inclusion_keywords=strategy.inclusion_keywords,
                exclusion_keywords=strategy.exclusion_keywords,
            ):
                logger.debug("Rejected %s as not relevant", candidate.name)
                result.rejected += 1
                continue
            result.candidates.add(candidate)
