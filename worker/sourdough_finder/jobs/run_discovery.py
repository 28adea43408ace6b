"""CLI job that discovers restaurants for a city and verifies their sourdough claims."""

import argparse
import json
import logging
import signal
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Iterator, List, Optional, Tuple

from sourdough_finder.core.config import DiscoveryStrategy, Settings, get_settings
from sourdough_finder.core.db import ensure_schema, upsert_restaurant
from sourdough_finder.core.errors import ConfigError, UpstreamAuthError, UpstreamQuotaError
from sourdough_finder.core.rate_limit import LimiterRegistry
from sourdough_finder.discovery.planner import QueryPlanner
from sourdough_finder.models import (
    Candidate,
    PersistedRecord,
    PipelineState,
    RunSummary,
    VerificationDecision,
)
from sourdough_finder.verify.engine import VerificationEngine

logger = logging.getLogger(__name__)

Store = Callable[[PersistedRecord], object]
Verified = Tuple[str, Candidate, VerificationDecision]


class DiscoveryPipeline:
    """Plan, verify and persist one city at a time.

    Only ``UpstreamAuthError`` and ``UpstreamQuotaError`` escape ``run``; every
    other failure is recorded on the returned ``RunSummary``.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        planner: Optional[QueryPlanner] = None,
        engine: Optional[VerificationEngine] = None,
        store: Optional[Store] = upsert_restaurant,
        cancel_event: Optional[threading.Event] = None,
        limiters: Optional[LimiterRegistry] = None,
    ) -> None:
        if not settings.outscraper_api_key and planner is None:
            raise ConfigError("OUTSCRAPER_API_KEY is required to run discovery")

        self.settings = settings
        self.cancel_event = cancel_event or threading.Event()
        self.limiters = limiters or LimiterRegistry(
            (settings.spacing_min, settings.spacing_max),
            cancel_event=self.cancel_event,
        )
        self.planner = planner or QueryPlanner(
            settings,
            limiter=self.limiters.for_endpoint("outscraper"),
            cancel_event=self.cancel_event,
        )
        self.engine = engine or VerificationEngine.from_settings(settings, self.limiters)
        self.store = store
        self.state = PipelineState.IDLE

    def cancel(self) -> None:
        logger.warning("Cancellation requested; finishing with the work completed so far")
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def _transition(self, summary: RunSummary, state: PipelineState) -> None:
        logger.debug("Pipeline %s -> %s", self.state.value, state.value)
        self.state = state
        summary.pipeline_state = state

    def run(self, city: str, state: str, strategy: Optional[DiscoveryStrategy] = None) -> RunSummary:
        strategy = strategy or self.settings.strategy
        summary = RunSummary(city=city, state=state)
        logger.info("Starting discovery for %s, %s (%d query templates)", city, state, len(strategy.query_templates))

        try:
            self._transition(summary, PipelineState.PLANNING)
            plan = self.planner.build_candidate_set(city, state, strategy=strategy)
            summary.errors.extend(plan.errors)
            summary.requests_made = plan.requests_made
            summary.candidates_found = len(plan.candidates)
            if plan.cancelled or self.cancelled:
                summary.cancelled = True
                return summary
            if not plan.candidates:
                logger.warning("No candidates found for %s, %s", city, state)
                return summary

            self._transition(summary, PipelineState.VERIFYING)
            verified = self._verify_all(list(plan.candidates.items()), summary)
            summary.cancelled = self.cancelled

            if self.store is None:
                logger.info("Persistence disabled; skipping %d decisions", len(verified))
                return summary

            self._transition(summary, PipelineState.PERSISTING)
            self._persist(verified, strategy, summary)
            return summary
        finally:
            self._transition(summary, PipelineState.DONE)
            logger.info(
                "Discovery for %s, %s done: %d candidates, %d verified, %d persisted, %d errors%s",
                city,
                state,
                summary.candidates_found,
                summary.verified_count,
                summary.persisted_count,
                len(summary.errors),
                " (cancelled)" if summary.cancelled else "",
            )

    def _verify_one(self, item: Tuple[str, Candidate]) -> Optional[Verified]:
        key, candidate = item
        if self.cancelled:
            return None
        logger.info("Verifying %s", candidate.name)
        return key, candidate, self.engine.verify(candidate)

    def _decisions(self, items: List[Tuple[str, Candidate]]) -> Iterator[Optional[Verified]]:
        workers = max(1, min(self.settings.concurrency, 3))
        if workers == 1:
            for item in items:
                yield self._verify_one(item)
            return
        with ThreadPoolExecutor(max_workers=workers) as executor:
            # map() yields in submission order, so results follow merge order
            yield from executor.map(self._verify_one, items)

    def _verify_all(self, items: List[Tuple[str, Candidate]], summary: RunSummary) -> List[Verified]:
        completed: List[Verified] = []
        for outcome in self._decisions(items):
            if outcome is None:
                continue

            key, candidate, decision = outcome
            completed.append(outcome)
            for result in decision.evidence:
                if result.attempted and not result.fetched_ok:
                    summary.errors.append(f"{candidate.name}: {result.source.value}: {result.failure_reason}")
            if decision.verified:
                summary.verified_count += 1
                for source in decision.sources:
                    summary.per_source_counts[source.value] = summary.per_source_counts.get(source.value, 0) + 1
        return completed

    def _persist(self, verified: List[Verified], strategy: DiscoveryStrategy, summary: RunSummary) -> None:
        checked_at = datetime.now(timezone.utc)
        for key, candidate, decision in verified:
            if not decision.verified and not strategy.persist_unverified:
                continue
            record = PersistedRecord.from_verification(key, candidate, decision, checked_at)
            try:
                self.store(record)
            except Exception as exc:  # noqa: BLE001
                logger.error("Failed to upsert %s: %s", candidate.name, exc)
                summary.errors.append(f"{candidate.name}: persist: {exc}")
                continue
            summary.persisted_count += 1

    def close(self) -> None:
        self.engine.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Discover and verify sourdough restaurants for a city")
    parser.add_argument("--city", dest="city", required=True, help="City to search")
    parser.add_argument("--state", dest="state", required=True, help="State code, e.g. OR")
    parser.add_argument(
        "--persist-unverified",
        dest="persist_unverified",
        action="store_true",
        default=None,
        help="Also store candidates without sourdough evidence",
    )
    parser.add_argument(
        "--concurrency",
        dest="concurrency",
        type=int,
        default=get_settings().concurrency,
        help="Candidates verified in parallel (1-3)",
    )
    parser.add_argument("--no-persist", dest="persist", action="store_false", help="Do not write to the database")
    parser.add_argument("--init-db", dest="init_db", action="store_true", help="Create the restaurants table first")
    return parser


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    args = build_parser().parse_args()

    settings = get_settings()
    strategy = settings.strategy
    if args.persist_unverified is not None:
        strategy = replace(strategy, persist_unverified=args.persist_unverified)
    settings = replace(settings, concurrency=min(max(args.concurrency, 1), 3), strategy=strategy)

    try:
        if args.persist and args.init_db:
            ensure_schema()
        pipeline = DiscoveryPipeline(settings, store=upsert_restaurant if args.persist else None)
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        raise SystemExit(2) from exc

    for signum in (signal.SIGINT, signal.SIGTERM):
        signal.signal(signum, lambda *_: pipeline.cancel())

    try:
        summary = pipeline.run(args.city, args.state, strategy)
    except (UpstreamAuthError, UpstreamQuotaError) as exc:
        logger.error("Discovery aborted: %s", exc)
        raise SystemExit(2) from exc
    finally:
        pipeline.close()

    logger.info("Run summary: %s", json.dumps(summary.to_dict(), indent=2))


if __name__ == "__main__":
    main()
