"""Submit an asynchronous upstream job and poll its ticket until it finishes.

The places-search service answers a submission either with a finished payload
or with a request id that has to be polled. Processing time upstream is roughly
constant, so the wait between polls grows linearly and is capped rather than
doubling.
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, Optional

from sourdough_finder.core.errors import (
    PollTimeout,
    RunCancelled,
    UpstreamJobError,
    UpstreamTransientError,
)
from sourdough_finder.models import JobState, JobTicket

logger = logging.getLogger(__name__)

Payload = Dict[str, Any]


def _job_state(payload: Payload) -> Optional[JobState]:
    raw = str(payload.get("status") or "").strip().lower()
    for state in JobState:
        if state.value.lower() == raw:
            return state
    return None


def _error_message(payload: Payload) -> str:
    return str(payload.get("error") or payload.get("errorMessage") or payload.get("status") or "unknown error")


class BackoffPoller:
    """Bounded linear backoff around a ``submit`` / ``poll`` pair of callables.

    ``submit(request)`` and ``poll(ticket_id)`` return the decoded upstream JSON.
    They raise ``UpstreamTransientError`` for retryable failures; auth and quota
    errors are never caught here.
    """

    def __init__(
        self,
        submit: Callable[[Payload], Payload],
        poll: Callable[[str], Payload],
        *,
        max_attempts: int = 8,
        base_delay: float = 8.0,
        step_delay: float = 1.0,
        cap_delay: float = 12.0,
        sleep: Callable[[float], object] = time.sleep,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._submit = submit
        self._poll = poll
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.step_delay = step_delay
        self.cap_delay = cap_delay
        self._sleep = sleep
        self._cancel_event = cancel_event
        self._counter_lock = threading.Lock()
        self.request_count = 0

    def delay_for(self, attempt: int) -> float:
        return min(self.base_delay + attempt * self.step_delay, self.cap_delay)

    def _count_request(self) -> None:
        with self._counter_lock:
            self.request_count += 1

    def _check_cancelled(self) -> None:
        if self._cancel_event is not None and self._cancel_event.is_set():
            raise RunCancelled("run cancelled while waiting on upstream job")

    def submit_and_await(self, request: Payload) -> Any:
        """Return the job's ``data`` once it succeeds.

        Raises ``UpstreamJobError`` when the job ends in Error and ``PollTimeout``
        when it is still pending after ``max_attempts`` polls.
        """
        self._check_cancelled()
        self._count_request()
        payload = self._submit(request)

        state = _job_state(payload)
        if state is JobState.SUCCESS:
            return payload.get("data")
        if state is JobState.ERROR:
            raise UpstreamJobError(_error_message(payload))

        ticket_id = payload.get("id")
        if not ticket_id:
            raise UpstreamTransientError(f"submission returned no request id (status={payload.get('status')!r})")

        ticket = JobTicket(id=str(ticket_id), submitted_at=time.time())
        logger.info("Upstream job %s pending; polling up to %d times", ticket.id, self.max_attempts)
        return self._await(ticket)

    def _await(self, ticket: JobTicket) -> Any:
        last_error: Optional[Exception] = None

        while ticket.attempts < self.max_attempts:
            self._sleep(self.delay_for(ticket.attempts))
            self._check_cancelled()
            ticket.attempts += 1
            self._count_request()

            try:
                payload = self._poll(ticket.id)
            except UpstreamTransientError as exc:
                last_error = exc
                logger.warning("Poll %d/%d for %s failed: %s", ticket.attempts, self.max_attempts, ticket.id, exc)
                continue

            state = _job_state(payload)
            if state is JobState.SUCCESS:
                ticket.state = state
                logger.info("Upstream job %s succeeded after %d polls", ticket.id, ticket.attempts)
                return payload.get("data")
            if state is JobState.ERROR:
                ticket.state = state
                raise UpstreamJobError(f"job {ticket.id} failed upstream: {_error_message(payload)}")

            logger.debug("Upstream job %s still pending (poll %d/%d)", ticket.id, ticket.attempts, self.max_attempts)

        raise PollTimeout(ticket.id, ticket.attempts, last_error)
