"""Error taxonomy shared by the discovery and verification pipeline."""

from typing import Optional


class PipelineError(RuntimeError):
    """Base class for every error raised by the pipeline."""


class ConfigError(PipelineError):
    """Raised when mandatory configuration is missing."""


class UpstreamAuthError(PipelineError):
    """The places-search service rejected our credentials. Fatal to the run."""


class UpstreamQuotaError(PipelineError):
    """Payment or rate-limit quota is exhausted. Fatal to the run."""

    def __init__(self, message: str, hint: str = "Top up the Outscraper balance or wait for the rate limit to reset."):
        super().__init__(message)
        self.hint = hint

    def __str__(self) -> str:
        return f"{self.args[0]} ({self.hint})"


class UpstreamTransientError(PipelineError):
    """A single submission or poll failed; the caller degrades to no contribution."""


class UpstreamJobError(UpstreamTransientError):
    """The upstream job reached its Error state."""


class PollTimeout(UpstreamTransientError):
    """A job never reached a terminal state within the allowed attempts."""

    def __init__(self, ticket_id: str, attempts: int, last_error: Optional[Exception] = None):
        message = f"job {ticket_id} not finished after {attempts} polls"
        if last_error is not None:
            message = f"{message}: {last_error}"
        super().__init__(message)
        self.ticket_id = ticket_id
        self.attempts = attempts
        self.last_error = last_error


class FetchError(PipelineError):
    """A website or social profile could not be fetched."""

    def __init__(self, message: str, *, url: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class RunCancelled(PipelineError):
    """Raised inside wait loops once the run's cancellation event is set."""
