"""Core data models shared by the discovery and verification pipeline."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, FrozenSet, List, Optional, Set, Tuple


@dataclass(slots=True)
class Candidate:
    """Normalized snapshot of a business returned by the places-search service."""

    name: str
    address: str = ""
    city: str = ""
    state: str = ""
    zip_code: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    rating: Optional[float] = None
    review_count: Optional[int] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    raw_description: Optional[str] = None
    categories: Set[str] = field(default_factory=set)

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None


class SourceKind(str, enum.Enum):
    BUSINESS_PROFILE = "business_profile"
    WEBSITE = "website"
    SOCIAL_BIO = "social_bio"


@dataclass(frozen=True)
class EvidenceResult:
    """Outcome of scanning one evidence source for one candidate.

    ``attempted`` is False when there was nothing to fetch (no website, no
    resolvable handle); such results never count as run errors.
    """

    source: SourceKind
    matched_keywords: FrozenSet[str] = frozenset()
    fetched_ok: bool = True
    failure_reason: Optional[str] = None
    matched_tokens: FrozenSet[str] = frozenset()
    attempted: bool = True
    detail: Optional[str] = None

    @classmethod
    def failed(cls, source: SourceKind, reason: str, *, attempted: bool = True, detail: Optional[str] = None) -> "EvidenceResult":
        return cls(source=source, fetched_ok=False, failure_reason=reason, attempted=attempted, detail=detail)


@dataclass(frozen=True)
class VerificationDecision:
    verified: bool
    keywords: FrozenSet[str]
    sources: FrozenSet[SourceKind]
    evidence: Tuple[EvidenceResult, ...] = field(default=(), compare=False)


class JobState(str, enum.Enum):
    PENDING = "Pending"
    SUCCESS = "Success"
    ERROR = "Error"


@dataclass(slots=True)
class JobTicket:
    id: str
    submitted_at: float
    attempts: int = 0
    state: JobState = JobState.PENDING


@dataclass(slots=True)
class PersistedRecord:
    """Row shape written to the ``restaurants`` table."""

    identity_key: str
    name: str
    address: str
    city: str
    state: str
    latitude: Optional[float]
    longitude: Optional[float]
    last_checked_at: datetime
    zip_code: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    rating: Optional[float] = None
    review_count: Optional[int] = None
    description: Optional[str] = None
    categories: List[str] = field(default_factory=list)
    sourdough_verified: bool = False
    sourdough_keywords: List[str] = field(default_factory=list)
    verification_sources: List[str] = field(default_factory=list)

    @classmethod
    def from_verification(
        cls,
        identity_key: str,
        candidate: Candidate,
        decision: VerificationDecision,
        checked_at: datetime,
    ) -> "PersistedRecord":
        return cls(
            identity_key=identity_key,
            name=candidate.name,
            address=candidate.address,
            city=candidate.city,
            state=candidate.state,
            latitude=candidate.latitude,
            longitude=candidate.longitude,
            last_checked_at=checked_at,
            zip_code=candidate.zip_code,
            phone=candidate.phone,
            website=candidate.website,
            rating=candidate.rating,
            review_count=candidate.review_count,
            description=candidate.raw_description,
            categories=sorted(candidate.categories),
            sourdough_verified=decision.verified,
            sourdough_keywords=sorted(decision.keywords),
            verification_sources=sorted(source.value for source in decision.sources),
        )


class PipelineState(str, enum.Enum):
    IDLE = "idle"
    PLANNING = "planning"
    VERIFYING = "verifying"
    PERSISTING = "persisting"
    DONE = "done"


@dataclass
class RunSummary:
    city: str
    state: str
    candidates_found: int = 0
    verified_count: int = 0
    persisted_count: int = 0
    per_source_counts: Dict[str, int] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    requests_made: int = 0
    pipeline_state: PipelineState = PipelineState.IDLE
    cancelled: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "city": self.city,
            "state": self.state,
            "candidates_found": self.candidates_found,
            "verified_count": self.verified_count,
            "persisted_count": self.persisted_count,
            "per_source_counts": dict(self.per_source_counts),
            "errors": list(self.errors),
            "requests_made": self.requests_made,
            "pipeline_state": self.pipeline_state.value,
            "cancelled": self.cancelled,
        }
