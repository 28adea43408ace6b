"""Cross-query deduplication of candidates by identity key."""

import logging
import re
from dataclasses import replace
from typing import Dict, Iterable, Iterator, List, Optional

from sourdough_finder.models import Candidate

logger = logging.getLogger(__name__)

COORDINATE_EPSILON = 0.001
_NON_WORD = re.compile(r"[^a-z0-9\s]")

_FILLABLE_FIELDS = (
    "address",
    "zip_code",
    "phone",
    "website",
    "rating",
    "review_count",
    "raw_description",
)


def normalize_text(value: Optional[str]) -> str:
    cleaned = _NON_WORD.sub(" ", (value or "").lower().replace("&", " and "))
    return " ".join(cleaned.split())


def identity_key(candidate: Candidate) -> str:
    """Normalized name plus coordinates rounded to 0.001 degrees, else normalized address.

    Two sightings a hair apart can round to neighbouring cells; ``CandidateSet``
    merges them and keeps the smaller key so the stored key does not depend on
    the order results arrived in.
    """
    name = normalize_text(candidate.name)
    if candidate.has_coordinates:
        return f"{name}|{candidate.latitude:.3f}|{candidate.longitude:.3f}"
    return f"{name}|{normalize_text(candidate.address)}"


def _same_place(left: Candidate, right: Candidate) -> bool:
    if left.has_coordinates and right.has_coordinates:
        return (
            abs(left.latitude - right.latitude) < COORDINATE_EPSILON
            and abs(left.longitude - right.longitude) < COORDINATE_EPSILON
        )
    if left.has_coordinates or right.has_coordinates:
        return False
    return normalize_text(left.address) == normalize_text(right.address)


class CandidateSet:
    """Insertion-ordered set of candidates, merged by identity key.

    First sighting wins for descriptive fields; empty fields are filled from
    later sightings and categories are unioned.
    """

    def __init__(self, candidates: Iterable[Candidate] = ()) -> None:
        self._by_key: Dict[str, Candidate] = {}
        self._by_name: Dict[str, List[str]] = {}
        for candidate in candidates:
            self.add(candidate)

    def __len__(self) -> int:
        return len(self._by_key)

    def __iter__(self) -> Iterator[Candidate]:
        return iter(self._by_key.values())

    def __contains__(self, candidate: Candidate) -> bool:
        return self._find(candidate) is not None

    def keys(self) -> List[str]:
        return list(self._by_key)

    def items(self):
        return self._by_key.items()

    def _find(self, candidate: Candidate) -> Optional[str]:
        key = identity_key(candidate)
        if key in self._by_key:
            return key
        for existing_key in self._by_name.get(normalize_text(candidate.name), []):
            if _same_place(self._by_key[existing_key], candidate):
                return existing_key
        return None

    def add(self, candidate: Candidate) -> bool:
        """Merge ``candidate`` in; return True when it is a new identity."""
        existing_key = self._find(candidate)
        if existing_key is None:
            key = identity_key(candidate)
            self._by_key[key] = replace(candidate, categories=set(candidate.categories))
            self._by_name.setdefault(normalize_text(candidate.name), []).append(key)
            return True

        retained = self._by_key[existing_key]
        incoming_key = identity_key(candidate)
        if incoming_key < existing_key:
            self._rekey(existing_key, incoming_key, retained)
        for field_name in _FILLABLE_FIELDS:
            if getattr(retained, field_name) in (None, "") and getattr(candidate, field_name) not in (None, ""):
                setattr(retained, field_name, getattr(candidate, field_name))
        retained.categories |= candidate.categories
        logger.debug("Merged duplicate sighting of %s", retained.name)
        return False

    def _rekey(self, old_key: str, new_key: str, retained: Candidate) -> None:
        # rebuild to keep insertion order
        self._by_key = {(new_key if key == old_key else key): value for key, value in self._by_key.items()}
        siblings = self._by_name[normalize_text(retained.name)]
        siblings[siblings.index(old_key)] = new_key


def merge_candidates(candidates: Iterable[Candidate]) -> List[Candidate]:
    return list(CandidateSet(candidates))
