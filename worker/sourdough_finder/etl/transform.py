"""Utilities for transforming Outscraper place records into candidates."""

import logging
import re
from typing import Any, Dict, Optional, Set

from sourdough_finder.models import Candidate

logger = logging.getLogger(__name__)

_ZIP_REGEX = re.compile(r"\b(\d{5})(?:-\d{4})?\b")


def _strip_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    value_str = str(value).strip()
    return value_str or None


def _safe_float(value: Any) -> Optional[float]:
    try:
        if value is None or value == "":
            return None
        return float(value)
    except (TypeError, ValueError):
        return None


def _safe_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        digits = "".join(ch for ch in value if ch.isdigit())
        if digits:
            return int(digits)
    return None


def parse_categories(record: Dict[str, Any]) -> Set[str]:
    """Collect category labels from the several fields Outscraper may use."""
    categories: Set[str] = set()
    for key in ("categories", "category", "type", "subtypes"):
        value = record.get(key)
        if not value:
            continue
        items = value if isinstance(value, (list, tuple, set)) else str(value).split(",")
        for item in items:
            label = " ".join(str(item).lower().split())
            if label:
                categories.add(label)
    return categories


def extract_zip(address: Optional[str]) -> Optional[str]:
    if not address:
        return None
    matches = _ZIP_REGEX.findall(address)
    return matches[-1] if matches else None


def _description(record: Dict[str, Any]) -> Optional[str]:
    description = _strip_or_none(record.get("description"))
    about = record.get("about")
    if isinstance(about, dict):
        # about is {"Highlights": {"Great dessert": true, ...}, ...}
        fragments = []
        for section, entries in about.items():
            if isinstance(entries, dict):
                fragments.extend(f"{section} {label}" for label, flag in entries.items() if flag)
        if fragments:
            description = " ".join(filter(None, [description, ". ".join(fragments)]))
    elif isinstance(about, str) and about.strip():
        description = " ".join(filter(None, [description, about.strip()]))
    return description


def to_candidate(record: Dict[str, Any], city: str, state: str) -> Optional[Candidate]:
    """Map one raw place record into a ``Candidate`` for the searched city and state.

    Returns ``None`` when the record has no name.
    """
    name = _strip_or_none(record.get("name") or record.get("title"))
    if not name:
        logger.debug("Skipping place record without a name: %s", str(record)[:200])
        return None

    address = _strip_or_none(record.get("full_address") or record.get("address")) or ""
    zip_code = _strip_or_none(record.get("postal_code")) or extract_zip(address)

    return Candidate(
        name=name,
        address=address,
        city=city,
        state=state,
        zip_code=zip_code,
        phone=_strip_or_none(record.get("phone")),
        website=_strip_or_none(record.get("site") or record.get("website")),
        rating=_safe_float(record.get("rating")),
        review_count=_safe_int(record.get("reviews") if record.get("reviews") is not None else record.get("reviews_count")),
        latitude=_safe_float(record.get("latitude")),
        longitude=_safe_float(record.get("longitude")),
        raw_description=_description(record),
        categories=parse_categories(record),
    )
