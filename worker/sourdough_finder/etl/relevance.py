"""Local relevance filter applied to raw search results before merging."""

from typing import Iterable

from sourdough_finder.models import Candidate


def is_relevant(
    candidate: Candidate,
    *,
    category: str,
    inclusion_keywords: Iterable[str],
    exclusion_keywords: Iterable[str],
) -> bool:
    """Decide whether a search hit belongs to the target cuisine.

    Exclusions are checked on name and description only; inclusions also look
    at categories. "<category> restaurant" anywhere counts as an inclusion.
    """
    name = candidate.name.lower()
    description = (candidate.raw_description or "").lower()
    categories = " | ".join(sorted(candidate.categories)).lower()

    for term in exclusion_keywords:
        term = term.lower()
        if term and (term in name or term in description):
            return False

    fields = (name, description, categories)
    for term in inclusion_keywords:
        term = term.lower()
        if term and any(term in text for text in fields):
            return True

    category = category.lower().strip()
    if category:
        phrase = f"{category} restaurant"
        if any(phrase in text for text in fields):
            return True
        if any(category in label and "restaurant" in label for label in candidate.categories):
            return True

    return False
