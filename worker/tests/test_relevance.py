from sourdough_finder.core.config import DEFAULT_EXCLUSION_KEYWORDS, DEFAULT_INCLUSION_KEYWORDS
from sourdough_finder.etl.relevance import is_relevant
from sourdough_finder.models import Candidate


def relevant(candidate):
    return is_relevant(
        candidate,
        category="pizza",
        inclusion_keywords=DEFAULT_INCLUSION_KEYWORDS,
        exclusion_keywords=DEFAULT_EXCLUSION_KEYWORDS,
    )


def test_name_inclusion():
    assert relevant(Candidate(name="Apizza Scholls"))


def test_category_inclusion():
    assert relevant(Candidate(name="Lovely's Fifty Fifty", categories={"pizza restaurant"}))


def test_exclusion_beats_inclusion():
    assert not relevant(Candidate(name="Pizza Delivery Service Co"))
    assert not relevant(Candidate(name="Corner Store", raw_description="Grocery with frozen pizza"))


def test_exclusion_ignores_categories():
    candidate = Candidate(name="Trattoria Roma", categories={"grocery"})
    assert relevant(candidate)


def test_unrelated_business_rejected():
    assert not relevant(Candidate(name="Blue Star Donuts", categories={"donut shop"}))


def test_category_restaurant_label():
    candidate = Candidate(name="Neapolitan Place", categories={"neapolitan pizza restaurant"})
    assert is_relevant(candidate, category="pizza", inclusion_keywords=(), exclusion_keywords=())
