import itertools

from sourdough_finder.models import EvidenceResult, SourceKind
from sourdough_finder.verify.evidence import combine

PROFILE = EvidenceResult(source=SourceKind.BUSINESS_PROFILE, matched_keywords=frozenset({"sourdough"}))
WEBSITE = EvidenceResult(source=SourceKind.WEBSITE, matched_keywords=frozenset({"wild yeast", "sourdough"}))
SOCIAL_MISS = EvidenceResult(source=SourceKind.SOCIAL_BIO)
WEBSITE_404 = EvidenceResult.failed(SourceKind.WEBSITE, "HTTP 404")


def test_union_of_keywords_and_sources():
    decision = combine([PROFILE, WEBSITE, SOCIAL_MISS])

    assert decision.verified is True
    assert decision.keywords == {"sourdough", "wild yeast"}
    assert decision.sources == {SourceKind.BUSINESS_PROFILE, SourceKind.WEBSITE}
    assert len(decision.evidence) == 3


def test_no_matches_is_unverified():
    decision = combine([SOCIAL_MISS, WEBSITE_404])

    assert decision.verified is False
    assert decision.keywords == frozenset()
    assert decision.sources == frozenset()


def test_empty_results():
    assert combine([]).verified is False


def test_order_does_not_matter():
    results = [PROFILE, WEBSITE, SOCIAL_MISS, WEBSITE_404]
    decisions = {combine(order) for order in itertools.permutations(results)}
    assert len(decisions) == 1


def test_adding_results_never_removes_evidence():
    base = combine([PROFILE])
    for extra in (WEBSITE, SOCIAL_MISS, WEBSITE_404):
        grown = combine([PROFILE, extra])
        assert base.keywords <= grown.keywords
        assert base.sources <= grown.sources
        assert grown.verified
