import threading

import pytest

from sourdough_finder.core.errors import FetchError
from sourdough_finder.core.rate_limit import LimiterRegistry
from sourdough_finder.models import Candidate, SourceKind
from sourdough_finder.vendors import serp_search
from sourdough_finder.verify import social


def test_generate_handles():
    handles = social.generate_handles("Ken's Artisan Pizza", category="pizza", city="Portland")

    assert handles[0] == "kensartisanpizza"
    assert handles[1] == "kens_artisan_pizza"
    assert "kensartisan" in handles
    assert "kensartisanpizzaportland" in handles


def test_generate_handles_city_initials_and_category_suffix():
    handles = social.generate_handles("Luigi's", category="pizza", city="San Francisco")
    assert handles == ["luigis", "luigispizza", "luigissf"]


def test_generate_handles_empty_name():
    assert social.generate_handles("!!!") == []


def make_search(responses):
    calls = []

    def fake_search(query, api_key, num=3):
        calls.append(query)
        response = responses.get(query, {"organic_results": []})
        if isinstance(response, Exception):
            raise response
        return response

    return fake_search, calls


def profile(link, snippet):
    return {"organic_results": [{"link": link, "title": "Pizza A (@pizzaa)", "snippet": snippet}]}


def test_fetch_finds_keyword_in_bio(monkeypatch):
    fake_search, calls = make_search(
        {"site:instagram.com/pizzaa": profile("https://www.instagram.com/pizzaa/", "Wood fired sourdough pizza")}
    )
    monkeypatch.setattr(social.serp_search, "search", fake_search)

    fetcher = social.SocialBioFetcher("serp", networks=("instagram.com", "facebook.com"), category="pizza")
    result = fetcher.fetch(Candidate(name="Pizza A", city="Portland"), ["sourdough"])

    assert result.source is SourceKind.SOCIAL_BIO
    assert result.matched_keywords == {"sourdough"}
    assert result.detail == "instagram.com/pizzaa"
    # first hit on instagram stops the instagram handles; facebook is still checked
    assert calls[0] == "site:instagram.com/pizzaa"
    assert sum(1 for call in calls if call.startswith("site:instagram.com")) == 1
    assert any(call.startswith("site:facebook.com") for call in calls)


def test_fetch_without_key_is_not_attempted():
    result = social.SocialBioFetcher("").fetch(Candidate(name="Pizza A"), ["sourdough"])
    assert result.fetched_ok is False
    assert result.attempted is False


def test_fetch_all_searches_failing(monkeypatch):
    def failing_search(query, api_key, num=3):
        raise FetchError("SerpAPI search failed: quota")

    monkeypatch.setattr(social.serp_search, "search", failing_search)

    result = social.SocialBioFetcher("serp", networks=("instagram.com",)).fetch(Candidate(name="Pizza A"), ["sourdough"])

    assert result.fetched_ok is False
    assert result.attempted is True
    assert "quota" in result.failure_reason


def test_fetch_no_match_is_ok(monkeypatch):
    fake_search, _ = make_search({})
    monkeypatch.setattr(social.serp_search, "search", fake_search)

    result = social.SocialBioFetcher("serp", networks=("instagram.com",)).fetch(Candidate(name="Pizza A"), ["sourdough"])

    assert result.fetched_ok is True
    assert result.matched_keywords == frozenset()


def test_first_profile_snippet_requires_matching_handle():
    data = {
        "organic_results": [
            {"link": "https://www.instagram.com/p/xyz/", "snippet": "sourdough"},
            {"link": "https://www.instagram.com/pizzaa/", "title": "Pizza A", "snippet": "naturally leavened"},
        ]
    }
    assert serp_search.first_profile_snippet(data, "instagram.com", "pizzaa") == "Pizza A naturally leavened"
    assert serp_search.first_profile_snippet(data, "instagram.com", "other") is None
    assert serp_search.first_profile_snippet(None, "instagram.com", "pizzaa") is None


def test_build_search_params_validates():
    params = serp_search.build_search_params(" site:instagram.com/pizzaa ", "key")
    assert params == {"engine": "google", "q": "site:instagram.com/pizzaa", "api_key": "key", "num": 3}

    with pytest.raises(ValueError):
        serp_search.build_search_params("", "key")
    with pytest.raises(ValueError):
        serp_search.build_search_params("q", "")


def test_search_treats_no_results_as_empty(monkeypatch):
    class FakeGoogleSearch:
        def __init__(self, params):
            self.params = params

        def get_dict(self):
            return {"error": "Google hasn't returned any results for this query."}

    monkeypatch.setattr(serp_search, "GoogleSearch", FakeGoogleSearch)
    assert serp_search.search("site:instagram.com/nobody", "key") == {"organic_results": []}


def test_search_raises_fetch_error_after_retries(monkeypatch):
    attempts = []

    class FailingGoogleSearch:
        def __init__(self, params):
            pass

        def get_dict(self):
            attempts.append(True)
            raise RuntimeError("connection reset")

    monkeypatch.setattr(serp_search, "GoogleSearch", FailingGoogleSearch)
    monkeypatch.setattr(serp_search.time, "sleep", lambda _: None)

    with pytest.raises(FetchError):
        serp_search.search("site:instagram.com/pizzaa", "key")
    assert len(attempts) == serp_search.RETRY_LIMIT + 1


def test_generate_handles_multi_word_category_has_no_spaces():
    handles = social.generate_handles("Mario's", category="italian food")

    assert "mariositalianfood" in handles
    assert all(" " not in handle for handle in handles)


def test_cancellation_during_lookup_stops_further_searches(monkeypatch):
    event = threading.Event()
    calls = []

    def fake_search(query, api_key, num=3):
        calls.append(query)
        event.set()
        return {"organic_results": []}

    monkeypatch.setattr(social.serp_search, "search", fake_search)

    registry = LimiterRegistry((2.0, 2.0), cancel_event=event)
    fetcher = social.SocialBioFetcher(
        "serp",
        networks=("instagram.com", "facebook.com"),
        category="pizza",
        limiter=registry.for_endpoint("serpapi"),
    )
    result = fetcher.fetch(Candidate(name="Pizza A", city="Portland"), ["sourdough"])

    assert calls == ["site:instagram.com/pizzaa"]
    assert result.attempted is False
    assert result.fetched_ok is False
