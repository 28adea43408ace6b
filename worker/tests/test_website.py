import threading

import pytest
import requests
from bs4 import BeautifulSoup

from sourdough_finder.core.errors import FetchError
from sourdough_finder.core.rate_limit import LimiterRegistry
from sourdough_finder.models import Candidate, SourceKind
from sourdough_finder.verify import website

PAGE = """
<html>
  <head>
    <title>Pizza A | Portland</title>
    <meta name="description" content="Naturally-leavened pies since 2009">
    <script>var crust = "wild yeast";</script>
  </head>
  <body>
    <h1>Welcome</h1>
    <div class="menu-items">Margherita on our sourdough crust</div>
    <footer>Open daily</footer>
  </body>
</html>
"""


class DummyResponse:
    def __init__(self, status_code=200, text=PAGE, content_type="text/html; charset=utf-8", url=None):
        self.status_code = status_code
        self.text = text
        self.headers = {"Content-Type": content_type}
        self.url = url


class DummySession:
    def __init__(self, response=None, exc=None):
        self.headers = {}
        self.response = response or DummyResponse()
        self.exc = exc
        self.calls = []
        self.closed = False

    def get(self, url, timeout=None, allow_redirects=True):
        self.calls.append((url, timeout))
        if self.exc is not None:
            raise self.exc
        return self.response

    def close(self):
        self.closed = True


def test_sanitize_website():
    assert website.sanitize_website("pizzaa.example") == "https://pizzaa.example/"
    assert website.sanitize_website(" http://pizzaa.example/menu?x=1#top ") == "http://pizzaa.example/menu?x=1"
    assert website.sanitize_website("") is None
    assert website.sanitize_website(None) is None


def test_extract_visible_text_skips_scripts():
    text = website.extract_visible_text(BeautifulSoup(PAGE, "html.parser"))

    assert "naturally-leavened pies" in text
    assert "sourdough crust" in text
    assert "wild yeast" not in text
    assert text == text.lower()


def test_fetch_matches_keywords_from_page():
    session = DummySession()
    fetcher = website.WebsiteFetcher(session=session, timeout=5)

    result = fetcher.fetch(Candidate(name="Pizza A", website="pizzaa.example"), ["sourdough", "naturally leavened", "wild yeast"])

    assert result.source is SourceKind.WEBSITE
    assert result.fetched_ok is True
    assert result.matched_keywords == {"sourdough", "naturally leavened"}
    assert "naturally-leavened" in result.matched_tokens
    assert session.calls == [("https://pizzaa.example/", 5)]
    assert session.headers["User-Agent"] == website.BROWSER_USER_AGENT


def test_fetch_404_is_a_failed_result():
    session = DummySession(DummyResponse(status_code=404, text="not found"))
    fetcher = website.WebsiteFetcher(session=session)

    result = fetcher.fetch(Candidate(name="Pizza C", website="https://pizzac.example"), ["sourdough"])

    assert result.fetched_ok is False
    assert result.attempted is True
    assert result.matched_keywords == frozenset()
    assert result.failure_reason == "HTTP 404"


def test_fetch_without_website_is_not_attempted():
    result = website.WebsiteFetcher(session=DummySession()).fetch(Candidate(name="Pizza D"), ["sourdough"])

    assert result.fetched_ok is False
    assert result.attempted is False


def test_fetch_page_timeout():
    session = DummySession(exc=requests.Timeout("slow"))
    with pytest.raises(FetchError, match="timed out"):
        website.fetch_page(session, "https://slow.example/", timeout=2)


def test_fetch_page_rejects_non_html():
    session = DummySession(DummyResponse(content_type="application/pdf"))
    with pytest.raises(FetchError, match="not HTML"):
        website.fetch_page(session, "https://menu.example/menu.pdf")


def test_fetch_text_acquires_per_host_limiter():
    acquired = []

    class FakeLimiter:
        def acquire(self):
            acquired.append(True)
            return 0.0

    class FakeRegistry:
        def for_endpoint(self, endpoint):
            acquired.append(endpoint)
            return FakeLimiter()

    fetcher = website.WebsiteFetcher(session=DummySession(), limiters=FakeRegistry())
    fetcher.fetch_text("https://PizzaA.example/")

    assert acquired == ["pizzaa.example", True]


def test_close_closes_session():
    session = DummySession()
    website.WebsiteFetcher(session=session).close()
    assert session.closed is True


def test_cancelled_run_skips_the_request():
    event = threading.Event()
    event.set()
    session = DummySession()
    fetcher = website.WebsiteFetcher(session=session, limiters=LimiterRegistry((0.0, 0.0), cancel_event=event))

    result = fetcher.fetch(Candidate(name="Pizza A", website="a.example"), ["sourdough"])

    assert result.attempted is False
    assert result.fetched_ok is False
    assert session.calls == []
