import pytest
import requests

from sourdough_finder.core.errors import UpstreamAuthError, UpstreamQuotaError, UpstreamTransientError
from sourdough_finder.vendors import outscraper


class DummyResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class DummySession:
    def __init__(self):
        self.calls = []
        self.response = DummyResponse(payload={})
        self.exc = None

    def get(self, url, params=None, headers=None, timeout=None):
        self.calls.append((url, params, headers, timeout))
        if self.exc is not None:
            raise self.exc
        return self.response


@pytest.fixture(autouse=True)
def patch_session(monkeypatch):
    session = DummySession()
    monkeypatch.setattr(outscraper, "_SESSION", session)
    return session


def test_submit_search_sends_async_request(patch_session):
    patch_session.response = DummyResponse(payload={"id": "abc", "status": "Pending"})

    payload = outscraper.submit_search("sourdough pizza Portland OR", "key", limit=20)

    assert payload["id"] == "abc"
    url, params, headers, timeout = patch_session.calls[0]
    assert url.endswith("/maps/search-v3")
    assert params["query"] == "sourdough pizza Portland OR"
    assert params["limit"] == 20
    assert params["async"] == "true"
    assert headers == {"X-API-KEY": "key"}
    assert timeout == outscraper.REQUEST_TIMEOUT


def test_get_request_uses_request_id(patch_session):
    patch_session.response = DummyResponse(payload={"status": "Success", "data": []})
    outscraper.get_request("abc", "key")
    assert patch_session.calls[0][0].endswith("/requests/abc")


@pytest.mark.parametrize("status_code", [401, 403])
def test_auth_failures(patch_session, status_code):
    patch_session.response = DummyResponse(status_code=status_code)
    with pytest.raises(UpstreamAuthError):
        outscraper.get_request("abc", "key")


def test_quota_failures_carry_hint(patch_session):
    patch_session.response = DummyResponse(status_code=429)
    with pytest.raises(UpstreamQuotaError) as excinfo:
        outscraper.get_request("abc", "key")
    assert "REQUEST_SPACING" in str(excinfo.value)

    patch_session.response = DummyResponse(status_code=402)
    with pytest.raises(UpstreamQuotaError):
        outscraper.get_request("abc", "key")


def test_server_errors_are_transient(patch_session):
    patch_session.response = DummyResponse(status_code=503, text="unavailable")
    with pytest.raises(UpstreamTransientError):
        outscraper.get_request("abc", "key")


def test_network_errors_are_transient(patch_session):
    patch_session.exc = requests.ConnectionError("reset")
    with pytest.raises(UpstreamTransientError):
        outscraper.submit_search("q", "key", limit=1)


def test_invalid_json_is_transient(patch_session):
    patch_session.response = DummyResponse(payload=None)
    with pytest.raises(UpstreamTransientError):
        outscraper.get_request("abc", "key")


def test_flatten_data_handles_nesting():
    data = [[{"name": "A"}, "junk"], {"name": "B"}, None]
    assert outscraper.flatten_data(data) == [{"name": "A"}, {"name": "B"}]
    assert outscraper.flatten_data(None) == []
