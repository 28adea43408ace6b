"""Client utilities for the Outscraper Maps Search API."""

import logging
from typing import Any, Dict, List, Optional

import requests

from sourdough_finder.core.errors import UpstreamAuthError, UpstreamQuotaError, UpstreamTransientError

logger = logging.getLogger(__name__)
_SESSION = requests.Session()
_BASE_URL = "https://api.outscraper.com"
REQUEST_TIMEOUT = 30


def _get(path: str, api_key: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    try:
        response = _SESSION.get(
            f"{_BASE_URL}{path}",
            params=params,
            headers={"X-API-KEY": api_key},
            timeout=REQUEST_TIMEOUT,
        )
    except requests.RequestException as exc:
        raise UpstreamTransientError(f"request to {path} failed: {exc}") from exc

    status_code = response.status_code
    if status_code in (401, 403):
        logger.error("Outscraper rejected credentials: status=%s", status_code)
        raise UpstreamAuthError(f"Outscraper returned {status_code}; check OUTSCRAPER_API_KEY")
    if status_code == 402:
        raise UpstreamQuotaError("Outscraper returned 402 Payment Required")
    if status_code == 429:
        raise UpstreamQuotaError(
            "Outscraper returned 429 Too Many Requests",
            hint="Increase REQUEST_SPACING_MIN/MAX or lower WORKER_CONCURRENCY.",
        )
    if status_code >= 400:
        raise UpstreamTransientError(f"Outscraper returned {status_code} for {path}: {response.text[:200]}")

    try:
        return response.json()
    except ValueError as exc:
        raise UpstreamTransientError(f"Outscraper returned invalid JSON for {path}") from exc


def submit_search(query: str, api_key: str, *, limit: int, language: str = "en", region: str = "US") -> Dict[str, Any]:
    """Submit a maps search. The payload is terminal or carries a pending request id."""
    params = {
        "query": query,
        "limit": limit,
        "language": language,
        "region": region,
        "async": "true",
    }
    return _get("/maps/search-v3", api_key, params)


def get_request(request_id: str, api_key: str) -> Dict[str, Any]:
    return _get(f"/requests/{request_id}", api_key)


def flatten_data(data: Any) -> List[Dict[str, Any]]:
    """Outscraper nests results one level per query; flatten to a list of place dicts."""
    places: List[Dict[str, Any]] = []
    for item in data or []:
        if isinstance(item, list):
            places.extend(entry for entry in item if isinstance(entry, dict))
        elif isinstance(item, dict):
            places.append(item)
    return places
