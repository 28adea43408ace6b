"""SerpAPI Google Search helpers used to read public social profile bios."""

from __future__ import annotations

import logging
import random
import time
from typing import Any, Dict, List, Optional

from serpapi import GoogleSearch

from sourdough_finder.core.errors import FetchError

logger = logging.getLogger(__name__)

RETRY_LIMIT = 1
RETRY_DELAY_SECONDS = 1.2


def build_search_params(query: str, api_key: str, num: int = 3) -> Dict[str, Any]:
    """Construct SerpAPI request parameters for the Google web engine."""
    if not query or not query.strip():
        raise ValueError("Query must be provided for SerpAPI lookups.")
    if not api_key:
        raise ValueError("A SerpAPI key is required for SerpAPI lookups.")

    return {
        "engine": "google",
        "q": query.strip(),
        "api_key": api_key,
        "num": num,
    }


def search(query: str, api_key: str, num: int = 3) -> Dict[str, Any]:
    """Call SerpAPI and return the raw JSON response, retrying transient failures.

    SerpAPI charges per request, so callers keep handle lists short and stop at
    the first profile that answers.
    """
    params = build_search_params(query, api_key, num)

    attempt = 0
    while True:
        attempt += 1
        try:
            logger.debug("Calling SerpAPI (attempt %s) for q=%s", attempt, query)
            data = GoogleSearch(params).get_dict()
            if not data:
                raise ValueError("SerpAPI returned an empty payload.")
            if "error" in data:
                if "hasn't returned any results" in str(data["error"]):
                    return {"organic_results": []}
                raise RuntimeError(f"SerpAPI returned an error response: {data['error']}")
            return data
        except Exception as exc:  # noqa: BLE001 - client raises bare exceptions
            logger.warning("SerpAPI request failed (attempt %s/%s): %s", attempt, RETRY_LIMIT + 1, exc)
            if attempt > RETRY_LIMIT:
                raise FetchError(f"SerpAPI search failed: {exc}") from exc
            time.sleep(RETRY_DELAY_SECONDS + random.uniform(0, 0.8))


def first_profile_snippet(data: Optional[Dict[str, Any]], domain: str, handle: str) -> Optional[str]:
    """Return title + snippet of the first organic hit that is the ``handle`` profile on ``domain``."""
    if not data:
        return None

    results: List[Dict[str, Any]] = data.get("organic_results") or []
    handle = handle.lower()
    for result in results:
        link = str(result.get("link") or "").lower()
        if domain not in link:
            continue
        path = link.split(domain, 1)[1].strip("/").split("/")
        if not path or path[0] != handle:
            continue
        parts = [result.get("title"), result.get("snippet")]
        rich = result.get("rich_snippet") or {}
        top = rich.get("top") if isinstance(rich, dict) else None
        if isinstance(top, dict):
            parts.extend(str(value) for value in top.get("extensions") or [])
        text = " ".join(str(part) for part in parts if part)
        return text or None
    return None
