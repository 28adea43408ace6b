"""Website evidence: fetch a restaurant's homepage and scan its visible text."""

from __future__ import annotations

import logging
import re
from typing import Iterable, List, Optional, Tuple
from urllib.parse import urlparse, urlunparse

import requests
from bs4 import BeautifulSoup

try:
    from playwright.sync_api import TimeoutError as PlaywrightTimeoutError, sync_playwright
except ImportError:  # pragma: no cover - optional dependency
    sync_playwright = None
    PlaywrightTimeoutError = Exception

from sourdough_finder.core.errors import FetchError, RunCancelled
from sourdough_finder.core.rate_limit import LimiterRegistry
from sourdough_finder.models import Candidate, EvidenceResult, SourceKind
from sourdough_finder.verify.keywords import find_keyword_tokens

logger = logging.getLogger(__name__)

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)
REQUEST_TIMEOUT = 10
MENU_SELECTORS = ".menu, #menu, [class*='menu'], [id*='menu']"
_SKIPPED_TAGS = ("script", "style", "noscript", "svg", "iframe", "template")


class PlaywrightRenderer:
    """Thin wrapper around Playwright to render JavaScript-heavy pages."""

    def __init__(self, timeout_ms: int = 15000) -> None:
        if sync_playwright is None:
            raise RuntimeError("playwright is not installed")
        self._playwright = None
        self._browser = None
        self._timeout_ms = timeout_ms

    def _ensure_browser(self) -> None:
        if self._playwright is None:
            self._playwright = sync_playwright().start()
            self._browser = self._playwright.chromium.launch(headless=True)

    def render(self, url: str) -> Tuple[str, str]:
        self._ensure_browser()
        page = self._browser.new_page(user_agent=BROWSER_USER_AGENT)
        try:
            page.goto(url, wait_until="networkidle", timeout=self._timeout_ms)
            return page.url, page.content()
        finally:
            page.close()

    def close(self) -> None:
        if self._browser is not None:
            self._browser.close()
            self._browser = None
        if self._playwright is not None:
            self._playwright.stop()
            self._playwright = None


def sanitize_website(raw_url: Optional[str]) -> Optional[str]:
    """Normalise raw website strings into absolute URLs (https when no scheme)."""

    if not raw_url:
        return None

    url = raw_url.strip()
    if not url:
        return None

    parsed = urlparse(url, scheme="https")
    if not parsed.netloc:
        parsed = urlparse(f"https://{url}")

    if not parsed.netloc:
        return None

    normalized_path = parsed.path or "/"
    if not normalized_path.startswith("/"):
        normalized_path = f"/{normalized_path}"

    return urlunparse(parsed._replace(path=normalized_path, fragment=""))


def fetch_page(session: requests.Session, url: str, *, timeout: float = REQUEST_TIMEOUT) -> Tuple[str, BeautifulSoup]:
    """GET ``url`` following redirects and return the final URL + soup.

    Raises ``FetchError`` on network errors, non-2xx statuses and non-HTML bodies.
    """
    try:
        response = session.get(url, timeout=timeout, allow_redirects=True)
    except requests.Timeout as exc:
        raise FetchError(f"timed out after {timeout}s", url=url) from exc
    except requests.RequestException as exc:
        raise FetchError(f"request failed: {exc}", url=url) from exc

    if response.status_code >= 400:
        raise FetchError(f"HTTP {response.status_code}", url=url, status_code=response.status_code)

    content_type = response.headers.get("Content-Type", "").lower()
    if content_type and "html" not in content_type and "text/plain" not in content_type:
        raise FetchError(f"not HTML ({content_type[:50]})", url=url, status_code=response.status_code)

    return response.url or url, BeautifulSoup(response.text, "html.parser")


def _needs_js_render(soup: BeautifulSoup) -> bool:
    body_text = soup.get_text(" ", strip=True)
    if len(body_text) > 200:
        return False

    if soup.find(attrs={"data-page": True}):
        return True

    root = soup.find(id=re.compile("(app|root)", re.IGNORECASE))
    if root and not root.get_text(strip=True):
        return True

    return False


def extract_visible_text(soup: BeautifulSoup) -> str:
    """Collect title, meta description, headings, menu and main/body text, lower-cased."""
    for tag in soup(_SKIPPED_TAGS):
        tag.decompose()

    parts: List[str] = []
    if soup.title and soup.title.string:
        parts.append(soup.title.string)

    for meta_name in ("description", "og:description"):
        meta = soup.find("meta", attrs={"name": meta_name}) or soup.find("meta", attrs={"property": meta_name})
        if meta and meta.get("content"):
            parts.append(meta["content"])

    parts.extend(heading.get_text(" ", strip=True) for heading in soup.find_all(["h1", "h2", "h3"]))
    parts.extend(node.get_text(" ", strip=True) for node in soup.select(MENU_SELECTORS))

    main = soup.find("main") or soup.body or soup
    parts.append(main.get_text(" ", strip=True))

    return re.sub(r"\s+", " ", " ".join(parts)).strip().lower()


class WebsiteFetcher:
    """Fetch a candidate's website once and match the keyword vocabulary against it."""

    source = SourceKind.WEBSITE

    def __init__(
        self,
        *,
        timeout: float = REQUEST_TIMEOUT,
        session: Optional[requests.Session] = None,
        limiters: Optional[LimiterRegistry] = None,
        use_js_renderer: bool = False,
    ) -> None:
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "User-Agent": BROWSER_USER_AGENT,
                "Accept": "text/html,application/xhtml+xml",
                "Accept-Language": "en-US,en;q=0.9",
            }
        )
        self.limiters = limiters
        self.use_js_renderer = use_js_renderer
        self._js_renderer: Optional[PlaywrightRenderer] = None
        if self.use_js_renderer and sync_playwright is None:
            logger.warning("Playwright is unavailable; disabling JS renderer")
            self.use_js_renderer = False

    def _get_js_renderer(self) -> Optional[PlaywrightRenderer]:
        if not self.use_js_renderer:
            return None
        if not self._js_renderer:
            try:
                self._js_renderer = PlaywrightRenderer(timeout_ms=int(self.timeout * 1000))
            except RuntimeError as exc:
                logger.warning("Unable to initialise Playwright renderer: %s", exc)
                self.use_js_renderer = False
                return None
        return self._js_renderer

    def _render_with_js(self, url: str) -> Optional[BeautifulSoup]:
        renderer = self._get_js_renderer()
        if not renderer:
            return None
        try:
            _, html = renderer.render(url)
            return BeautifulSoup(html, "html.parser")
        except PlaywrightTimeoutError:
            logger.warning("Playwright timed out fetching %s", url)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Playwright failed for %s: %s", url, exc)
        return None

    def fetch_text(self, url: str) -> str:
        if self.limiters is not None:
            self.limiters.for_endpoint(urlparse(url).netloc.lower()).acquire()

        final_url, soup = fetch_page(self.session, url, timeout=self.timeout)
        if self.use_js_renderer and _needs_js_render(soup):
            rendered = self._render_with_js(final_url)
            if rendered is not None:
                soup = rendered
        return extract_visible_text(soup)

    def fetch(self, candidate: Candidate, vocabulary: Iterable[str]) -> EvidenceResult:
        url = sanitize_website(candidate.website)
        if not url:
            return EvidenceResult.failed(self.source, "no website", attempted=False)

        try:
            text = self.fetch_text(url)
        except RunCancelled:
            return EvidenceResult.failed(self.source, "run cancelled", attempted=False, detail=url)
        except FetchError as exc:
            logger.warning("Website fetch failed for %s (%s): %s", candidate.name, url, exc)
            return EvidenceResult.failed(self.source, str(exc), detail=url)

        tokens = find_keyword_tokens(text, vocabulary)
        if tokens:
            logger.info("Website keywords for %s: %s", candidate.name, ", ".join(sorted(set(tokens.values()))))
        return EvidenceResult(
            source=self.source,
            matched_keywords=frozenset(tokens.values()),
            matched_tokens=frozenset(tokens),
            detail=url,
        )

    def close(self) -> None:
        self.session.close()
        if self._js_renderer:
            self._js_renderer.close()
            self._js_renderer = None
