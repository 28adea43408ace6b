"""Application configuration helpers."""

import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional, Tuple

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_KEYWORDS = ("sourdough", "naturally leavened", "wild yeast", "naturally fermented")
DEFAULT_INCLUSION_KEYWORDS = (
    "pizza",
    "pizzeria",
    "pizzas",
    "italian restaurant",
    "trattoria",
    "ristorante",
)
DEFAULT_EXCLUSION_KEYWORDS = (
    "grocery",
    "supermarket",
    "gas station",
    "convenience store",
    "delivery service",
    "courier",
    "driver",
)
DEFAULT_SOCIAL_NETWORKS = ("instagram.com", "facebook.com")


@dataclass(frozen=True)
class QueryTemplate:
    pattern: str
    limit: int = 30

    def render(self, *, city: str, state: str, product: str, category: str) -> str:
        query = self.pattern.format(city=city, state=state, product=product, category=category)
        return " ".join(query.split())


DEFAULT_QUERY_TEMPLATES = (
    QueryTemplate("{product} {category} {city} {state}", 30),
    QueryTemplate("artisan {category} {city} {state}", 30),
    QueryTemplate("{category} restaurants {city} {state}", 20),
)


@dataclass(frozen=True)
class DiscoveryStrategy:
    """Everything that varies between discovery runs for different products or cuisines."""

    product: str = "sourdough"
    category: str = "pizza"
    query_templates: Tuple[QueryTemplate, ...] = DEFAULT_QUERY_TEMPLATES
    keywords: Tuple[str, ...] = DEFAULT_KEYWORDS
    inclusion_keywords: Tuple[str, ...] = DEFAULT_INCLUSION_KEYWORDS
    exclusion_keywords: Tuple[str, ...] = DEFAULT_EXCLUSION_KEYWORDS
    social_networks: Tuple[str, ...] = DEFAULT_SOCIAL_NETWORKS
    persist_unverified: bool = False


@dataclass(frozen=True)
class Settings:
    outscraper_api_key: str
    database_url: str
    serpapi_api_key: str = ""
    worker_port: int = 9000
    search_language: str = "en"
    search_region: str = "US"
    poll_max_attempts: int = 8
    poll_base_delay: float = 8.0
    poll_step_delay: float = 1.0
    poll_cap_delay: float = 12.0
    spacing_min: float = 2.0
    spacing_max: float = 8.0
    website_timeout: float = 10.0
    concurrency: int = 1
    enrich_use_js_renderer: bool = False
    strategy: DiscoveryStrategy = field(default_factory=DiscoveryStrategy)


def _env_list(name: str, default: Tuple[str, ...], separator: str = ",") -> Tuple[str, ...]:
    raw = os.getenv(name)
    if not raw:
        return default
    values = tuple(item.strip().lower() for item in raw.split(separator) if item.strip())
    return values or default


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


def parse_query_templates(raw: Optional[str]) -> Tuple[QueryTemplate, ...]:
    """Parse ``pattern@limit;pattern@limit`` into query templates."""
    if not raw:
        return DEFAULT_QUERY_TEMPLATES

    templates = []
    for chunk in raw.split(";"):
        chunk = chunk.strip()
        if not chunk:
            continue
        pattern, _, limit = chunk.rpartition("@")
        if pattern and limit.strip().isdigit():
            templates.append(QueryTemplate(pattern.strip(), int(limit)))
        else:
            templates.append(QueryTemplate(chunk))
    return tuple(templates) or DEFAULT_QUERY_TEMPLATES


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from environment variables with sensible defaults."""
    load_dotenv()

    outscraper_api_key = os.getenv("OUTSCRAPER_API_KEY", "")
    serpapi_api_key = os.getenv("SERPAPI_API_KEY", "")
    database_url = os.getenv("DATABASE_URL", "")
    concurrency = int(os.getenv("WORKER_CONCURRENCY", "1"))

    if not database_url:
        logger.warning("DATABASE_URL is not set; database operations will fail.")
    if not outscraper_api_key:
        logger.warning("OUTSCRAPER_API_KEY is not configured; places searches will fail.")
    if not serpapi_api_key:
        logger.warning("SERPAPI_API_KEY is not configured; social bio checks will be skipped.")
    if not 1 <= concurrency <= 3:
        logger.warning("WORKER_CONCURRENCY=%s is out of range; clamping to 1..3", concurrency)
        concurrency = min(max(concurrency, 1), 3)

    strategy = DiscoveryStrategy(
        product=os.getenv("PRODUCT_TERM", "sourdough").strip().lower(),
        category=os.getenv("CATEGORY_TERM", "pizza").strip().lower(),
        query_templates=parse_query_templates(os.getenv("QUERY_TEMPLATES")),
        keywords=_env_list("VERIFICATION_KEYWORDS", DEFAULT_KEYWORDS),
        inclusion_keywords=_env_list("INCLUSION_KEYWORDS", DEFAULT_INCLUSION_KEYWORDS),
        exclusion_keywords=_env_list("EXCLUSION_KEYWORDS", DEFAULT_EXCLUSION_KEYWORDS),
        social_networks=_env_list("SOCIAL_NETWORKS", DEFAULT_SOCIAL_NETWORKS),
        persist_unverified=_env_bool("PERSIST_UNVERIFIED"),
    )

    return Settings(
        outscraper_api_key=outscraper_api_key,
        database_url=database_url,
        serpapi_api_key=serpapi_api_key,
        worker_port=int(os.getenv("WORKER_PORT", "9000")),
        search_language=os.getenv("SEARCH_LANGUAGE", "en"),
        search_region=os.getenv("SEARCH_REGION", "US"),
        poll_max_attempts=int(os.getenv("POLL_MAX_ATTEMPTS", "8")),
        poll_base_delay=float(os.getenv("POLL_BASE_DELAY", "8")),
        poll_step_delay=float(os.getenv("POLL_STEP_DELAY", "1")),
        poll_cap_delay=float(os.getenv("POLL_CAP_DELAY", "12")),
        spacing_min=float(os.getenv("REQUEST_SPACING_MIN", "2")),
        spacing_max=float(os.getenv("REQUEST_SPACING_MAX", "8")),
        website_timeout=float(os.getenv("WEBSITE_TIMEOUT", "10")),
        concurrency=concurrency,
        enrich_use_js_renderer=_env_bool("ENRICH_USE_JS_RENDERER"),
        strategy=strategy,
    )
