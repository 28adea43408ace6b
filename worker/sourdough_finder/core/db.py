"""Database helpers for the restaurants directory."""

import logging
import uuid
from contextlib import contextmanager
from dataclasses import asdict
from typing import Any, Dict, List, Optional

from psycopg2 import extras, pool

from sourdough_finder.core.config import get_settings
from sourdough_finder.models import PersistedRecord

logger = logging.getLogger(__name__)

_connection_pool: Optional[pool.SimpleConnectionPool] = None


def init_pool(minconn: int = 1, maxconn: int = 5) -> pool.SimpleConnectionPool:
    """Initialise and return the shared connection pool."""
    global _connection_pool
    if _connection_pool is None:
        settings = get_settings()
        if not settings.database_url:
            raise RuntimeError("DATABASE_URL is required for database connections")
        _connection_pool = pool.SimpleConnectionPool(
            minconn,
            maxconn,
            dsn=settings.database_url,
            connect_timeout=10,
        )
        logger.info("Database connection pool initialised")
    return _connection_pool


@contextmanager
def get_connection():
    """Context manager yielding a pooled connection."""
    pg_pool = init_pool()
    conn = pg_pool.getconn()
    try:
        yield conn
    finally:
        pg_pool.putconn(conn)


_CREATE_TABLE = """
CREATE EXTENSION IF NOT EXISTS pgcrypto;
CREATE TABLE IF NOT EXISTS restaurants (
    id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
    identity_key text NOT NULL UNIQUE,
    name text NOT NULL,
    address text NOT NULL DEFAULT '',
    city text NOT NULL,
    state text NOT NULL,
    zip_code text,
    phone text,
    website text,
    description text,
    categories text[] NOT NULL DEFAULT '{}',
    rating real,
    review_count integer,
    latitude double precision,
    longitude double precision,
    sourdough_verified boolean NOT NULL DEFAULT false,
    sourdough_keywords text[] NOT NULL DEFAULT '{}',
    verification_sources text[] NOT NULL DEFAULT '{}',
    last_checked_at timestamptz NOT NULL,
    created_at timestamptz NOT NULL DEFAULT NOW(),
    updated_at timestamptz NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS restaurants_city_state_idx ON restaurants (state, city);
"""


def ensure_schema() -> None:
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(_CREATE_TABLE)
        conn.commit()
    logger.info("restaurants table is ready")


# Array columns only grow: each becomes the sorted distinct union of the stored
# and incoming values. sourdough_verified never goes from true to false.
_UPSERT_RESTAURANT = """
INSERT INTO restaurants (
    identity_key,
    name,
    address,
    city,
    state,
    zip_code,
    phone,
    website,
    description,
    categories,
    rating,
    review_count,
    latitude,
    longitude,
    sourdough_verified,
    sourdough_keywords,
    verification_sources,
    last_checked_at,
    updated_at
) VALUES (
    %(identity_key)s,
    %(name)s,
    %(address)s,
    %(city)s,
    %(state)s,
    %(zip_code)s,
    %(phone)s,
    %(website)s,
    %(description)s,
    %(categories)s,
    %(rating)s,
    %(review_count)s,
    %(latitude)s,
    %(longitude)s,
    %(sourdough_verified)s,
    %(sourdough_keywords)s,
    %(verification_sources)s,
    %(last_checked_at)s,
    NOW()
)
ON CONFLICT (identity_key) DO UPDATE SET
    name = EXCLUDED.name,
    address = COALESCE(NULLIF(EXCLUDED.address, ''), restaurants.address),
    zip_code = COALESCE(EXCLUDED.zip_code, restaurants.zip_code),
    phone = COALESCE(EXCLUDED.phone, restaurants.phone),
    website = COALESCE(EXCLUDED.website, restaurants.website),
    description = COALESCE(EXCLUDED.description, restaurants.description),
    categories = ARRAY(
        SELECT DISTINCT unnest(restaurants.categories || EXCLUDED.categories) ORDER BY 1
    ),
    rating = COALESCE(EXCLUDED.rating, restaurants.rating),
    review_count = COALESCE(EXCLUDED.review_count, restaurants.review_count),
    latitude = COALESCE(EXCLUDED.latitude, restaurants.latitude),
    longitude = COALESCE(EXCLUDED.longitude, restaurants.longitude),
    sourdough_verified = restaurants.sourdough_verified OR EXCLUDED.sourdough_verified,
    sourdough_keywords = ARRAY(
        SELECT DISTINCT unnest(restaurants.sourdough_keywords || EXCLUDED.sourdough_keywords) ORDER BY 1
    ),
    verification_sources = ARRAY(
        SELECT DISTINCT unnest(restaurants.verification_sources || EXCLUDED.verification_sources) ORDER BY 1
    ),
    last_checked_at = GREATEST(EXCLUDED.last_checked_at, restaurants.last_checked_at),
    updated_at = NOW()
RETURNING id;
"""


def _prepare_params(record: PersistedRecord) -> Dict[str, Any]:
    params = asdict(record)
    for key in ("categories", "sourdough_keywords", "verification_sources"):
        params[key] = sorted(set(params[key] or []))
    return params


def upsert_restaurant(record: PersistedRecord) -> Optional[str]:
    """Persist a restaurant by identity key, merging with any earlier record."""
    params = _prepare_params(record)
    if not params["identity_key"] or not params["name"]:
        raise ValueError("identity_key and name are required for upsert")
    if not params["city"] or not params["state"]:
        raise ValueError("city and state are required for upsert")

    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(_UPSERT_RESTAURANT, params)
            row = cur.fetchone()
        conn.commit()
    logger.debug("Upserted restaurant %s (%s)", params["name"], params["identity_key"])
    return str(row[0]) if row else None


_SELECT_COLUMNS = """
SELECT id, name, address, city, state, zip_code, phone, website, description,
       categories, rating, review_count, latitude, longitude, sourdough_verified,
       sourdough_keywords, verification_sources, last_checked_at
FROM restaurants
"""


def _fetch_all(sql: str, params: Any) -> List[Dict[str, Any]]:
    with get_connection() as conn:
        with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
            cur.execute(sql, params)
            rows = cur.fetchall()
        conn.rollback()
    return [_serialize(row) for row in rows]


def _serialize(row: Dict[str, Any]) -> Dict[str, Any]:
    record = dict(row)
    record["id"] = str(record["id"])
    if record.get("last_checked_at") is not None:
        record["last_checked_at"] = record["last_checked_at"].isoformat()
    return record


def get_restaurant(restaurant_id: str) -> Optional[Dict[str, Any]]:
    try:
        uuid.UUID(str(restaurant_id))
    except ValueError:
        return None
    rows = _fetch_all(_SELECT_COLUMNS + " WHERE id = %s::uuid", (str(restaurant_id),))
    return rows[0] if rows else None


def list_restaurants(
    city: Optional[str] = None,
    state: Optional[str] = None,
    verified_only: bool = False,
) -> List[Dict[str, Any]]:
    clauses = []
    params: List[Any] = []
    if city:
        clauses.append("lower(city) = lower(%s)")
        params.append(city)
    if state:
        clauses.append("lower(state) = lower(%s)")
        params.append(state)
    if verified_only:
        clauses.append("sourdough_verified")

    sql = _SELECT_COLUMNS
    if clauses:
        sql += " WHERE " + " AND ".join(clauses)
    sql += " ORDER BY state, city, name"
    return _fetch_all(sql, params)


def search_restaurants(query: str) -> List[Dict[str, Any]]:
    pattern = f"%{query.strip()}%"
    sql = (
        _SELECT_COLUMNS
        + " WHERE name ILIKE %s OR city ILIKE %s OR state ILIKE %s OR description ILIKE %s"
        + " ORDER BY name"
    )
    return _fetch_all(sql, (pattern, pattern, pattern, pattern))


def restaurants_in_bounds(north: float, south: float, east: float, west: float) -> List[Dict[str, Any]]:
    sql = (
        _SELECT_COLUMNS
        + " WHERE latitude BETWEEN %s AND %s AND longitude BETWEEN %s AND %s"
        + " AND latitude <> 0 AND longitude <> 0 ORDER BY name"
    )
    return _fetch_all(sql, (south, north, west, east))
