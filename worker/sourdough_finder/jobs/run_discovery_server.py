"""HTTP entrypoint: trigger discovery runs and serve the restaurant directory as JSON."""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import Any, Dict

from flask import Flask, jsonify, request

from sourdough_finder.core import db
from sourdough_finder.core.config import get_settings
from sourdough_finder.jobs.run_discovery import DiscoveryPipeline

# ---------- Logging ----------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

# ---------- App & executor ----------
app = Flask(__name__)
# one run at a time keeps upstream request spacing meaningful
_executor = ThreadPoolExecutor(max_workers=1)

# ---------- Routes ----------


@app.get("/")
def root() -> Any:
    return "ok", 200


@app.get("/healthz")
def healthcheck() -> Any:
    """Lightweight health endpoint; reads settings only, never touches the database."""
    settings = get_settings()
    return (
        jsonify(
            {
                "status": "ok",
                "worker_port_config": getattr(settings, "worker_port", None),
                "outscraper_configured": bool(settings.outscraper_api_key),
                "revision": os.getenv("K_REVISION", "unknown"),
            }
        ),
        200,
    )


@app.post("/discover")
def enqueue_discovery() -> Any:
    """
    Enqueue a discovery run.
    Required JSON fields: city, state
    Optional: persist_unverified (bool)
    """
    payload: Dict[str, Any] = request.get_json(silent=True) or {}

    required = ("city", "state")
    missing = [f for f in required if not str(payload.get(f) or "").strip()]
    if missing:
        return jsonify({"error": f"missing fields: {', '.join(missing)}"}), 400

    job_args = dict(
        city=str(payload["city"]).strip(),
        state=str(payload["state"]).strip(),
        persist_unverified=payload.get("persist_unverified"),
    )
    if job_args["persist_unverified"] is not None and not isinstance(job_args["persist_unverified"], bool):
        return jsonify({"error": "persist_unverified must be a boolean"}), 400

    logger.info("Queueing discovery job: %s", job_args)
    _executor.submit(_run_job_safe, job_args)

    return jsonify({"data": {"status": "queued", "city": job_args["city"], "state": job_args["state"]}}), 202


@app.get("/api/restaurants")
def list_restaurants() -> Any:
    verified = request.args.get("verified", "").lower() in {"1", "true", "yes"}
    try:
        rows = db.list_restaurants(
            city=request.args.get("city") or None,
            state=request.args.get("state") or None,
            verified_only=verified,
        )
    except Exception as exc:  # noqa: BLE001
        logger.exception("Failed to list restaurants: %s", exc)
        return jsonify({"error": "failed to fetch restaurants"}), 500
    return jsonify({"data": rows}), 200


@app.get("/api/restaurants/search")
def search_restaurants() -> Any:
    query = (request.args.get("q") or "").strip()
    if not query:
        return jsonify({"error": "q is required"}), 400
    try:
        rows = db.search_restaurants(query)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Failed to search restaurants: %s", exc)
        return jsonify({"error": "failed to search restaurants"}), 500
    return jsonify({"data": rows}), 200


@app.get("/api/restaurants/in-bounds")
def restaurants_in_bounds() -> Any:
    try:
        bounds = {key: float(request.args[key]) for key in ("north", "south", "east", "west")}
    except (KeyError, ValueError):
        return jsonify({"error": "north, south, east and west must be numeric"}), 400
    if bounds["south"] > bounds["north"]:
        return jsonify({"error": "south must not exceed north"}), 400
    try:
        rows = db.restaurants_in_bounds(**bounds)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Failed to fetch restaurants in bounds: %s", exc)
        return jsonify({"error": "failed to fetch restaurants"}), 500
    return jsonify({"data": rows}), 200


@app.get("/api/restaurants/<restaurant_id>")
def get_restaurant(restaurant_id: str) -> Any:
    try:
        row = db.get_restaurant(restaurant_id)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Failed to fetch restaurant %s: %s", restaurant_id, exc)
        return jsonify({"error": "failed to fetch restaurant"}), 500
    if row is None:
        return jsonify({"error": "restaurant not found"}), 404
    return jsonify({"data": row}), 200


# ---------- Internals ----------


def _run_job_safe(job_args: Dict[str, Any]) -> None:
    settings = get_settings()
    strategy = settings.strategy
    if job_args.get("persist_unverified") is not None:
        strategy = replace(strategy, persist_unverified=job_args["persist_unverified"])

    try:
        pipeline = DiscoveryPipeline(settings)
        try:
            summary = pipeline.run(job_args["city"], job_args["state"], strategy)
        finally:
            pipeline.close()
        logger.info("Discovery job finished: %s", summary.to_dict())
    except Exception as exc:  # noqa: BLE001
        logger.exception("Discovery job failed: %s", exc)


def main() -> None:
    """Cloud Run injects PORT; fall back to WORKER_PORT locally."""
    env_port = os.getenv("PORT")
    port = int(env_port or get_settings().worker_port)
    logger.info("[BOOT] Binding on 0.0.0.0:%d", port)
    app.run(host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
