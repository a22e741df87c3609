"""Ad discovery API routes."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

from aiohttp import web

from infotavle.ads.discovery import AdDiscoveryEngine
from infotavle.ads.result_cache import ResultCache
from infotavle.core.health_tracker import HealthTracker
from infotavle.core.time_utils import serialize_iso

logger = logging.getLogger(__name__)


def register_ad_routes(
    app: web.Application,
    engine: AdDiscoveryEngine,
    caches: Mapping[str, ResultCache[Any]],
    health_tracker: HealthTracker,
    time_provider: Callable[[], Any],
) -> None:
    """Register ad discovery routes.

    Args:
        app: aiohttp web application
        engine: Discovery engine serving ``GET /api/ads``
        caches: Every cache flushed by ``POST /api/clear-cache``, by name
        health_tracker: Health tracking instance
        time_provider: Time provider callable
    """

    async def get_ads(_request: web.Request) -> web.Response:
        """Return the discovered rotating and static ads."""
        try:
            result, outcome = await engine.discover_with_outcome()
        except Exception:
            logger.exception("Error in ads route")
            return web.json_response(
                {
                    "error": "Failed to discover ads",
                    "rotating": [],
                    "static": [],
                    "lastDiscovered": serialize_iso(time_provider()),
                },
                status=500,
            )

        health_tracker.record_discovery(outcome.value, len(result.rotating), len(result.static))
        return web.json_response(result.to_api_dict())

    async def clear_cache(_request: web.Request) -> web.Response:
        """Flush every registered cache so the next request fetches fresh data."""
        try:
            for name, cache in caches.items():
                removed = cache.flush()
                logger.debug("Flushed %s cache (%d entries)", name, removed)
        except Exception as e:
            logger.exception("Error clearing cache")
            return web.json_response(
                {"success": False, "message": "Failed to clear cache", "error": str(e)},
                status=500,
            )

        logger.info("Cache cleared manually")
        return web.json_response(
            {
                "success": True,
                "message": "All caches cleared. Next API call will fetch fresh data.",
            }
        )

    app.router.add_get("/api/ads", get_ads)
    app.router.add_post("/api/clear-cache", clear_cache)

    logger.debug("Ad routes registered")
