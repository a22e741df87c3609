"""Health check route."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from aiohttp import web

from infotavle.core.health_tracker import HealthTracker, get_system_diagnostics
from infotavle.core.time_utils import serialize_iso

logger = logging.getLogger(__name__)


def register_health_routes(
    app: web.Application,
    health_tracker: HealthTracker,
    time_provider: Callable[[], Any],
) -> None:
    """Register ``GET /health``.

    Args:
        app: aiohttp web application
        health_tracker: Health tracking instance
        time_provider: Time provider callable
    """

    async def health_check(_request: web.Request) -> web.Response:
        """Report uptime and the state of the last discovery."""
        data = health_tracker.as_dict(serialize_iso(time_provider()))
        diag = get_system_diagnostics()
        data["system_diagnostics"] = {
            "platform": diag.platform,
            "python_version": diag.python_version,
            "event_loop_running": diag.event_loop_running,
        }
        # Degraded still answers 200: the display keeps running on cached ads
        return web.json_response(data)

    app.router.add_get("/health", health_check)

    logger.debug("Health routes registered")
