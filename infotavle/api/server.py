"""infotavle.api.server - asyncio HTTP server for the ad discovery engine.

This module:
- builds the aiohttp application (ad routes, health route, correlation IDs)
- owns the discovery engine and its result cache for the process lifetime
- runs until SIGINT/SIGTERM and closes the shared HTTP clients on the way out

Endpoints: GET /api/ads, POST /api/clear-cache, GET /health.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import signal
from collections.abc import Callable, Mapping
from typing import Any, Optional

from aiohttp import web

from infotavle.ads.discovery import AdDiscoveryEngine
from infotavle.ads.result_cache import ResultCache
from infotavle.api.routes import register_ad_routes, register_health_routes
from infotavle.core.config_manager import get_config_value
from infotavle.core.health_tracker import HealthTracker
from infotavle.core.http_client import close_all_clients
from infotavle.core.logging_setup import configure_logging
from infotavle.core.settings import load_ad_server_settings
from infotavle.core.time_utils import now_utc
from infotavle.middleware import correlation_id_middleware

logger = logging.getLogger(__name__)

DEFAULT_PORT = 3000
MAX_PORT_ATTEMPTS = 10


@web.middleware
async def error_middleware(
    request: web.Request, handler: Callable[[web.Request], Any]
) -> web.StreamResponse:
    """Turn unhandled exceptions into a JSON 500 instead of aiohttp's text page."""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except Exception as e:
        logger.exception("Server error on %s %s", request.method, request.path)
        return web.json_response(
            {"error": "Internal server error", "message": str(e)}, status=500
        )


def make_app(
    engine: AdDiscoveryEngine,
    health_tracker: Optional[HealthTracker] = None,
    extra_caches: Optional[Mapping[str, ResultCache[Any]]] = None,
    time_provider: Callable[[], Any] = now_utc,
) -> web.Application:
    """Create the aiohttp application.

    Args:
        engine: Discovery engine backing ``/api/ads``
        health_tracker: Health tracker (a new one when omitted)
        extra_caches: Sibling caches (e.g. a calendar feed cache) flushed by
            ``/api/clear-cache`` together with the ad discovery cache
        time_provider: Clock used for response timestamps
    """
    app = web.Application(middlewares=[correlation_id_middleware, error_middleware])
    tracker = health_tracker or HealthTracker()

    caches: dict[str, ResultCache[Any]] = {"ads": engine.cache}
    if extra_caches:
        caches.update(extra_caches)

    register_ad_routes(app, engine, caches, tracker, time_provider)
    register_health_routes(app, tracker, time_provider)

    async def _shutdown(_app: web.Application) -> None:
        logger.info("Application shutdown requested")

    app.on_shutdown.append(_shutdown)
    return app


async def _start_site(runner: web.AppRunner, host: str, configured_port: int) -> int:
    """Bind to the configured port, or the next free one within MAX_PORT_ATTEMPTS.

    Returns:
        The port actually bound

    Raises:
        RuntimeError: If every port in the range is in use
    """
    for port_offset in range(MAX_PORT_ATTEMPTS):
        port = configured_port + port_offset
        site = web.TCPSite(runner, host=host, port=port)
        try:
            await site.start()
        except OSError as e:
            if "address already in use" not in str(e).lower():
                logger.exception("Failed to start server on %s:%d", host, port)
                raise
            logger.debug("Port %d in use, trying next port", port)
            continue

        if port != configured_port:
            logger.warning(
                "Configured port %d was in use, using port %d instead", configured_port, port
            )
        return port

    last_port = configured_port + MAX_PORT_ATTEMPTS - 1
    logger.error("Could not find available port in range %d-%d", configured_port, last_port)
    raise RuntimeError(f"No available port found in range {configured_port}-{last_port}")


async def _serve(config: dict[str, Any], external_stop_event: asyncio.Event | None = None) -> None:
    """Run the server until signalled to stop.

    Args:
        config: Server configuration dict.
        external_stop_event: Optional event to signal shutdown. If provided,
            signal handlers are not registered (caller owns signal handling).
    """
    settings = load_ad_server_settings(config)
    engine = AdDiscoveryEngine(settings)
    stop_event = external_stop_event or asyncio.Event()

    app = make_app(engine)
    runner = web.AppRunner(app)
    await runner.setup()

    host = get_config_value(config, "server_bind", "0.0.0.0")  # nosec B104 - kiosk LAN bind
    configured_port = int(get_config_value(config, "server_port", DEFAULT_PORT))
    port = await _start_site(runner, host, configured_port)

    logger.info("=================================")
    logger.info("Infotavle ad server started on %s:%d (pid %d)", host, port, os.getpid())
    logger.info("Asset server: %s", settings.base_url)
    logger.info("Endpoints: GET /api/ads, POST /api/clear-cache, GET /health")
    logger.info("=================================")

    if external_stop_event is None:
        loop = asyncio.get_running_loop()

        def _on_signal() -> None:
            logger.info("Shutdown signal received")
            stop_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, _on_signal)
    else:
        logger.debug("Using external stop event - skipping signal handler registration")

    await stop_event.wait()
    logger.info("Stop event received, shutting down")

    await runner.cleanup()

    try:
        await close_all_clients()
    except Exception as e:
        logger.warning("Error cleaning up shared HTTP clients: %s", e)

    logger.info("Server shutdown complete")


def start_server(config: dict[str, Any]) -> None:
    """Start the asyncio event loop and HTTP server.

    Args:
        config: dict with keys:
            - ad_server_url: asset server base URL (required)
            - server_bind: host to bind (str, default 0.0.0.0)
            - server_port: port (int, default 3000)
            - debug_logging: enable debug logging (bool)
            - discovery options understood by ``load_ad_server_settings``

    Blocks until a SIGINT/SIGTERM is received.
    """
    configure_logging(debug_mode=bool(get_config_value(config, "debug_logging", False)))

    try:
        asyncio.run(_serve(config))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
