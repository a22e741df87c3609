"""Periodic refresh of the ad lists on the display client.

Every ``update_interval_seconds`` (10 minutes by default) the client fetches
``/api/ads`` from the ad server, hands the rotating list to the rotation host
and the static slot URLs to the static-slot callback. The rotation itself is
never interrupted by a refresh; a failed refresh leaves the current content in
place until the next interval.
"""

from __future__ import annotations

import asyncio
import contextlib
import datetime
import logging
import signal
from collections.abc import Callable
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from infotavle.ads.models import DiscoveryResult
from infotavle.core.http_client import close_all_clients, get_shared_client
from infotavle.core.logging_setup import configure_logging
from infotavle.core.settings import DisplaySettings, load_display_settings
from infotavle.core.time_utils import now_local

from .cache_busting import CacheBustingPolicy
from .host import RotationHost
from .preload import PreloadManager
from .rotation import RotationScheduler
from .sinks import HttpPreloadFactory, LoggingMediaSink, LoggingProgressIndicator

logger = logging.getLogger(__name__)

StaticAdsCallback = Callable[[list[str]], None]

# A cold discovery on the server probes slot by slot and can take a while
ADS_FETCH_TIMEOUT_SECONDS = 60.0


def _fill_missing_durations(payload: Any, default_duration_ms: int) -> Any:
    """Give rotating entries sent without a duration the configured default."""
    if not isinstance(payload, dict) or not isinstance(payload.get("rotating"), list):
        return payload
    rotating = [
        dict(entry, duration=entry.get("duration") or default_duration_ms)
        if isinstance(entry, dict)
        else entry
        for entry in payload["rotating"]
    ]
    return {**payload, "rotating": rotating}


class UpdateManager:
    """Polls the ad server and feeds the rotation host."""

    def __init__(
        self,
        host: RotationHost,
        client: httpx.AsyncClient,
        settings: Optional[DisplaySettings] = None,
        on_static_ads: Optional[StaticAdsCallback] = None,
        clock: Callable[[], datetime.datetime] = now_local,
    ):
        self.host = host
        self.client = client
        self.settings = settings or DisplaySettings()
        self.on_static_ads = on_static_ads
        self._clock = clock
        self._busting = CacheBustingPolicy()

    @property
    def ads_url(self) -> str:
        return f"{self.settings.server_url.rstrip('/')}/api/ads"

    async def fetch_ads(self) -> DiscoveryResult:
        """Fetch and validate the discovery result from the ad server.

        Raises:
            httpx.HTTPError: If the request fails
            ValidationError: If the payload does not match the expected shape
        """
        response = await self.client.get(self.ads_url, timeout=ADS_FETCH_TIMEOUT_SECONDS)
        if response.status_code >= 500:
            # The server still sends empty lists on failure; surface its error text
            logger.warning(
                "Ad server reported an error: %s", response.json().get("error", response.status_code)
            )
        else:
            response.raise_for_status()
        payload = _fill_missing_durations(response.json(), self.settings.default_ad_duration_ms)
        return DiscoveryResult.model_validate(payload)

    async def update(self) -> bool:
        """Run one refresh cycle.

        Returns:
            True if the ad lists were fetched, False if the cycle failed
        """
        timestamp = self._clock().strftime("%Y-%m-%d %H:%M:%S")
        logger.info("[%s] Updating ads...", timestamp)

        try:
            result = await self.fetch_ads()
        except (httpx.HTTPError, ValidationError, ValueError) as e:
            logger.error("[%s] Update failed: %s", timestamp, e)
            return False

        self.host.load(result.rotating)

        if self.on_static_ads is not None and result.static:
            # Static slots are always refreshed with a cache-busting suffix
            now = self._clock()
            urls = [self._busting.apply(url, now, force=True) for url in result.static]
            self.on_static_ads(urls)
            logger.info("Updated %d static ads", len(urls))

        logger.info("[%s] Update complete", timestamp)
        return True

    async def run(self, stop_event: asyncio.Event) -> None:
        """Refresh immediately, then every interval until ``stop_event`` is set."""
        interval = self.settings.update_interval_seconds
        logger.info("Update manager started (updates every %.0f minutes)", interval / 60)

        while not stop_event.is_set():
            await self.update()
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(stop_event.wait(), timeout=interval)

        logger.info("Update manager stopped")


async def run_display_client(cfg: dict[str, Any]) -> None:
    """Run the headless display client until SIGINT/SIGTERM."""
    configure_logging(debug_mode=bool(cfg.get("debug_logging", False)))
    settings = load_display_settings(cfg)

    client = await get_shared_client("display")
    sink = LoggingMediaSink()
    host = RotationHost(
        RotationScheduler(settings),
        sink,
        LoggingProgressIndicator(),
        PreloadManager(HttpPreloadFactory(client)),
    )

    def _log_static(urls: list[str]) -> None:
        for i, url in enumerate(urls, start=1):
            logger.debug("Static slot %d -> %s", i, url)

    manager = UpdateManager(host, client, settings, on_static_ads=_log_static)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def _on_signal() -> None:
        logger.info("Shutdown signal received")
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, _on_signal)

    try:
        await manager.run(stop_event)
    finally:
        host.stop()
        host.preloader.dispose()
        await close_all_clients()
