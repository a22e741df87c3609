"""Ad discovery against the remote asset server.

Assets follow a numbered naming convention on the asset server::

    rotating-001.png, rotating-002.mp4, ...   (rotating ads, shown in turn)
    static-001.png ... static-004.png         (fixed slots around the calendar)

Discovery probes slot by slot with HEAD requests, trying each configured
extension in priority order, and merges the per-slot durations from the
optional ``ad-durations.txt`` manifest. Results are cached for the discovery
TTL and kept past expiry as a fallback for asset-server outages.

Rotating enumeration stops after ``max_consecutive_misses`` absent slots in a
row. Short gaps are tolerated: with the default threshold of 3, a layout of
001, 002 and 005 still finds 005, while missing 003, 004 and 005 means
``rotating-006`` is never probed.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import httpx

from infotavle.core.http_client import (
    get_shared_client,
    record_client_error,
    record_client_success,
)
from infotavle.core.settings import AdServerSettings

from .durations import DirectiveFetchResult, fetch_duration_directives
from .exceptions import UpstreamUnavailableError
from .models import (
    AssetSeries,
    AssetSlot,
    DiscoveredAsset,
    DiscoveryOutcome,
    DiscoveryResult,
    DurationDirectiveMap,
    RotatingAdEntry,
)
from .probe import AssetProbe
from .result_cache import DISCOVERY_CACHE_KEY, ResultCache

logger = logging.getLogger(__name__)

SHARED_CLIENT_ID = "asset_probe"


def merge_durations(
    assets: list[DiscoveredAsset],
    directives: DurationDirectiveMap,
    default_duration_ms: int,
) -> list[RotatingAdEntry]:
    """Attach a duration to every discovered rotating asset, preserving slot order."""
    entries = []
    for asset in assets:
        duration = directives.get(asset.slot.slot_id) or default_duration_ms
        entries.append(RotatingAdEntry(url=asset.url, duration=duration))
    return entries


class AdDiscoveryEngine:
    """Builds and caches ``DiscoveryResult`` objects.

    The engine owns its ``ResultCache``; administrative flushes go through
    ``flush_cache()`` (or the ``cache`` attribute handed to the clear-cache
    route) rather than any module-level state.
    """

    def __init__(
        self,
        settings: AdServerSettings,
        client: Optional[httpx.AsyncClient] = None,
        cache: Optional[ResultCache[DiscoveryResult]] = None,
    ):
        """Initialize the engine.

        Args:
            settings: Asset server options
            client: HTTP client to probe with; the shared pooled client is used when omitted
            cache: Result cache; a fresh one with the configured TTL is created when omitted
        """
        self.settings = settings
        self._client = client
        self.cache: ResultCache[DiscoveryResult] = cache or ResultCache(
            settings.discovery_ttl_seconds
        )

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        return await get_shared_client(SHARED_CLIENT_ID)

    async def _probe_slot(
        self, probe: AssetProbe, slot: AssetSlot, prefix: str
    ) -> Optional[DiscoveredAsset]:
        """Try each extension in priority order; the first present one wins the slot."""
        for url in slot.candidate_urls(self.settings.base_url, prefix, self.settings.extensions):
            if await probe.exists(url):
                return DiscoveredAsset(slot=slot, url=url)
        return None

    async def discover_rotating(self, probe: AssetProbe) -> list[DiscoveredAsset]:
        """Enumerate rotating slots in order until the ceiling or a run of misses."""
        found: list[DiscoveredAsset] = []
        consecutive_misses = 0
        threshold = self.settings.max_consecutive_misses

        for number in range(1, self.settings.max_rotating_ads + 1):
            slot = AssetSlot(AssetSeries.ROTATING, number)
            asset = await self._probe_slot(probe, slot, self.settings.rotating_prefix)

            if asset is not None:
                found.append(asset)
                consecutive_misses = 0
                logger.debug("Found rotating ad: %s", asset.url.rsplit("/", 1)[-1])
                continue

            consecutive_misses += 1
            if consecutive_misses >= threshold:
                logger.debug(
                    "Stopped rotating ad discovery at slot %s after %d consecutive misses",
                    slot.slot_id,
                    consecutive_misses,
                )
                break

        return found

    async def discover_static(self, probe: AssetProbe) -> list[str]:
        """Probe the fixed static slots; missing slots are skipped."""
        urls: list[str] = []

        for number in range(1, self.settings.static_count + 1):
            slot = AssetSlot(AssetSeries.STATIC, number)
            asset = await self._probe_slot(probe, slot, self.settings.static_prefix)
            if asset is None:
                logger.debug("Static ad %s not found, display will keep its placeholder", slot.slot_id)
                continue
            urls.append(asset.url)
            logger.debug("Found static ad: %s", asset.url.rsplit("/", 1)[-1])

        return urls

    async def _run_discovery(self) -> DiscoveryResult:
        """Run the three lookups concurrently and assemble the result.

        Raises:
            UpstreamUnavailableError: If any lookup fails as a whole
        """
        try:
            client = await self._get_client()
            # Separate probes so each lookup paces its own sequential requests
            rotating_probe = AssetProbe(client, self.settings.probe_timeout_seconds)
            static_probe = AssetProbe(client, self.settings.probe_timeout_seconds)

            rotating_assets, static_urls, directives = await asyncio.gather(
                self.discover_rotating(rotating_probe),
                self.discover_static(static_probe),
                fetch_duration_directives(
                    client,
                    self.settings.base_url,
                    self.settings.durations_filename,
                    self.settings.probe_timeout_seconds,
                ),
            )
        except Exception as e:
            raise UpstreamUnavailableError(f"Ad discovery failed: {e}") from e

        await self._record_client_health(rotating_probe, static_probe, directives)

        rotating = merge_durations(
            rotating_assets, directives.directives, self.settings.default_ad_duration_ms
        )
        return DiscoveryResult(rotating=rotating, static=static_urls)

    async def _record_client_health(
        self,
        rotating_probe: AssetProbe,
        static_probe: AssetProbe,
        directives: DirectiveFetchResult,
    ) -> None:
        if self._client is not None:
            return
        unreachable = rotating_probe.unreachable_count + static_probe.unreachable_count
        if unreachable:
            logger.warning("%d probe(s) could not reach the asset server", unreachable)
            await record_client_error(SHARED_CLIENT_ID)
        else:
            await record_client_success(SHARED_CLIENT_ID)

    async def discover_with_outcome(self) -> tuple[DiscoveryResult, DiscoveryOutcome]:
        """Return the current discovery result and where it came from.

        Never raises: failures fall back to the last cached result (even if
        expired), then to an empty result.
        """
        cached = self.cache.get(DISCOVERY_CACHE_KEY)
        if cached is not None:
            logger.debug("Returning cached ad discovery data")
            return cached, DiscoveryOutcome.CACHED

        logger.info("Discovering ads from %s", self.settings.base_url)

        try:
            result = await self._run_discovery()
        except UpstreamUnavailableError as e:
            logger.error("Error discovering ads: %s", e)
            stale = self.cache.get_stale(DISCOVERY_CACHE_KEY)
            if stale is not None:
                logger.warning("Returning expired cached ad data due to error")
                return stale, DiscoveryOutcome.STALE
            return DiscoveryResult.empty(), DiscoveryOutcome.EMPTY

        self.cache.set(DISCOVERY_CACHE_KEY, result)
        logger.info(
            "Discovered %d rotating ads and %d static ads",
            len(result.rotating),
            len(result.static),
        )
        return result, DiscoveryOutcome.FRESH

    async def discover(self) -> DiscoveryResult:
        result, _outcome = await self.discover_with_outcome()
        return result

    def flush_cache(self) -> int:
        """Drop the cached result so the next ``discover()`` probes again."""
        return self.cache.flush()
