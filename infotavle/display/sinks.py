"""Headless sink implementations used by ``python -m infotavle display``.

The logging sink records what a screen would show, which is enough to verify
rotation timing on a host without a display. Preloading is real: the next ad
is fetched over HTTP so intermediate caches are warm when it comes up.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Optional

import httpx

from .media import MediaElementSpec, MediaKind

logger = logging.getLogger(__name__)


class LoggingMediaSink:
    """Media sink that logs container changes."""

    def __init__(self) -> None:
        self.mounted: Optional[MediaElementSpec] = None
        self.opacity = 1.0

    def fade_out(self) -> None:
        self.opacity = 0.0

    def fade_in(self) -> None:
        self.opacity = 1.0

    def clear(self) -> None:
        if self.mounted is not None and self.mounted.is_video:
            logger.debug("Releasing video %s", self.mounted.url)
        self.mounted = None

    def mount(self, element: MediaElementSpec, on_error: Callable[[str], None]) -> None:
        self.mounted = element
        logger.info("Mounted %s %s", element.kind.value, element.url)


class LoggingProgressIndicator:
    def __init__(self) -> None:
        self.width_percent = 0
        self.transition_ms: Optional[int] = None

    def reset(self) -> None:
        self.transition_ms = None
        self.width_percent = 0

    def flush_layout(self) -> None:
        pass

    def animate(self, duration_ms: int) -> None:
        self.transition_ms = duration_ms
        self.width_percent = 100
        logger.debug("Progress bar running for %.1fs", duration_ms / 1000)


class HttpPreloadHandle:
    """A background GET of the next ad."""

    def __init__(self, kind: MediaKind, task: asyncio.Task[None]):
        self.kind = kind
        self.task = task

    def clear_source(self) -> None:
        if not self.task.done():
            self.task.cancel()

    def release(self) -> None:
        # A superseded preload must not keep the connection busy
        if not self.task.done():
            self.task.cancel()


class HttpPreloadFactory:
    """Preloads by streaming the asset and discarding the bytes."""

    def __init__(self, client: httpx.AsyncClient, timeout: float = 30.0):
        self.client = client
        self.timeout = timeout

    def create_preload(self, element: MediaElementSpec) -> HttpPreloadHandle:
        task = asyncio.get_running_loop().create_task(self._fetch(element.url))
        return HttpPreloadHandle(element.kind, task)

    async def _fetch(self, url: str) -> None:
        try:
            async with self.client.stream("GET", url, timeout=self.timeout) as response:
                async for _chunk in response.aiter_bytes():
                    pass
            logger.debug("Preloaded %s (%d)", url, response.status_code)
        except httpx.HTTPError as e:
            # The display itself will report the failure if it persists
            logger.debug("Preload of %s failed: %s", url, e)
