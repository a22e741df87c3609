"""Preloading of the next ad."""

from __future__ import annotations

import logging
from typing import Optional

from infotavle.ads.models import RotatingAdEntry

from .media import MediaKind, PreloadFactory, PreloadHandle, build_media_element

logger = logging.getLogger(__name__)


class PreloadManager:
    """Owns at most one preloaded media handle.

    Preloading is a hint to the fetch/decode layer: the scheduler never waits
    for it before advancing.
    """

    def __init__(self, factory: PreloadFactory):
        self.factory = factory
        self._handle: Optional[PreloadHandle] = None

    @property
    def handle(self) -> Optional[PreloadHandle]:
        return self._handle

    def preload(self, entry: RotatingAdEntry, request_url: str) -> PreloadHandle:
        """Dispose the previous handle, then start preloading ``entry``."""
        self.dispose()
        element = build_media_element(request_url, entry.url)
        self._handle = self.factory.create_preload(element)
        logger.debug("Preloading %s (%s)", entry.file_name, element.kind.value)
        return self._handle

    def dispose(self) -> None:
        handle, self._handle = self._handle, None
        if handle is None:
            return
        if handle.kind is MediaKind.VIDEO:
            # Dropping the reference alone keeps the decoder buffers alive
            handle.clear_source()
        handle.release()
