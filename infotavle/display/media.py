"""Media element descriptions and the sink interfaces the rotation host drives.

The rotation scheduler never touches a real display surface. It describes what
to show as ``MediaElementSpec`` values and the host hands those to a
``MediaSink`` (a browser bridge, a framebuffer renderer, or the logging sink
used by the headless client).
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Protocol
from urllib.parse import urlsplit


class MediaKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"


def media_kind_for(url: str) -> MediaKind:
    """Video if and only if the URL path ends in ``.mp4`` (case-insensitive)."""
    path = urlsplit(url).path
    return MediaKind.VIDEO if path.lower().endswith(".mp4") else MediaKind.IMAGE


@dataclass(frozen=True)
class MediaElementSpec:
    """What to mount in the ad container.

    Videos are muted, autoplaying, non-looping and inline. Advancing is driven
    by the duration timer only; a video reaching its end does not advance.
    """

    url: str
    kind: MediaKind
    muted: bool = False
    autoplay: bool = False
    loop: bool = False
    plays_inline: bool = False
    width: str = "100%"

    @property
    def is_video(self) -> bool:
        return self.kind is MediaKind.VIDEO


def build_media_element(request_url: str, source_url: str) -> MediaElementSpec:
    """Describe the element for ``request_url``; the kind is taken from ``source_url``.

    The kind is decided on the undecorated URL so a cache-busting query string
    can never change the dispatch.
    """
    kind = media_kind_for(source_url)
    if kind is MediaKind.VIDEO:
        return MediaElementSpec(
            url=request_url,
            kind=kind,
            muted=True,
            autoplay=True,
            loop=False,
            plays_inline=True,
        )
    return MediaElementSpec(url=request_url, kind=kind)


@dataclass(frozen=True)
class MediaLoadFailure:
    """A decode or network error reported by the sink for a mounted element."""

    display_seq: int
    url: str
    reason: str = ""


class MediaSink(Protocol):
    """The ad container."""

    def fade_out(self) -> None: ...

    def fade_in(self) -> None: ...

    def clear(self) -> None:
        """Remove mounted content, releasing decode resources of any video."""
        ...

    def mount(self, element: MediaElementSpec, on_error: Callable[[str], None]) -> None:
        """Mount ``element``; call ``on_error(reason)`` if it fails to load."""
        ...


class ProgressIndicator(Protocol):
    """Fill bar showing how much of the current ad's duration has elapsed."""

    def reset(self) -> None:
        """Jump to 0% with transitions disabled."""
        ...

    def flush_layout(self) -> None:
        """Force a synchronous layout pass so the reset is committed."""
        ...

    def animate(self, duration_ms: int) -> None:
        """Animate linearly from 0% to 100% over ``duration_ms``."""
        ...


def start_progress(indicator: ProgressIndicator, duration_ms: int) -> None:
    """Restart the progress bar for a new ad.

    The layout flush between reset and animate is what makes the reset
    visible; without it the two style changes collapse into one.
    """
    indicator.reset()
    indicator.flush_layout()
    indicator.animate(duration_ms)


class PreloadHandle(Protocol):
    kind: MediaKind

    def clear_source(self) -> None: ...

    def release(self) -> None: ...


class PreloadFactory(Protocol):
    def create_preload(self, element: MediaElementSpec) -> PreloadHandle: ...
