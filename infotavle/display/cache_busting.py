"""Cache-busting policy for ad requests.

Outside a fixed daily quiet window every request gets a ``t=<epoch ms>`` query
parameter so replaced files on the asset server show up without waiting for
browser or proxy caches. Inside the window (08:00-14:00 local time by
default) ads are requested with their bare URL.
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass

from infotavle.core.time_utils import to_epoch_ms


@dataclass(frozen=True)
class CacheBustingPolicy:
    quiet_start_hour: int = 8
    quiet_end_hour: int = 14

    def in_quiet_window(self, now: datetime.datetime) -> bool:
        return self.quiet_start_hour <= now.hour < self.quiet_end_hour

    def apply(self, url: str, now: datetime.datetime, force: bool = False) -> str:
        """Return the URL to request at ``now``.

        Args:
            url: Bare asset URL
            now: Local wall-clock time
            force: Bust even inside the quiet window
        """
        if not force and self.in_quiet_window(now):
            return url
        separator = "&" if "?" in url else "?"
        return f"{url}{separator}t={to_epoch_ms(now)}"


DEFAULT_POLICY = CacheBustingPolicy()


def cache_busted_url(url: str, now: datetime.datetime) -> str:
    return DEFAULT_POLICY.apply(url, now)
