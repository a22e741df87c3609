"""Health tracking and monitoring for the infotavle ad server."""

from __future__ import annotations

import os
import time
from dataclasses import dataclass
from typing import Any, Optional


@dataclass
class HealthStatus:
    """Health status information for the server."""

    status: str  # "ok" or "degraded"
    server_time_iso: str
    uptime_seconds: int
    pid: int
    rotating_count: int
    static_count: int
    last_discovery_outcome: Optional[str]
    last_discovery_success_age_seconds: Optional[int]


@dataclass
class SystemDiagnostics:
    """System diagnostics information."""

    platform: str
    python_version: str
    event_loop_running: bool


# A display polls every 10 minutes; two missed cycles means something is off
DISCOVERY_STALE_AFTER_SECONDS = 1800


class HealthTracker:
    """In-memory health tracking for server monitoring."""

    def __init__(self) -> None:
        self._start_time: float = time.time()
        self._last_discovery_attempt: Optional[float] = None
        self._last_discovery_success: Optional[float] = None
        self._last_discovery_outcome: Optional[str] = None
        self._rotating_count: int = 0
        self._static_count: int = 0

    def record_discovery(
        self, outcome: str, rotating_count: int, static_count: int
    ) -> None:
        """Record the result of a discovery request.

        Args:
            outcome: Discovery outcome value ("fresh", "cached", "stale" or "empty")
            rotating_count: Number of rotating ads served
            static_count: Number of static ads served
        """
        now = time.time()
        self._last_discovery_attempt = now
        self._last_discovery_outcome = outcome
        if outcome in ("fresh", "cached"):
            self._last_discovery_success = now
        self._rotating_count = rotating_count
        self._static_count = static_count

    def get_uptime_seconds(self) -> int:
        """Get server uptime in seconds."""
        return int(time.time() - self._start_time)

    def get_last_discovery_success_age_seconds(self) -> Optional[int]:
        """Seconds since the last fresh or cached discovery, or None if never."""
        if self._last_discovery_success is None:
            return None
        return int(time.time() - self._last_discovery_success)

    def get_last_discovery_attempt_timestamp(self) -> Optional[float]:
        return self._last_discovery_attempt

    def determine_overall_status(self) -> str:
        """Determine overall health status.

        Returns:
            "ok" or "degraded"
        """
        if self._last_discovery_attempt is None:
            # Nobody asked yet; the server itself is fine
            return "ok"

        if self._last_discovery_outcome in ("stale", "empty"):
            return "degraded"

        age = self.get_last_discovery_success_age_seconds()
        if age is not None and age > DISCOVERY_STALE_AFTER_SECONDS:
            return "degraded"

        return "ok"

    def get_health_status(self, current_time_iso: str) -> HealthStatus:
        """Get comprehensive health status.

        Args:
            current_time_iso: Current time in ISO format

        Returns:
            HealthStatus object with all health information
        """
        return HealthStatus(
            status=self.determine_overall_status(),
            server_time_iso=current_time_iso,
            uptime_seconds=self.get_uptime_seconds(),
            pid=os.getpid(),
            rotating_count=self._rotating_count,
            static_count=self._static_count,
            last_discovery_outcome=self._last_discovery_outcome,
            last_discovery_success_age_seconds=self.get_last_discovery_success_age_seconds(),
        )

    def as_dict(self, current_time_iso: str) -> dict[str, Any]:
        status = self.get_health_status(current_time_iso)
        return {
            "status": status.status,
            "uptime": status.uptime_seconds,
            "timestamp": status.server_time_iso,
            "pid": status.pid,
            "discovery": {
                "rotating_count": status.rotating_count,
                "static_count": status.static_count,
                "last_outcome": status.last_discovery_outcome,
                "last_success_age_s": status.last_discovery_success_age_seconds,
            },
        }


def get_system_diagnostics() -> SystemDiagnostics:
    """Get system diagnostics information.

    Returns:
        SystemDiagnostics with platform and runtime information
    """
    import asyncio
    import platform
    import sys

    event_loop_running = False
    try:
        asyncio.get_running_loop()
        event_loop_running = True
    except RuntimeError:
        pass

    return SystemDiagnostics(
        platform=platform.platform(),
        python_version=sys.version.split()[0],
        event_loop_running=event_loop_running,
    )
