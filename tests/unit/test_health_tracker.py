"""Unit tests for health_tracker module."""

import time

import pytest

from infotavle.core.health_tracker import (
    DISCOVERY_STALE_AFTER_SECONDS,
    HealthTracker,
    get_system_diagnostics,
)

pytestmark = pytest.mark.unit


class TestHealthTracker:
    """Tests for HealthTracker class."""

    def setup_method(self):
        """Set up test fixtures."""
        self.tracker = HealthTracker()

    def test_initial_state(self):
        """Should report ok before any discovery was requested."""
        status = self.tracker.get_health_status("2025-10-27T07:00:00.000Z")

        assert status.status == "ok"
        assert status.uptime_seconds >= 0
        assert status.rotating_count == 0
        assert status.last_discovery_outcome is None
        assert status.last_discovery_success_age_seconds is None

    def test_record_discovery_fresh(self):
        """Should record counts and success on a fresh discovery."""
        self.tracker.record_discovery("fresh", 5, 4)

        status = self.tracker.get_health_status("now")

        assert status.status == "ok"
        assert status.rotating_count == 5
        assert status.static_count == 4
        assert status.last_discovery_success_age_seconds is not None
        assert status.last_discovery_success_age_seconds < 60

    @pytest.mark.parametrize("outcome", ["stale", "empty"])
    def test_record_discovery_fallback_is_degraded(self, outcome):
        """Should be degraded when the last discovery had to fall back."""
        self.tracker.record_discovery("fresh", 5, 4)
        self.tracker.record_discovery(outcome, 5, 4)

        assert self.tracker.determine_overall_status() == "degraded"
        assert self.tracker.get_last_discovery_success_age_seconds() is not None

    def test_old_success_is_degraded(self):
        """Should be degraded when the last success is too old."""
        self.tracker.record_discovery("cached", 1, 0)
        self.tracker._last_discovery_success = time.time() - DISCOVERY_STALE_AFTER_SECONDS - 5

        assert self.tracker.determine_overall_status() == "degraded"

    def test_attempt_timestamp_recorded(self):
        before = time.time()

        self.tracker.record_discovery("empty", 0, 0)

        assert self.tracker.get_last_discovery_attempt_timestamp() >= before

    def test_as_dict_shape(self):
        self.tracker.record_discovery("fresh", 2, 1)

        data = self.tracker.as_dict("2025-10-27T07:00:00.000Z")

        assert data["status"] == "ok"
        assert data["timestamp"] == "2025-10-27T07:00:00.000Z"
        assert isinstance(data["pid"], int)
        assert data["discovery"]["rotating_count"] == 2
        assert data["discovery"]["static_count"] == 1
        assert data["discovery"]["last_outcome"] == "fresh"


class TestSystemDiagnostics:
    """Tests for get_system_diagnostics()."""

    def test_outside_event_loop(self):
        diag = get_system_diagnostics()

        assert diag.event_loop_running is False
        assert diag.python_version

    @pytest.mark.asyncio
    async def test_inside_event_loop(self):
        assert get_system_diagnostics().event_loop_running is True
