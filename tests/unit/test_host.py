"""Tests for RotationHost timer handling, driven by virtual timers."""

import pytest

from infotavle.ads.models import RotatingAdEntry
from infotavle.core.settings import DisplaySettings
from infotavle.display.host import RotationHost
from infotavle.display.media import MediaLoadFailure
from infotavle.display.preload import PreloadManager
from infotavle.display.rotation import RotationPhase, RotationScheduler, TimerRole

pytestmark = pytest.mark.unit

AD_A = RotatingAdEntry(url="http://a/rotating-001.png", duration=3000)
AD_B = RotatingAdEntry(url="http://a/rotating-002.mp4", duration=5000)
AD_C = RotatingAdEntry(url="http://a/rotating-003.png", duration=4000)


@pytest.fixture
def host(virtual_timers, recording_sink, recording_progress, preload_factory) -> RotationHost:
    return RotationHost(
        RotationScheduler(DisplaySettings()),
        recording_sink,
        recording_progress,
        PreloadManager(preload_factory),
        timers=virtual_timers,
        clock=virtual_timers.clock,
    )


class TestRotationTiming:
    """Chained advance timers and the fade swap."""

    def test_load_starts_progress_and_fades_out_before_mount(self, host, recording_sink, recording_progress):
        host.load([AD_A, AD_B])

        assert recording_sink.events == [("fade_out",)]
        assert recording_progress.events == [("reset",), ("flush_layout",), ("animate", 3000)]
        assert host.state.phase is RotationPhase.TRANSITIONING

    def test_swap_after_fade_mounts_element(self, host, virtual_timers, recording_sink):
        host.load([AD_A, AD_B])

        virtual_timers.advance(499)
        assert recording_sink.mounted_urls == []

        virtual_timers.advance(1)
        assert recording_sink.events == [("fade_out",), ("clear",), ("mount", AD_A.url), ("fade_in",)]
        assert host.state.phase is RotationPhase.PLAYING

    def test_each_ad_shows_for_its_own_duration(self, host, virtual_timers, recording_sink):
        host.load([AD_A, AD_B])

        virtual_timers.advance(2999)
        assert host.state.current_index == 0

        virtual_timers.advance(1)
        assert host.state.current_index == 1

        virtual_timers.advance(4999)
        assert host.state.current_index == 1

        virtual_timers.advance(1)
        assert host.state.current_index == 0
        assert host.state.display_seq == 3

        virtual_timers.advance(500)
        assert recording_sink.mounted_urls == [AD_A.url, AD_B.url, AD_A.url]


class TestMediaErrorRecovery:
    """Skipping failed media without double-advancing."""

    def test_error_at_one_second_skips_once(
        self, host, virtual_timers, recording_sink, recording_progress
    ):
        """[3000, 5000] ms with an error on the first ad at t=1000."""
        host.load([AD_A, AD_B])
        virtual_timers.advance(1000)

        recording_sink.fail(AD_A.url)

        assert host.state.current_index == 1
        assert host.state.display_seq == 2

        # The first ad's original advance at t=3000 must not fire
        virtual_timers.advance(2000)
        assert host.state.current_index == 1
        assert host.state.display_seq == 2

        # The second ad gets its full 5000 ms from t=1000
        virtual_timers.advance(2999)
        assert host.state.current_index == 1

        virtual_timers.advance(1)
        assert host.state.current_index == 0
        assert host.state.display_seq == 3

        animated = [e[1] for e in recording_progress.events if e[0] == "animate"]
        assert animated == [3000, 5000, 3000]

    def test_error_from_superseded_element_is_ignored(self, host, virtual_timers, recording_sink):
        host.load([AD_A, AD_B])
        virtual_timers.advance(3000)
        assert host.state.current_index == 1

        recording_sink.fail(AD_A.url)

        assert host.state.current_index == 1
        assert host.state.display_seq == 2

    def test_report_media_error_with_current_seq_advances(self, host, virtual_timers):
        host.load([AD_A, AD_B])
        virtual_timers.advance(500)

        host.report_media_error(MediaLoadFailure(host.state.display_seq, AD_A.url, "404"))

        assert host.state.current_index == 1
        assert host.has_timer(TimerRole.ADVANCE)


    def test_error_reported_inside_mount_applies_after_fade_in(
        self, host, virtual_timers, recording_sink, recording_progress
    ):
        """The skip to the next ad starts only once the failed ad's swap has finished."""
        mount = recording_sink.mount

        def mount_failing_first_ad(element, on_error):
            mount(element, on_error)
            if element.url == AD_A.url:
                on_error("unsupported format")

        recording_sink.mount = mount_failing_first_ad
        host.load([AD_A, AD_B])

        virtual_timers.advance(500)
        assert recording_sink.events == [
            ("fade_out",),
            ("clear",),
            ("mount", AD_A.url),
            ("fade_in",),
            ("fade_out",),
        ]
        assert host.state.current_index == 1
        assert host.state.phase is RotationPhase.TRANSITIONING
        assert recording_progress.events[-1] == ("animate", 5000)

        virtual_timers.advance(500)
        assert recording_sink.events[-3:] == [("clear",), ("mount", AD_B.url), ("fade_in",)]
        assert host.state.phase is RotationPhase.PLAYING


class TestPreloading:
    """Preload timers and the single preloaded handle."""

    def test_preload_fires_five_seconds_before_switch(self, virtual_timers, host, preload_factory):
        long_ad = RotatingAdEntry(url="http://a/rotating-001.png", duration=10000)
        host.load([long_ad, AD_B])

        virtual_timers.advance(4999)
        assert preload_factory.created == []

        virtual_timers.advance(1)
        assert [h.url for h in preload_factory.created] == [AD_B.url]

    def test_preload_for_short_ad_fires_at_one_second_even_after_advance(
        self, virtual_timers, host, preload_factory
    ):
        """A 500 ms ad advances before its preload, which still fires at t+1000."""
        short_ad = RotatingAdEntry(url="http://a/rotating-001.png", duration=500)
        long_ad = RotatingAdEntry(url="http://a/rotating-002.png", duration=10000)
        host.load([short_ad, long_ad])

        virtual_timers.advance(999)
        assert host.state.current_index == 1
        assert preload_factory.created == []

        virtual_timers.advance(1)
        assert [h.url for h in preload_factory.created] == [long_ad.url]

        # Preload for the wrap-around, 5 s before the long ad ends at t=10500
        virtual_timers.advance(4499)
        assert len(preload_factory.created) == 1
        virtual_timers.advance(1)
        assert [h.url for h in preload_factory.created] == [long_ad.url, short_ad.url]

    def test_new_preload_releases_previous_video(self, host, virtual_timers, preload_factory):
        host.load([AD_A, AD_B])
        virtual_timers.advance(1000)
        video_handle = preload_factory.created[0]
        assert video_handle.url == AD_B.url

        virtual_timers.advance(2000)  # advance to B at t=3000
        virtual_timers.advance(1000)  # preload A at t=4000

        assert [h.url for h in preload_factory.created] == [AD_B.url, AD_A.url]
        assert video_handle.source_cleared is True
        assert video_handle.released is True
        assert host.preloader.handle is preload_factory.created[1]

    def test_error_advance_does_not_cancel_pending_preload(self, host, virtual_timers, recording_sink):
        host.load([AD_A, AD_B, AD_C])
        virtual_timers.advance(500)
        assert host.pending_preloads == 1

        recording_sink.fail(AD_A.url)

        assert host.pending_preloads == 2


class TestListRefreshAndStop:
    """Refreshing the list while playing, and stopping."""

    def test_refresh_while_playing_keeps_current_ad_timing(
        self, host, virtual_timers, recording_sink
    ):
        host.load([AD_A, AD_B])
        virtual_timers.advance(1500)

        host.load([AD_C])

        assert recording_sink.mounted_urls == [AD_A.url]
        virtual_timers.advance(1499)
        assert host.state.display_seq == 1

        virtual_timers.advance(1)
        assert host.state.current_ad == AD_C

        virtual_timers.advance(500)
        assert recording_sink.mounted_urls == [AD_A.url, AD_C.url]

    def test_stop_cancels_rotation_and_clears(self, host, virtual_timers, recording_sink):
        host.load([AD_A, AD_B])
        virtual_timers.advance(500)

        host.stop()

        assert recording_sink.events[-1] == ("clear",)
        assert not host.has_timer(TimerRole.ADVANCE)
        assert not host.has_timer(TimerRole.SWAP)
        assert host.state.phase is RotationPhase.STOPPED

        virtual_timers.advance(60000)
        assert recording_sink.mounted_urls == [AD_A.url]

    def test_load_after_stop_is_ignored(self, host, virtual_timers, recording_sink):
        host.load([AD_A])
        virtual_timers.advance(500)
        host.stop()

        host.load([AD_B])
        virtual_timers.advance(10000)

        assert recording_sink.mounted_urls == [AD_A.url]

    def test_empty_list_keeps_idle(self, host, recording_sink):
        host.load([])

        assert host.state.phase is RotationPhase.IDLE
        assert recording_sink.events == []


class TestAsyncioTimers:
    """Default timers come from the running event loop."""

    @pytest.mark.asyncio
    async def test_host_uses_running_loop_when_no_timers_given(
        self, recording_sink, recording_progress, preload_factory
    ):
        host = RotationHost(
            RotationScheduler(DisplaySettings()),
            recording_sink,
            recording_progress,
            PreloadManager(preload_factory),
        )

        host.load([AD_A])
        assert host.has_timer(TimerRole.ADVANCE)
        assert host.has_timer(TimerRole.SWAP)

        host.stop()
        assert not host.has_timer(TimerRole.ADVANCE)
