"""Tests for the pure rotation state machine."""

import datetime

import pytest

from infotavle.ads.models import RotatingAdEntry
from infotavle.core.settings import DisplaySettings
from infotavle.display.rotation import (
    ArmTimer,
    ClearContainer,
    FadeIn,
    FadeOut,
    MountMedia,
    Preload,
    RotationPhase,
    RotationScheduler,
    RotationState,
    StartProgress,
    TimerRole,
)

pytestmark = pytest.mark.unit

NOW = datetime.datetime(2025, 10, 27, 9, 0, tzinfo=datetime.timezone.utc)
LATE = datetime.datetime(2025, 10, 27, 20, 0, tzinfo=datetime.timezone.utc)

AD_A = RotatingAdEntry(url="http://a/rotating-001.png", duration=3000)
AD_B = RotatingAdEntry(url="http://a/rotating-002.mp4", duration=5000)
AD_C = RotatingAdEntry(url="http://a/rotating-003.png", duration=10000)


@pytest.fixture
def scheduler() -> RotationScheduler:
    return RotationScheduler(DisplaySettings())


def _playing(scheduler, ads, index=0):
    """State after ``ads[index]`` has been displayed and swapped in."""
    state = scheduler.load(RotationState(), ads, NOW).state
    if index:
        state = scheduler.display(state, index, NOW).state
    return scheduler.on_swap_due(state, state.display_seq).state


class TestPreloadDelay:
    """Tests for preload_delay_ms()."""

    @pytest.mark.parametrize(
        ("duration", "delay"),
        [(20000, 15000), (10000, 5000), (6000, 1000), (5000, 1000), (500, 1000)],
    )
    def test_preload_delay(self, scheduler, duration, delay):
        assert scheduler.preload_delay_ms(duration) == delay


class TestLoad:
    """Tests for RotationScheduler.load()."""

    def test_load_when_idle_then_displays_first_ad(self, scheduler):
        transition = scheduler.load(RotationState(), [AD_A, AD_B], NOW)
        state = transition.state

        assert state.phase is RotationPhase.TRANSITIONING
        assert state.current_index == 0
        assert state.advance_armed is True
        assert state.display_seq == 1
        assert transition.arm == (
            ArmTimer(TimerRole.ADVANCE, 3000, 1),
            ArmTimer(TimerRole.PRELOAD, 1000, 1, 1),
            ArmTimer(TimerRole.SWAP, 500, 1),
        )
        assert transition.effects == (StartProgress(3000), FadeOut())

    def test_load_when_empty_then_no_change(self, scheduler):
        transition = scheduler.load(RotationState(), [], NOW)

        assert transition.state == RotationState()
        assert transition.arm == ()
        assert transition.effects == ()

    def test_load_when_already_armed_then_only_replaces_list(self, scheduler):
        """A refresh never restarts or re-arms the current ad."""
        state = _playing(scheduler, [AD_A, AD_B])

        transition = scheduler.load(state, [AD_C], NOW)

        assert transition.state.ads == (AD_C,)
        assert transition.state.display_seq == state.display_seq
        assert transition.state.current_index == 0
        assert transition.arm == ()
        assert transition.cancel == ()
        assert transition.effects == ()

    def test_load_when_stopped_then_ignored(self, scheduler):
        state = scheduler.stop(_playing(scheduler, [AD_A])).state

        transition = scheduler.load(state, [AD_B], NOW)

        assert transition.state is state
        assert transition.arm == ()


class TestDisplayAndSwap:
    """Tests for display() and on_swap_due()."""

    def test_display_wraps_index(self, scheduler):
        state = _playing(scheduler, [AD_A, AD_B])

        transition = scheduler.display(state, 2, NOW)

        assert transition.state.current_index == 0

    def test_display_outside_quiet_window_then_busted_element_url(self, scheduler):
        transition = scheduler.load(RotationState(), [AD_A], LATE)

        element = transition.state.current_element
        assert element.url.startswith(f"{AD_A.url}?t=")

    def test_swap_mounts_current_element_and_fades_in(self, scheduler):
        state = scheduler.load(RotationState(), [AD_A, AD_B], NOW).state

        transition = scheduler.on_swap_due(state, state.display_seq)

        assert transition.state.phase is RotationPhase.PLAYING
        assert transition.effects == (
            ClearContainer(),
            MountMedia(state.current_element, 1),
            FadeIn(),
        )

    def test_swap_when_superseded_then_ignored(self, scheduler):
        state = scheduler.load(RotationState(), [AD_A, AD_B], NOW).state
        state = scheduler.display(state, 1, NOW).state

        transition = scheduler.on_swap_due(state, 1)

        assert transition.effects == ()


class TestAdvance:
    """Tests for on_advance_due() and on_media_error()."""

    def test_advance_due_moves_to_next_ad(self, scheduler):
        state = _playing(scheduler, [AD_A, AD_B])

        transition = scheduler.on_advance_due(state, state.display_seq, NOW)

        assert transition.state.current_index == 1
        assert transition.state.display_seq == state.display_seq + 1
        assert transition.arm[0] == ArmTimer(TimerRole.ADVANCE, 5000, 2)

    def test_advance_due_wraps_to_first(self, scheduler):
        state = _playing(scheduler, [AD_A, AD_B], index=1)

        transition = scheduler.on_advance_due(state, state.display_seq, NOW)

        assert transition.state.current_index == 0

    def test_advance_due_when_stale_seq_then_ignored(self, scheduler):
        state = _playing(scheduler, [AD_A, AD_B])

        transition = scheduler.on_advance_due(state, state.display_seq - 1, NOW)

        assert transition.state is state

    def test_media_error_cancels_advance_and_skips(self, scheduler):
        state = _playing(scheduler, [AD_A, AD_B])

        transition = scheduler.on_media_error(state, state.display_seq, NOW)

        assert transition.cancel[0] is TimerRole.ADVANCE
        assert transition.state.current_index == 1
        assert transition.state.advance_armed is True

    def test_media_error_when_superseded_then_ignored(self, scheduler):
        """An error from an element that is no longer current cannot advance again."""
        state = _playing(scheduler, [AD_A, AD_B])
        advanced = scheduler.on_media_error(state, state.display_seq, NOW).state

        transition = scheduler.on_media_error(advanced, state.display_seq, NOW)

        assert transition.state is advanced
        assert transition.cancel == ()

    def test_single_ad_list_redisplays_same_ad(self, scheduler):
        state = _playing(scheduler, [AD_A])

        transition = scheduler.on_advance_due(state, state.display_seq, NOW)

        assert transition.state.current_index == 0
        assert transition.state.display_seq == 2


class TestPreloadAndStop:
    """Tests for on_preload_due() and stop()."""

    def test_preload_due_emits_preload_for_index(self, scheduler):
        state = _playing(scheduler, [AD_A, AD_B])

        transition = scheduler.on_preload_due(state, 1, NOW)

        assert transition.effects == (Preload(AD_B, AD_B.url),)

    def test_preload_due_when_list_shrank_then_no_op(self, scheduler):
        state = _playing(scheduler, [AD_A, AD_B])
        state = scheduler.load(state, [AD_C], NOW).state

        transition = scheduler.on_preload_due(state, 1, NOW)

        assert transition.effects == ()

    def test_stop_cancels_timers_and_clears(self, scheduler):
        state = _playing(scheduler, [AD_A, AD_B])

        transition = scheduler.stop(state)

        assert transition.state.phase is RotationPhase.STOPPED
        assert transition.state.advance_armed is False
        assert transition.state.current_ad is None
        assert set(transition.cancel) == {TimerRole.ADVANCE, TimerRole.SWAP}
        assert transition.effects == (ClearContainer(),)

    def test_stop_when_idle_then_no_op(self, scheduler):
        transition = scheduler.stop(RotationState())

        assert transition.state.phase is RotationPhase.IDLE
        assert transition.effects == ()

    def test_preload_due_when_stopped_then_no_op(self, scheduler):
        state = scheduler.stop(_playing(scheduler, [AD_A, AD_B])).state

        assert scheduler.on_preload_due(state, 1, NOW).effects == ()
