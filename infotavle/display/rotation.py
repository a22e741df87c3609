"""Rotation scheduler state machine for one ad container.

Phases::

    IDLE --load--> TRANSITIONING --swap--> PLAYING --advance/error--> TRANSITIONING ...
                                              |
                                            stop
                                              v
                                           STOPPED

Every operation is a pure function of the current ``RotationState``: it
returns a ``Transition`` holding the next state, the timers to arm or cancel
and the sink effects to run, in order. ``RotationHost`` owns the real timer
primitives and applies transitions in one go, so the visible ad and the armed
advance timer always agree.

Each display arms exactly one advance timer for its own duration (chained
timers, no master tick), one preload timer for the next ad and one swap timer
that mounts the new element once the fade-out has finished.
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Union

from infotavle.ads.models import RotatingAdEntry
from infotavle.core.settings import DisplaySettings

from .cache_busting import CacheBustingPolicy
from .media import MediaElementSpec, build_media_element

logger = logging.getLogger(__name__)


class RotationPhase(str, Enum):
    IDLE = "idle"
    TRANSITIONING = "transitioning"
    PLAYING = "playing"
    STOPPED = "stopped"


class TimerRole(str, Enum):
    ADVANCE = "advance"
    PRELOAD = "preload"
    SWAP = "swap"


@dataclass(frozen=True)
class ArmTimer:
    """Request to fire ``role`` after ``delay_ms`` for display ``seq``."""

    role: TimerRole
    delay_ms: int
    seq: int
    index: int = 0  # Preload target


@dataclass(frozen=True)
class StartProgress:
    duration_ms: int


@dataclass(frozen=True)
class FadeOut:
    pass


@dataclass(frozen=True)
class FadeIn:
    pass


@dataclass(frozen=True)
class ClearContainer:
    pass


@dataclass(frozen=True)
class MountMedia:
    element: MediaElementSpec
    seq: int


@dataclass(frozen=True)
class Preload:
    entry: RotatingAdEntry
    request_url: str


Effect = Union[StartProgress, FadeOut, FadeIn, ClearContainer, MountMedia, Preload]


@dataclass(frozen=True)
class RotationState:
    """Rotation state for one container; replaced wholesale, never patched."""

    ads: tuple[RotatingAdEntry, ...] = ()
    current_index: int = 0
    phase: RotationPhase = RotationPhase.IDLE
    advance_armed: bool = False
    display_seq: int = 0
    ad_started_at: Optional[datetime.datetime] = None
    current_element: Optional[MediaElementSpec] = None

    @property
    def current_ad(self) -> Optional[RotatingAdEntry]:
        if self.phase in (RotationPhase.IDLE, RotationPhase.STOPPED) or not self.ads:
            return None
        if self.current_index >= len(self.ads):
            return None
        return self.ads[self.current_index]


@dataclass(frozen=True)
class Transition:
    state: RotationState
    arm: tuple[ArmTimer, ...] = ()
    cancel: tuple[TimerRole, ...] = ()
    effects: tuple[Effect, ...] = field(default_factory=tuple)


def _unchanged(state: RotationState) -> Transition:
    return Transition(state=state)


class RotationScheduler:
    """Pure transition functions for the ad rotation state machine."""

    def __init__(self, settings: Optional[DisplaySettings] = None):
        self.settings = settings or DisplaySettings()
        self.policy = CacheBustingPolicy(
            self.settings.update_check_window_start_hour,
            self.settings.update_check_window_end_hour,
        )

    def preload_delay_ms(self, duration_ms: int) -> int:
        """When to preload the next ad: 5 s before the switch, but never before 1 s in."""
        return max(duration_ms - self.settings.preload_lead_ms, self.settings.min_preload_delay_ms)

    def load(
        self,
        state: RotationState,
        ads: Sequence[RotatingAdEntry],
        now: datetime.datetime,
    ) -> Transition:
        """Take a new ad list.

        Starts the rotation when nothing is armed yet. While playing, only the
        list is replaced; the current ad keeps its remaining time.
        """
        if state.phase is RotationPhase.STOPPED:
            logger.debug("Ignoring ad list while rotation is stopped")
            return _unchanged(state)

        if not ads:
            logger.warning("No rotating ads found")
            return _unchanged(state)

        logger.info("Loaded %d rotating ads:", len(ads))
        for i, ad in enumerate(ads, start=1):
            logger.info("  %d. %s -> %.1fs", i, ad.file_name, ad.duration / 1000)

        new_state = replace(state, ads=tuple(ads))
        if state.advance_armed:
            return Transition(state=new_state)
        return self.display(new_state, 0, now)

    def display(self, state: RotationState, index: int, now: datetime.datetime) -> Transition:
        """Show ``ads[index]`` and arm its advance, preload and swap timers."""
        if not state.ads:
            return _unchanged(state)
        index %= len(state.ads)

        if state.ad_started_at is not None:
            shown_for = (now - state.ad_started_at).total_seconds()
            logger.info("Previous ad was shown for %.1fs", shown_for)

        ad = state.ads[index]
        request_url = self.policy.apply(ad.url, now)
        element = build_media_element(request_url, ad.url)
        seq = state.display_seq + 1
        next_index = (index + 1) % len(state.ads)
        expected_end = now + datetime.timedelta(milliseconds=ad.duration)

        logger.info("Showing ad %d/%d: %s", index + 1, len(state.ads), ad.file_name)
        logger.debug(
            "   Expected duration: %.1fs, started at %s, will end at %s",
            ad.duration / 1000,
            now.strftime("%H:%M:%S"),
            expected_end.strftime("%H:%M:%S"),
        )

        new_state = replace(
            state,
            current_index=index,
            phase=RotationPhase.TRANSITIONING,
            advance_armed=True,
            display_seq=seq,
            ad_started_at=now,
            current_element=element,
        )
        return Transition(
            state=new_state,
            arm=(
                ArmTimer(TimerRole.ADVANCE, ad.duration, seq),
                ArmTimer(TimerRole.PRELOAD, self.preload_delay_ms(ad.duration), seq, next_index),
                ArmTimer(TimerRole.SWAP, self.settings.fade_ms, seq),
            ),
            effects=(StartProgress(ad.duration), FadeOut()),
        )

    def on_swap_due(self, state: RotationState, seq: int) -> Transition:
        """Fade-out finished: replace the container content with the new element."""
        if seq != state.display_seq or state.phase is not RotationPhase.TRANSITIONING:
            return _unchanged(state)
        if state.current_element is None:
            return _unchanged(state)

        return Transition(
            state=replace(state, phase=RotationPhase.PLAYING),
            effects=(ClearContainer(), MountMedia(state.current_element, seq), FadeIn()),
        )

    def on_advance_due(
        self, state: RotationState, seq: int, now: datetime.datetime
    ) -> Transition:
        """The current ad's duration elapsed."""
        if not state.advance_armed or seq != state.display_seq:
            return _unchanged(state)
        return self._advance(replace(state, advance_armed=False), now)

    def on_media_error(
        self, state: RotationState, seq: int, now: datetime.datetime
    ) -> Transition:
        """The mounted element failed to load: skip the rest of its duration.

        Errors from elements of earlier displays are ignored, so an error racing
        with the advance timer cannot advance twice.
        """
        if not state.advance_armed or seq != state.display_seq:
            logger.debug("Ignoring media error for superseded display %d", seq)
            return _unchanged(state)

        failed_url = state.current_element.url if state.current_element is not None else "ad"
        logger.error("Failed to load %s: skipping to next ad", failed_url)
        advanced = self._advance(replace(state, advance_armed=False), now)
        return Transition(
            state=advanced.state,
            arm=advanced.arm,
            cancel=(TimerRole.ADVANCE,) + advanced.cancel,
            effects=advanced.effects,
        )

    def on_preload_due(
        self, state: RotationState, index: int, now: datetime.datetime
    ) -> Transition:
        """Preload timer fired for ``index``; a no-op if the list shrank meanwhile."""
        if state.phase is RotationPhase.STOPPED or index >= len(state.ads):
            return _unchanged(state)
        ad = state.ads[index]
        return Transition(state=state, effects=(Preload(ad, self.policy.apply(ad.url, now)),))

    def stop(self, state: RotationState) -> Transition:
        """Cancel the advance chain and clear the container.

        Pending preload timers are left to fire; preloading is idempotent.
        """
        if state.phase not in (RotationPhase.PLAYING, RotationPhase.TRANSITIONING):
            return _unchanged(state)

        logger.info("Stopped ad rotation")
        return Transition(
            state=replace(
                state,
                phase=RotationPhase.STOPPED,
                advance_armed=False,
                current_element=None,
            ),
            cancel=(TimerRole.ADVANCE, TimerRole.SWAP),
            effects=(ClearContainer(),),
        )

    def _advance(self, state: RotationState, now: datetime.datetime) -> Transition:
        next_index = (state.current_index + 1) % len(state.ads)
        return self.display(state, next_index, now)
