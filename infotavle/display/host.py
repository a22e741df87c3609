"""Timer-driven host for the rotation state machine.

``RotationHost`` keeps the ``RotationState`` of one container, applies the
transitions returned by ``RotationScheduler`` and owns the real timers. By
default timers are asyncio ``call_later`` handles on the running loop; tests
pass a virtual scheduler instead.

Timer ownership:

- ADVANCE and SWAP: at most one handle each; arming cancels the stale handle.
- PRELOAD: fire-and-forget. Handles are tracked so they can be inspected but
  are never cancelled, not even by an error-triggered advance or by stop. A
  preload that fires after its ad was already skipped is harmless.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
from collections import deque
from collections.abc import Callable, Sequence
from typing import Optional, Protocol

from infotavle.ads.models import RotatingAdEntry
from infotavle.core.time_utils import now_local

from .media import MediaLoadFailure, MediaSink, ProgressIndicator, start_progress
from .preload import PreloadManager
from .rotation import (
    ArmTimer,
    ClearContainer,
    Effect,
    FadeIn,
    FadeOut,
    MountMedia,
    Preload,
    RotationScheduler,
    RotationState,
    StartProgress,
    TimerRole,
    Transition,
)

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class TimerScheduler(Protocol):
    """Anything with an asyncio-style ``call_later``."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class RotationHost:
    """Runs one container's ad rotation."""

    def __init__(
        self,
        scheduler: RotationScheduler,
        sink: MediaSink,
        progress: ProgressIndicator,
        preloader: PreloadManager,
        timers: Optional[TimerScheduler] = None,
        clock: Callable[[], datetime.datetime] = now_local,
    ):
        self.scheduler = scheduler
        self.sink = sink
        self.progress = progress
        self.preloader = preloader
        self._timers = timers
        self._clock = clock
        self._state = RotationState()
        self._handles: dict[TimerRole, TimerHandle] = {}
        self._preload_handles: set[TimerHandle] = set()
        # Events raised by effects wait until the current transition is fully applied
        self._events: deque[Callable[[], Transition]] = deque()
        self._dispatching = False

    @property
    def state(self) -> RotationState:
        return self._state

    @property
    def pending_preloads(self) -> int:
        return len(self._preload_handles)

    def has_timer(self, role: TimerRole) -> bool:
        if role is TimerRole.PRELOAD:
            return bool(self._preload_handles)
        return role in self._handles

    def load(self, ads: Sequence[RotatingAdEntry]) -> None:
        self._dispatch(lambda: self.scheduler.load(self._state, ads, self._clock()))

    def stop(self) -> None:
        self._dispatch(lambda: self.scheduler.stop(self._state))

    def report_media_error(self, failure: MediaLoadFailure) -> None:
        if failure.reason:
            logger.debug("Media error for %s: %s", failure.url, failure.reason)
        self._dispatch(
            lambda: self.scheduler.on_media_error(self._state, failure.display_seq, self._clock())
        )

    def _get_timers(self) -> TimerScheduler:
        if self._timers is None:
            self._timers = asyncio.get_running_loop()
        return self._timers

    def _dispatch(self, event: Callable[[], Transition]) -> None:
        """Compute and apply transitions one at a time, in arrival order.

        A sink may report an error synchronously from ``mount``; that event is
        queued so the remaining effects of the current transition run first.
        """
        self._events.append(event)
        if self._dispatching:
            return
        self._dispatching = True
        try:
            while self._events:
                self._apply(self._events.popleft()())
        except Exception:
            self._events.clear()
            raise
        finally:
            self._dispatching = False

    def _apply(self, transition: Transition) -> None:
        """Apply a transition: cancellations, new state, timers, then effects."""
        for role in transition.cancel:
            self._cancel(role)

        self._state = transition.state

        for request in transition.arm:
            self._arm(request)

        for effect in transition.effects:
            self._run_effect(effect)

    def _cancel(self, role: TimerRole) -> None:
        handle = self._handles.pop(role, None)
        if handle is not None:
            handle.cancel()

    def _arm(self, request: ArmTimer) -> None:
        timers = self._get_timers()
        delay = request.delay_ms / 1000.0

        if request.role is TimerRole.PRELOAD:
            holder: list[TimerHandle] = []

            def _fire_preload() -> None:
                self._preload_handles.discard(holder[0])
                self._dispatch(lambda: self._on_timer(request))

            handle = timers.call_later(delay, _fire_preload)
            holder.append(handle)
            self._preload_handles.add(handle)
            return

        self._cancel(request.role)

        def _fire() -> None:
            if self._handles.get(request.role) is handle:
                del self._handles[request.role]
            self._dispatch(lambda: self._on_timer(request))

        handle = timers.call_later(delay, _fire)
        self._handles[request.role] = handle

    def _on_timer(self, request: ArmTimer) -> Transition:
        now = self._clock()
        if request.role is TimerRole.ADVANCE:
            transition = self.scheduler.on_advance_due(self._state, request.seq, now)
        elif request.role is TimerRole.SWAP:
            transition = self.scheduler.on_swap_due(self._state, request.seq)
        else:
            transition = self.scheduler.on_preload_due(self._state, request.index, now)
        return transition

    def _run_effect(self, effect: Effect) -> None:
        if isinstance(effect, StartProgress):
            start_progress(self.progress, effect.duration_ms)
        elif isinstance(effect, FadeOut):
            self.sink.fade_out()
        elif isinstance(effect, FadeIn):
            self.sink.fade_in()
        elif isinstance(effect, ClearContainer):
            self.sink.clear()
        elif isinstance(effect, MountMedia):
            seq, url = effect.seq, effect.element.url

            def _on_error(reason: str) -> None:
                self.report_media_error(MediaLoadFailure(seq, url, reason))

            self.sink.mount(effect.element, _on_error)
        elif isinstance(effect, Preload):
            self.preloader.preload(effect.entry, effect.request_url)
