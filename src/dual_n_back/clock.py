from __future__ import annotations

import heapq
import itertools
import logging
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, Optional


# -------------------- Scheduling --------------------
class TimerHandle:
    """
    Returned by Scheduler.call_later. Once cancelled, its callback
    never runs, no matter when the scheduler next polls.
    """

    __slots__ = ("when_ms", "callback", "_cancelled", "_fired")

    def __init__(self, when_ms: float, callback: Callable[[], None]):
        self.when_ms = when_ms
        self.callback = callback
        self._cancelled = False
        self._fired = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def fired(self) -> bool:
        return self._fired

    @property
    def active(self) -> bool:
        return not (self._cancelled or self._fired)

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled else "fired" if self._fired else "pending"
        return f"<TimerHandle when={self.when_ms:.1f}ms {state}>"


class Scheduler(ABC):
    """
    Minimal timer queue. Callbacks run synchronously from run_due(),
    on the caller's thread, in deadline order (ties in schedule order).
    """

    def __init__(self):
        self._queue: list[tuple[float, int, TimerHandle]] = []
        self._counter = itertools.count()

    @abstractmethod
    def now_ms(self) -> float: ...

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        handle = TimerHandle(self.now_ms() + max(0.0, float(delay_ms)), callback)
        heapq.heappush(self._queue, (handle.when_ms, next(self._counter), handle))
        return handle

    def pending(self) -> int:
        """Number of handles that have neither fired nor been cancelled."""
        return sum(1 for _, _, h in self._queue if h.active)

    def next_deadline(self) -> Optional[float]:
        while self._queue and not self._queue[0][2].active:
            heapq.heappop(self._queue)
        return self._queue[0][0] if self._queue else None

    def run_due(self) -> int:
        """Fire every active handle whose deadline has passed."""
        fired = 0
        while True:
            deadline = self.next_deadline()
            if deadline is None or deadline > self.now_ms():
                return fired
            _, _, handle = heapq.heappop(self._queue)
            handle._fired = True
            handle.callback()
            fired += 1


class ManualScheduler(Scheduler):
    """Virtual-time scheduler; time only moves when advance() is called."""

    def __init__(self, start_ms: float = 0.0):
        super().__init__()
        self._now = float(start_ms)

    def now_ms(self) -> float:
        return self._now

    def advance(self, delta_ms: float) -> int:
        """
        Move time forward by delta_ms, firing due callbacks at their
        own deadlines so that anything they schedule is timed correctly.
        """
        assert delta_ms >= 0, "time cannot go backwards"
        target = self._now + float(delta_ms)
        fired = 0
        while True:
            deadline = self.next_deadline()
            if deadline is None or deadline > target:
                break
            self._now = max(self._now, deadline)
            fired += self.run_due()
        self._now = target
        return fired

    def run_until_idle(self, limit_ms: float = 24 * 3600 * 1000) -> int:
        """Advance straight to each deadline until nothing is pending."""
        fired = 0
        start = self._now
        while True:
            deadline = self.next_deadline()
            if deadline is None or deadline - start > limit_ms:
                return fired
            fired += self.advance(deadline - self._now)


class MonotonicScheduler(Scheduler):
    """
    Wall-time scheduler for a host main loop: call run_due() every
    frame (or use run_until) and due callbacks fire on that thread.
    """

    def __init__(self, time_fn: Callable[[], float] = time.monotonic):
        super().__init__()
        self._time_fn = time_fn

    def now_ms(self) -> float:
        return self._time_fn() * 1000.0

    def run_until(
        self, done: Callable[[], bool], poll_s: float = 0.005
    ) -> None:
        while not done():
            self.run_due()
            time.sleep(poll_s)


# -------------------- Trial clock --------------------
class TrialPhase(str, Enum):
    IDLE = "idle"
    STIMULUS_SHOWN = "stimulus-shown"
    AWAITING_RESPONSE = "awaiting-response"
    COMPLETE = "trial-complete"
    CANCELLED = "cancelled"


class TrialClock:
    """
    Drives a single trial through its phases:
      1) STIMULUS_SHOWN for stimulus_duration_ms
      2) AWAITING_RESPONSE for the rest of the response window
      3) COMPLETE, at which point on_complete fires once

    A timer that fires after the clock moved on is reported to on_stale
    (or logged) and otherwise ignored.

    Responses never shorten a phase; only the timer ends the trial.
    At most one timer is pending at any moment. pause() keeps the
    remaining time of the current phase and resume() continues it.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        stimulus_duration_ms: float,
        response_window_ms: float,
        on_phase: Optional[Callable[[TrialPhase], None]] = None,
        on_complete: Optional[Callable[[], None]] = None,
        on_stale: Optional[Callable[[str], None]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.scheduler = scheduler
        self.stimulus_duration_ms = max(0.0, float(stimulus_duration_ms))
        self.response_window_ms = max(
            self.stimulus_duration_ms, float(response_window_ms)
        )
        self.on_phase = on_phase
        self.on_complete = on_complete
        self.on_stale = on_stale
        self.logger = logger or logging.getLogger(__name__)

        self.phase = TrialPhase.IDLE
        self._handle: Optional[TimerHandle] = None
        self._next: Optional[Callable[[], None]] = None
        self._generation = 0

        self._onset_ms: Optional[float] = None
        self._paused_at: Optional[float] = None
        self._paused_total = 0.0
        self._remaining_ms: Optional[float] = None

    # ---- state ----
    @property
    def running(self) -> bool:
        return self.phase in (TrialPhase.STIMULUS_SHOWN, TrialPhase.AWAITING_RESPONSE)

    @property
    def paused(self) -> bool:
        return self._paused_at is not None

    @property
    def has_pending_timer(self) -> bool:
        return self._handle is not None and self._handle.active

    def elapsed_ms(self) -> float:
        """Active time since stimulus onset, excluding time spent paused."""
        if self._onset_ms is None:
            return 0.0
        now = self._paused_at if self._paused_at is not None else self.scheduler.now_ms()
        return max(0.0, now - self._onset_ms - self._paused_total)

    # ---- lifecycle ----
    def start(self) -> None:
        assert self.phase is TrialPhase.IDLE, "a trial clock only starts once"
        self._onset_ms = self.scheduler.now_ms()
        self._enter(TrialPhase.STIMULUS_SHOWN)
        self._schedule(self.stimulus_duration_ms, self._end_stimulus)

    def pause(self) -> bool:
        if not self.running or self.paused:
            return False
        now = self.scheduler.now_ms()
        self._remaining_ms = max(0.0, self._handle.when_ms - now) if self._handle else 0.0
        self._cancel_timer()
        self._paused_at = now
        return True

    def resume(self) -> bool:
        if not self.paused:
            return False
        self._paused_total += self.scheduler.now_ms() - self._paused_at
        self._paused_at = None
        remaining, self._remaining_ms = self._remaining_ms or 0.0, None
        self._schedule(remaining, self._next)
        return True

    def cancel(self) -> None:
        """Stop for good; nothing scheduled by this clock will run afterwards."""
        self._cancel_timer()
        self._paused_at = None
        self._next = None
        self.phase = TrialPhase.CANCELLED

    # ---- internals ----
    def _enter(self, phase: TrialPhase) -> None:
        self.phase = phase
        if self.on_phase is not None:
            self.on_phase(phase)

    def _schedule(self, delay_ms: float, step: Callable[[], None]) -> None:
        self._cancel_timer()
        self._generation += 1
        generation = self._generation
        self._next = step
        self._handle = self.scheduler.call_later(
            delay_ms, lambda: self._fire(generation, step)
        )

    def _cancel_timer(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self, generation: int, step: Callable[[], None]) -> None:
        if generation != self._generation or not self.running or self.paused:
            message = (
                f"stale trial timer (generation {generation}, phase {self.phase.value})"
            )
            if self.on_stale is not None:
                self.on_stale(message)
            else:
                self.logger.warning("Ignoring %s", message)
            return
        self._handle = None
        step()

    def _end_stimulus(self) -> None:
        self._enter(TrialPhase.AWAITING_RESPONSE)
        self._schedule(
            self.response_window_ms - self.stimulus_duration_ms, self._end_window
        )

    def _end_window(self) -> None:
        self._next = None
        self._enter(TrialPhase.COMPLETE)
        if self.on_complete is not None:
            self.on_complete()
