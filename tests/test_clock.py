from unittest.mock import MagicMock

import pytest

from dual_n_back.clock import (
    ManualScheduler,
    MonotonicScheduler,
    TimerHandle,
    TrialClock,
    TrialPhase,
)


class TestManualScheduler:
    def test_fires_in_deadline_order(self):
        s = ManualScheduler()
        calls = []
        s.call_later(300, lambda: calls.append("b"))
        s.call_later(100, lambda: calls.append("a"))
        s.call_later(300, lambda: calls.append("c"))
        assert s.advance(299) == 1
        assert calls == ["a"]
        s.advance(1)
        assert calls == ["a", "b", "c"]
        assert s.now_ms() == 300

    def test_cancelled_handle_never_fires(self):
        s = ManualScheduler()
        cb = MagicMock()
        h = s.call_later(50, cb)
        h.cancel()
        s.advance(1000)
        cb.assert_not_called()
        assert h.cancelled and not h.fired
        assert s.pending() == 0

    def test_callback_scheduled_from_callback_uses_its_deadline(self):
        s = ManualScheduler()
        times = []

        def first():
            times.append(s.now_ms())
            s.call_later(100, lambda: times.append(s.now_ms()))

        s.call_later(100, first)
        s.advance(500)
        assert times == [100, 200]

    def test_run_until_idle(self):
        s = ManualScheduler()
        cb = MagicMock()
        s.call_later(10_000, cb)
        s.run_until_idle()
        cb.assert_called_once()
        assert s.now_ms() == 10_000

    def test_negative_advance_rejected(self):
        with pytest.raises(AssertionError):
            ManualScheduler().advance(-1)


class TestMonotonicScheduler:
    def test_run_due_uses_time_fn(self):
        now = [10.0]
        s = MonotonicScheduler(time_fn=lambda: now[0])
        cb = MagicMock()
        s.call_later(500, cb)
        assert s.run_due() == 0
        now[0] = 10.5
        assert s.run_due() == 1
        cb.assert_called_once()


class TestTrialClock:
    def make(self, stim=1000, window=1500):
        s = ManualScheduler()
        phases = []
        done = MagicMock()
        clock = TrialClock(s, stim, window, on_phase=phases.append, on_complete=done)
        return s, clock, phases, done

    def test_phases_in_order(self):
        s, clock, phases, done = self.make()
        clock.start()
        assert clock.phase is TrialPhase.STIMULUS_SHOWN
        s.advance(999)
        assert clock.phase is TrialPhase.STIMULUS_SHOWN
        s.advance(1)
        assert clock.phase is TrialPhase.AWAITING_RESPONSE
        done.assert_not_called()
        s.advance(500)
        assert clock.phase is TrialPhase.COMPLETE
        done.assert_called_once()
        assert phases == [
            TrialPhase.STIMULUS_SHOWN,
            TrialPhase.AWAITING_RESPONSE,
            TrialPhase.COMPLETE,
        ]

    def test_exactly_one_pending_timer(self):
        s, clock, _, _ = self.make()
        clock.start()
        assert s.pending() == 1
        s.advance(1000)
        assert s.pending() == 1
        s.advance(500)
        assert s.pending() == 0

    def test_pause_resumes_remaining_time(self):
        """
        Paused time does not count towards the phase or elapsed_ms.
        """
        s, clock, _, done = self.make()
        clock.start()
        s.advance(400)
        assert clock.pause() is True
        assert s.pending() == 0
        s.advance(10_000)
        assert clock.phase is TrialPhase.STIMULUS_SHOWN
        assert clock.elapsed_ms() == 400
        assert clock.resume() is True
        s.advance(599)
        assert clock.phase is TrialPhase.STIMULUS_SHOWN
        s.advance(1)
        assert clock.phase is TrialPhase.AWAITING_RESPONSE
        assert clock.elapsed_ms() == 1000
        s.advance(500)
        done.assert_called_once()

    def test_pause_twice_is_noop(self):
        s, clock, _, _ = self.make()
        clock.start()
        assert clock.pause() is True
        assert clock.pause() is False
        assert clock.resume() is True
        assert clock.resume() is False

    def test_cancel_stops_completion(self):
        s, clock, _, done = self.make()
        clock.start()
        s.advance(1200)
        clock.cancel()
        s.advance(10_000)
        done.assert_not_called()
        assert clock.phase is TrialPhase.CANCELLED
        assert not clock.has_pending_timer

    def test_window_never_shorter_than_stimulus(self):
        s, clock, _, done = self.make(stim=1000, window=200)
        clock.start()
        s.advance(999)
        done.assert_not_called()
        s.advance(1)
        done.assert_called_once()

    def test_zero_durations_complete_on_next_poll(self):
        s, clock, _, done = self.make(stim=0, window=0)
        clock.start()
        done.assert_not_called()
        s.advance(0)
        done.assert_called_once()

    def test_stale_timer_reported(self):
        """
        A cancelled timer that runs anyway is reported, not acted on.
        """
        scheduler = MagicMock()
        scheduler.now_ms.return_value = 0.0
        fired = []

        def call_later(delay_ms, callback):
            fired.append(callback)
            return TimerHandle(delay_ms, callback)

        scheduler.call_later.side_effect = call_later
        stale = MagicMock()
        done = MagicMock()
        clock = TrialClock(scheduler, 1000, 1500, on_complete=done, on_stale=stale)
        clock.start()
        clock.cancel()
        fired[0]()
        stale.assert_called_once()
        assert "stale trial timer" in stale.call_args[0][0]
        assert clock.phase is TrialPhase.CANCELLED
        done.assert_not_called()
