"""Headless sessions driven by a simulated player."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np
from numpy.random import default_rng

from dual_n_back.adaptive import DEFAULT_POLICY, AdaptivePolicy
from dual_n_back.clock import ManualScheduler
from dual_n_back.config import PRACTICE_CONFIG, Modality, SessionConfig
from dual_n_back.engine import NBackEngine
from dual_n_back.scoring import GameSession, Outcome, Trial
from dual_n_back.settings import Settings

logger = logging.getLogger(__name__)


@dataclass
class SimulatedPlayer:
    """
    Presses a modality key with probability `hit_rate` when the stimulus
    matches and `false_alarm_rate` when it does not. Response times are
    normally distributed and clipped to land inside the response window.
    """

    hit_rate: float = 0.8
    false_alarm_rate: float = 0.1
    rt_mean_ms: float = 650.0
    rt_sd_ms: float = 150.0
    min_rt_ms: float = 150.0
    seed: Optional[int] = None

    def __post_init__(self):
        assert 0 <= self.hit_rate <= 1, "hit_rate must be between 0 and 1"
        assert 0 <= self.false_alarm_rate <= 1, (
            "false_alarm_rate must be between 0 and 1"
        )
        self.rng = default_rng(self.seed)

    def response_time(self, match: bool, window_ms: float) -> Optional[float]:
        """Milliseconds after onset to press, or None to hold back."""
        p = self.hit_rate if match else self.false_alarm_rate
        if self.rng.random() >= p:
            return None
        rt = self.rng.normal(self.rt_mean_ms, self.rt_sd_ms)
        upper = max(0.0, window_ms - 1.0)
        return float(np.clip(rt, min(self.min_rt_ms, upper), upper))

    def attach(self, engine: NBackEngine, scheduler: ManualScheduler):
        """Returns an on_stimulus callback that schedules this player's presses."""

        def on_stimulus(trial: Trial, speak: bool) -> None:
            config = engine.active_config
            for modality in config.mode.modalities:
                rt = self.response_time(
                    trial.match_for(modality), config.response_window_ms
                )
                if rt is not None:
                    scheduler.call_later(
                        rt, lambda m=modality: engine.handle_response(m)
                    )

        return on_stimulus


def simulate_sessions(
    config: SessionConfig,
    player: SimulatedPlayer,
    *,
    sessions: int = 1,
    adaptive: bool = False,
    policy: AdaptivePolicy = DEFAULT_POLICY,
    seed: Optional[int] = None,
    on_session_complete: Optional[Callable[[GameSession], None]] = None,
) -> list[GameSession]:
    """
    Play `sessions` sessions back to back. With adaptive difficulty on,
    each new session starts at the level proposed by the previous one.
    """
    scheduler = ManualScheduler()
    results: list[GameSession] = []

    def collect(session: GameSession) -> None:
        results.append(session)
        if on_session_complete is not None:
            on_session_complete(session)

    engine = NBackEngine(
        scheduler,
        config=config,
        settings=Settings(adaptive_difficulty_enabled=adaptive),
        policy=policy,
        on_session_complete=collect,
        seed=seed,
    )
    engine.on_stimulus = player.attach(engine, scheduler)

    for i in range(sessions):
        if i > 0:
            engine.new_session()
        engine.start_game()
        scheduler.run_until_idle()
        logger.debug("Simulated session %d finished in state %s", i, engine.game_state.value)
    return results


def simulate_practice(
    player: SimulatedPlayer,
    *,
    seed: Optional[int] = None,
    on_feedback: Optional[Callable[[str, Outcome], None]] = None,
) -> list[Trial]:
    """Run the fixed practice session; returns its trials."""
    scheduler = ManualScheduler()
    completed: list[bool] = []
    window_ms = PRACTICE_CONFIG.response_window_ms

    def on_stimulus(trial: Trial, speak: bool) -> None:
        rt = player.response_time(trial.visual_match, window_ms)
        if rt is not None:
            scheduler.call_later(rt, lambda: engine.handle_response(Modality.VISUAL))

    # Practice starts on construction, so the first stimulus arrives here
    engine = NBackEngine(
        scheduler,
        practice=True,
        on_stimulus=on_stimulus,
        on_feedback=on_feedback,
        on_practice_complete=lambda: completed.append(True),
        seed=seed,
    )
    scheduler.run_until_idle()
    if not completed:
        logger.warning("Practice session did not complete")
    return list(engine.trials)
