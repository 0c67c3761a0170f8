from __future__ import annotations

import logging
import random
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional, Sequence, Union

from dual_n_back.adaptive import DEFAULT_POLICY, AdaptiveDecision, AdaptivePolicy, decide
from dual_n_back.clock import Scheduler, TrialClock, TrialPhase
from dual_n_back.config import PRACTICE_CONFIG, GameMode, Modality, SessionConfig
from dual_n_back.constants import AUDIO_LETTERS
from dual_n_back.errors import InvariantViolation
from dual_n_back.nback import StimulusGenerator
from dual_n_back.scoring import GameSession, Outcome, Trial, aggregate
from dual_n_back.settings import SettingsProvider


class GameState(str, Enum):
    SETUP = "setup"
    PLAYING = "playing"
    PAUSED = "paused"
    RESULTS = "results"


PRACTICE_FEEDBACK = {
    Outcome.HIT: "Correct Match!",
    Outcome.FALSE_ALARM: "Oops! That wasn't a match (False Alarm).",
    Outcome.MISS: "Missed Match!",
    Outcome.CORRECT_REJECTION: "Correct: No match there.",
}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class NBackEngine:
    """
    Owns one n-back session at a time:

        SETUP -> PLAYING <-> PAUSED
                 PLAYING -> RESULTS -> SETUP

    Each trial gets its own TrialClock; the trial ends when that clock's
    response window elapses, never on a key press. The engine is the only
    thing that advances `current_trial`.

    The UI collaborator reads the properties below and subscribes to the
    on_* callbacks for rendering and speech. Settings are injected; the
    engine never looks them up anywhere else. Callbacks may issue commands
    (pause, reset_game, ...) themselves; the engine re-checks its state
    after every callback returns.

    Invariant violations (stale timers, responses against a closed trial,
    commands in the wrong state) raise InvariantViolation when
    `strict=True` and are logged and ignored otherwise.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        *,
        config: Optional[SessionConfig] = None,
        settings: Optional[SettingsProvider] = None,
        policy: AdaptivePolicy = DEFAULT_POLICY,
        practice: bool = False,
        on_practice_complete: Optional[Callable[[], None]] = None,
        on_state_change: Optional[Callable[[GameState, GameState], None]] = None,
        on_stimulus: Optional[Callable[[Trial, bool], None]] = None,
        on_trial_complete: Optional[Callable[[Trial], None]] = None,
        on_session_complete: Optional[Callable[[GameSession], None]] = None,
        on_feedback: Optional[Callable[[str, Outcome], None]] = None,
        strict: bool = False,
        wall_clock: Callable[[], datetime] = _utc_now,
        letters: Sequence[str] = AUDIO_LETTERS,
        rng: Optional[random.Random] = None,
        seed: Optional[int] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.scheduler = scheduler
        self.settings = settings
        self.policy = policy
        self.practice = practice
        self.strict = strict
        self.letters = tuple(letters)
        self.logger = logger or logging.getLogger(__name__)

        self.on_practice_complete = on_practice_complete
        self.on_state_change = on_state_change
        self.on_stimulus = on_stimulus
        self.on_trial_complete = on_trial_complete
        self.on_session_complete = on_session_complete
        self.on_feedback = on_feedback

        self._wall_clock = wall_clock
        self._rng = rng if rng is not None else random.Random(seed)

        self._config = PRACTICE_CONFIG if practice else (config or SessionConfig())
        self._active_config: Optional[SessionConfig] = None
        self._game_state = GameState.SETUP

        # Session data
        self._generator: Optional[StimulusGenerator] = None
        self._trials: list[Trial] = []
        self._current: Optional[Trial] = None
        self._clock: Optional[TrialClock] = None
        self._current_trial = 0
        self._session: Optional[GameSession] = None
        self._session_ended = False
        self._last_adaptation: Optional[AdaptiveDecision] = None
        # Bumped whenever session data is cleared; callbacks compare against it
        self._epoch = 0
        self._advance_pending = False

        if practice:
            self.start_game()

    # -------------------- read model --------------------
    @property
    def game_state(self) -> GameState:
        return self._game_state

    @property
    def config(self) -> SessionConfig:
        """Configuration for the next session (what setup shows)."""
        return self._config

    @property
    def active_config(self) -> Optional[SessionConfig]:
        """Configuration frozen at start_game, or None before any start."""
        return self._active_config

    @property
    def current_trial(self) -> int:
        """Number of trials whose response window has closed."""
        return self._current_trial

    @property
    def trials(self) -> tuple[Trial, ...]:
        return tuple(self._trials)

    @property
    def current_position(self) -> Optional[int]:
        if self._current is None or not self._stimulus_visible():
            return None
        return self._current.position

    @property
    def current_letter(self) -> str:
        if self._current is None or not self._stimulus_visible():
            return ""
        return self._current.letter

    @property
    def is_waiting_for_response(self) -> bool:
        return (
            self._game_state is GameState.PLAYING
            and self._current is not None
            and self._clock is not None
            and self._clock.running
        )

    @property
    def visual_response_made(self) -> bool:
        return self._current is not None and self._current.visual_response

    @property
    def audio_response_made(self) -> bool:
        return self._current is not None and self._current.audio_response

    @property
    def trial_phase(self) -> TrialPhase:
        return self._clock.phase if self._clock is not None else TrialPhase.IDLE

    @property
    def session(self) -> Optional[GameSession]:
        return self._session

    @property
    def last_adaptation(self) -> Optional[AdaptiveDecision]:
        return self._last_adaptation

    @property
    def adaptive_enabled(self) -> bool:
        if self.practice or self.settings is None:
            return False
        return bool(self.settings.is_adaptive_difficulty_enabled)

    def _stimulus_visible(self) -> bool:
        return self._clock is not None and self._clock.phase is TrialPhase.STIMULUS_SHOWN

    # -------------------- configuration commands --------------------
    def set_game_mode(self, mode: Union[GameMode, str]) -> bool:
        return self._configure(mode=GameMode(mode))

    def set_n_level(self, n_level: int) -> bool:
        return self._configure(n_level=int(n_level))

    def set_num_trials(self, num_trials: int) -> bool:
        return self._configure(num_trials=int(num_trials))

    def set_stimulus_duration_ms(self, duration_ms: int) -> bool:
        return self._configure(stimulus_duration_ms=int(duration_ms))

    def set_audio_enabled(self, enabled: bool) -> bool:
        return self._configure(audio_enabled=bool(enabled))

    def set_inter_trial_interval_ms(self, interval_ms: int) -> bool:
        return self._configure(inter_trial_interval_ms=int(interval_ms))

    def _configure(self, **changes) -> bool:
        if self.practice:
            self.logger.warning("Practice configuration is fixed; ignoring %s", changes)
            return False
        if self._game_state is not GameState.SETUP:
            self._violation(
                f"configuration change {changes} outside setup "
                f"(state {self._game_state.value})"
            )
            return False
        self._config = self._config.with_changes(**changes)
        return True

    # -------------------- session commands --------------------
    def start_game(self) -> bool:
        if self._game_state is not GameState.SETUP:
            self._violation(f"start_game in state {self._game_state.value}")
            return False

        config = self._freeze_config(self._config)
        self._clear_session_data()
        self._active_config = config
        self._generator = StimulusGenerator(
            config.n_level, letters=self.letters, rng=self._rng
        )
        self.logger.info(
            "Starting %s session: mode=%s n=%d trials=%d",
            "practice" if self.practice else "regular",
            config.mode.value,
            config.n_level,
            config.num_trials,
        )
        epoch = self._epoch
        self._set_state(GameState.PLAYING)
        if epoch == self._epoch:
            self._advance()
        return True

    def handle_response(self, modality: Union[Modality, str]) -> bool:
        """
        Record a match claim for the trial on screen. Returns True iff it
        was the first response for that modality this trial.
        """
        modality = Modality(modality)
        if not self.is_waiting_for_response:
            self.logger.debug(
                "Dropping %s response: no open trial (state %s)",
                modality.value,
                self._game_state.value,
            )
            return False
        config = self._active_config
        if not config.mode.scores(modality):
            self.logger.debug(
                "Dropping %s response: not scored in %s", modality.value, config.mode.value
            )
            return False

        trial = self._current
        try:
            first = trial.record_response(modality, self._clock.elapsed_ms())
        except InvariantViolation as e:
            self._violation(str(e))
            return False
        if not first:
            return False

        self.logger.debug(
            "Trial %d: %s response at %.0fms",
            trial.index,
            modality.value,
            trial.response_ms(modality),
        )
        if self.practice and modality is Modality.VISUAL:
            outcome = trial.classify(modality, config.n_level)
            if outcome in (Outcome.HIT, Outcome.FALSE_ALARM):
                self._feedback(outcome)
        return True

    def pause(self) -> bool:
        if self._game_state is not GameState.PLAYING:
            self._violation(f"pause in state {self._game_state.value}")
            return False
        if self._clock is not None:
            self._clock.pause()
        self._set_state(GameState.PAUSED)
        return True

    def resume(self) -> bool:
        if self._game_state is not GameState.PAUSED:
            self._violation(f"resume in state {self._game_state.value}")
            return False
        self._set_state(GameState.PLAYING)
        if self._game_state is not GameState.PLAYING:
            return True
        if self._clock is not None:
            self._clock.resume()
        elif self._advance_pending:
            self._advance()
        return True

    def toggle_pause(self) -> bool:
        if self._game_state is GameState.PAUSED:
            return self.resume()
        return self.pause()

    def reset_game(self) -> None:
        """
        Abandon whatever is running and go back to setup. Partial trial
        data is discarded; configuration is kept. Leaving results also
        applies a pending adaptive level change.
        """
        if self._game_state is GameState.RESULTS:
            self._apply_adaptation()
        self._cancel_clock()
        self._clear_session_data()
        self._set_state(GameState.SETUP)

    def new_session(self) -> bool:
        """results -> setup, keeping the chosen configuration."""
        if self._game_state is not GameState.RESULTS:
            self._violation(f"new_session in state {self._game_state.value}")
            return False
        self.reset_game()
        return True

    # -------------------- trial flow --------------------
    def _advance(self) -> None:
        """
        Present the next trial or finish the session. While paused the
        step is held back and taken by resume().
        """
        if self._game_state is GameState.PAUSED:
            self._advance_pending = True
            return
        self._advance_pending = False
        if self._current_trial >= self._active_config.num_trials:
            self._finish_session()
        else:
            self._begin_trial()

    def _begin_trial(self) -> None:
        config = self._active_config
        stimulus = self._generator.next_stimulus()
        trial = Trial(
            index=len(self._trials),
            position=stimulus.position,
            letter=stimulus.letter,
            visual_match=stimulus.visual_match,
            audio_match=stimulus.audio_match,
        )
        self._trials.append(trial)
        self._current = trial

        index = trial.index
        self._clock = TrialClock(
            self.scheduler,
            config.stimulus_duration_ms,
            config.response_window_ms,
            on_complete=lambda: self._on_window_closed(index),
            on_stale=self._violation,
            logger=self.logger,
        )
        self._clock.start()
        self.logger.debug(
            "Trial %d: position=%d letter=%s visual_match=%s audio_match=%s",
            index,
            trial.position,
            trial.letter,
            trial.visual_match,
            trial.audio_match,
        )

        speak = config.audio_enabled and config.mode.scores(Modality.AUDIO)
        if self.on_stimulus is not None:
            self.on_stimulus(trial, speak)

    def _on_window_closed(self, index: int) -> None:
        trial = self._current
        if (
            trial is None
            or trial.index != index
            or self._game_state is not GameState.PLAYING
        ):
            self._violation(f"stale trial timer for trial {index}")
            return

        epoch = self._epoch
        trial.close()
        self._current = None
        self._clock = None
        self._current_trial += 1

        # Listeners may pause or reset; re-check after each of them
        if self.practice:
            outcome = trial.classify(Modality.VISUAL, self._active_config.n_level)
            if outcome in (Outcome.MISS, Outcome.CORRECT_REJECTION):
                self._feedback(outcome)
                if epoch != self._epoch:
                    return

        if self.on_trial_complete is not None:
            self.on_trial_complete(trial)
            if epoch != self._epoch:
                return

        self._advance()

    def _finish_session(self) -> None:
        if self._session_ended:
            self._violation("session finished twice")
            return
        self._session_ended = True
        self._cancel_clock()
        config = self._active_config
        epoch = self._epoch

        if self.practice:
            self.logger.info("Practice complete after %d trials", self._current_trial)
            self._set_state(GameState.SETUP)
            if epoch == self._epoch and self.on_practice_complete is not None:
                self.on_practice_complete()
            return

        timestamp = self._wall_clock().isoformat()
        session = aggregate(self._trials, config, timestamp)
        self._session = session
        self._last_adaptation = decide(
            config.n_level, session.accuracy, self.adaptive_enabled, self.policy
        )
        self.logger.info(
            "Session complete: accuracy=%.3f visual=%.3f audio=%.3f",
            session.accuracy,
            session.visual_accuracy,
            session.audio_accuracy,
        )
        self._set_state(GameState.RESULTS)
        if epoch == self._epoch and self.on_session_complete is not None:
            self.on_session_complete(session)

    # -------------------- helpers --------------------
    def _freeze_config(self, config: SessionConfig) -> SessionConfig:
        """
        Clamp values the engine cannot run with. Range checks proper
        belong to the caller (see config.validate_config).
        """
        fixed = config.with_changes(
            mode=GameMode(config.mode),
            n_level=max(1, config.n_level),
            num_trials=max(0, config.num_trials),
            stimulus_duration_ms=max(0, config.stimulus_duration_ms),
            inter_trial_interval_ms=max(0, config.inter_trial_interval_ms),
        )
        if fixed != config:
            self.logger.warning("Clamped out-of-range configuration %s to %s", config, fixed)
        return fixed

    def _apply_adaptation(self) -> None:
        decision = self._last_adaptation
        if decision is not None and decision.next != self._config.n_level:
            self._config = self._config.with_changes(n_level=decision.next)

    def _clear_session_data(self) -> None:
        self._trials = []
        self._current = None
        self._clock = None
        self._current_trial = 0
        self._session = None
        self._session_ended = False
        self._active_config = None
        self._advance_pending = False
        self._epoch += 1
        if self._generator is not None:
            self._generator.reset()

    def _cancel_clock(self) -> None:
        if self._clock is not None:
            self._clock.cancel()
            self._clock = None

    def _set_state(self, state: GameState) -> None:
        old, self._game_state = self._game_state, state
        if old is not state:
            self.logger.debug("State %s -> %s", old.value, state.value)
            if self.on_state_change is not None:
                self.on_state_change(old, state)

    def _feedback(self, outcome: Outcome) -> None:
        if self.on_feedback is not None:
            self.on_feedback(PRACTICE_FEEDBACK[outcome], outcome)

    def _violation(self, message: str) -> None:
        if self.strict:
            raise InvariantViolation(message)
        self.logger.warning("Invariant violation ignored: %s", message)
