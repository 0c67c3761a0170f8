"""Session configuration and the game-mode vocabulary."""

import math
from dataclasses import asdict, dataclass, replace
from enum import Enum

from dual_n_back.constants import (
    DEFAULT_MODE,
    DEFAULT_N_LEVEL,
    DEFAULT_NUM_TRIALS,
    DEFAULT_STIMULUS_DURATION_MS,
    INTER_TRIAL_INTERVAL_MS,
    MAX_N_LEVEL,
    MAX_STIMULUS_DURATION_MS,
    MAX_TRIALS,
    MIN_N_LEVEL,
    MIN_STIMULUS_DURATION_MS,
    MIN_TRIALS,
    PRACTICE_MODE,
    PRACTICE_N_LEVEL,
    PRACTICE_NUM_TRIALS,
)


class Modality(str, Enum):
    VISUAL = "visual"
    AUDIO = "audio"


class GameMode(str, Enum):
    SINGLE_VISUAL = "single-visual"
    SINGLE_AUDIO = "single-audio"
    DUAL = "dual"

    @property
    def modalities(self) -> tuple[Modality, ...]:
        """Modalities that are scored in this mode."""
        if self is GameMode.SINGLE_VISUAL:
            return (Modality.VISUAL,)
        if self is GameMode.SINGLE_AUDIO:
            return (Modality.AUDIO,)
        return (Modality.VISUAL, Modality.AUDIO)

    def scores(self, modality: Modality) -> bool:
        return modality in self.modalities

    @property
    def label(self) -> str:
        """E.g. 'Single Visual'."""
        return self.value.replace("-", " ").title()


@dataclass(frozen=True)
class SessionConfig:
    n_level: int = DEFAULT_N_LEVEL
    num_trials: int = DEFAULT_NUM_TRIALS
    stimulus_duration_ms: int = DEFAULT_STIMULUS_DURATION_MS
    audio_enabled: bool = True
    mode: GameMode = GameMode(DEFAULT_MODE)
    inter_trial_interval_ms: int = INTER_TRIAL_INTERVAL_MS

    @property
    def response_window_ms(self) -> int:
        """The player may respond until the trial advances."""
        return self.stimulus_duration_ms + self.inter_trial_interval_ms

    def with_changes(self, **changes) -> "SessionConfig":
        return replace(self, **changes)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["mode"] = self.mode.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "SessionConfig":
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        if "mode" in known:
            known["mode"] = GameMode(known["mode"])
        return cls(**known)


PRACTICE_CONFIG = SessionConfig(
    n_level=PRACTICE_N_LEVEL,
    num_trials=PRACTICE_NUM_TRIALS,
    mode=GameMode(PRACTICE_MODE),
)


def validate_config(config: SessionConfig) -> SessionConfig:
    """
    Range-check a configuration before handing it to the engine.
    The engine itself accepts anything; this is for callers.
    """
    if not MIN_N_LEVEL <= config.n_level <= MAX_N_LEVEL:
        raise ValueError(
            f"n_level must be between {MIN_N_LEVEL} and {MAX_N_LEVEL}, got {config.n_level}"
        )
    if not MIN_TRIALS <= config.num_trials <= MAX_TRIALS:
        raise ValueError(
            f"num_trials must be between {MIN_TRIALS} and {MAX_TRIALS}, got {config.num_trials}"
        )
    if not MIN_STIMULUS_DURATION_MS <= config.stimulus_duration_ms <= MAX_STIMULUS_DURATION_MS:
        raise ValueError(
            "stimulus_duration_ms must be between "
            f"{MIN_STIMULUS_DURATION_MS} and {MAX_STIMULUS_DURATION_MS}, "
            f"got {config.stimulus_duration_ms}"
        )
    if config.inter_trial_interval_ms < 0:
        raise ValueError("inter_trial_interval_ms must not be negative")
    if not isinstance(config.mode, GameMode):
        raise ValueError(f"Unknown game mode: {config.mode!r}")
    return config


def estimate_session_minutes(num_trials: int, stimulus_duration_ms: int) -> int:
    """Rough session length, counting one second between trials."""
    seconds = num_trials * (stimulus_duration_ms / 1000 + 1)
    return math.ceil(seconds / 60)
