from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional

from dual_n_back.config import GameMode, Modality, SessionConfig
from dual_n_back.errors import InvariantViolation


class Outcome(str, Enum):
    HIT = "hit"
    MISS = "miss"
    FALSE_ALARM = "false-alarm"
    CORRECT_REJECTION = "correct-rejection"

    @property
    def correct(self) -> bool:
        return self in (Outcome.HIT, Outcome.CORRECT_REJECTION)


def classify(match: bool, responded: bool) -> Outcome:
    """Signal-detection outcome for one modality of one trial."""
    if match:
        return Outcome.HIT if responded else Outcome.MISS
    return Outcome.FALSE_ALARM if responded else Outcome.CORRECT_REJECTION


# -------------------- Trial --------------------
@dataclass
class Trial:
    """
    One presented stimulus pair plus what the player did about it.
    Each modality's response is written at most once, and nothing
    changes after close().
    """

    index: int
    position: int
    letter: str
    visual_match: bool = False
    audio_match: bool = False
    visual_response: bool = False
    audio_response: bool = False
    visual_response_ms: Optional[float] = None
    audio_response_ms: Optional[float] = None
    closed: bool = False

    def match_for(self, modality: Modality) -> bool:
        return self.visual_match if modality is Modality.VISUAL else self.audio_match

    def responded(self, modality: Modality) -> bool:
        return (
            self.visual_response if modality is Modality.VISUAL else self.audio_response
        )

    def response_ms(self, modality: Modality) -> Optional[float]:
        return (
            self.visual_response_ms
            if modality is Modality.VISUAL
            else self.audio_response_ms
        )

    @property
    def response_time_ms(self) -> Optional[float]:
        """Time from stimulus onset to the first response of any modality."""
        times = [t for t in (self.visual_response_ms, self.audio_response_ms) if t is not None]
        return min(times) if times else None

    def record_response(self, modality: Modality, elapsed_ms: float) -> bool:
        """Register a press; returns True iff first time for this modality."""
        if self.closed:
            raise InvariantViolation(
                f"response to {modality.value} after trial {self.index} closed"
            )
        if self.responded(modality):
            return False
        if modality is Modality.VISUAL:
            self.visual_response = True
            self.visual_response_ms = elapsed_ms
        else:
            self.audio_response = True
            self.audio_response_ms = elapsed_ms
        return True

    def close(self) -> None:
        self.closed = True

    def is_scored(self, n_level: int) -> bool:
        """Warm-up trials have no back-reference and are never scored."""
        return self.index >= n_level

    def classify(self, modality: Modality, n_level: int) -> Optional[Outcome]:
        if not self.is_scored(n_level):
            return None
        return classify(self.match_for(modality), self.responded(modality))


# -------------------- Aggregation --------------------
@dataclass(frozen=True)
class ModalityStats:
    scored_trials: int = 0
    actual_matches: int = 0
    hits: int = 0
    misses: int = 0
    false_alarms: int = 0
    correct_rejections: int = 0
    response_count: int = 0
    total_response_time: float = 0.0

    @property
    def accuracy(self) -> float:
        if self.scored_trials == 0:
            return 0.0
        value = (self.hits + self.correct_rejections) / self.scored_trials
        return min(1.0, max(0.0, value))

    @property
    def average_response_time(self) -> float:
        if self.response_count == 0:
            return 0.0
        return self.total_response_time / self.response_count


def score_modality(
    trials: Iterable[Trial], modality: Modality, n_level: int
) -> ModalityStats:
    """Single pass over the scored trials of one modality."""
    counts = {outcome: 0 for outcome in Outcome}
    scored = 0
    matches = 0
    responses = 0
    total_rt = 0.0
    for trial in trials:
        outcome = trial.classify(modality, n_level)
        if outcome is None:
            continue
        scored += 1
        counts[outcome] += 1
        if trial.match_for(modality):
            matches += 1
        rt = trial.response_ms(modality)
        if trial.responded(modality) and rt is not None:
            responses += 1
            total_rt += rt
    return ModalityStats(
        scored_trials=scored,
        actual_matches=matches,
        hits=counts[Outcome.HIT],
        misses=counts[Outcome.MISS],
        false_alarms=counts[Outcome.FALSE_ALARM],
        correct_rejections=counts[Outcome.CORRECT_REJECTION],
        response_count=responses,
        total_response_time=total_rt,
    )


@dataclass(frozen=True)
class GameSession:
    """Final statistics of one session. Built once, never mutated."""

    trials: int
    n_level: int
    mode: GameMode
    timestamp: str
    visual: ModalityStats = field(default_factory=ModalityStats)
    audio: ModalityStats = field(default_factory=ModalityStats)

    @property
    def visual_accuracy(self) -> float:
        return self.visual.accuracy

    @property
    def audio_accuracy(self) -> float:
        return self.audio.accuracy

    @property
    def accuracy(self) -> float:
        # Dual mode weighs both modalities equally instead of pooling counts
        accuracies = [self._stats(m).accuracy for m in self.mode.modalities]
        return sum(accuracies) / len(accuracies)

    @property
    def average_response_time(self) -> float:
        stats = [self._stats(m) for m in self.mode.modalities]
        count = sum(s.response_count for s in stats)
        if count == 0:
            return 0.0
        return sum(s.total_response_time for s in stats) / count

    def _stats(self, modality: Modality) -> ModalityStats:
        return self.visual if modality is Modality.VISUAL else self.audio

    def to_dict(self) -> dict:
        """Flat camelCase shape consumed by the results screen."""
        return {
            "trials": self.trials,
            "nLevel": self.n_level,
            "accuracy": self.accuracy,
            "visualAccuracy": self.visual_accuracy,
            "audioAccuracy": self.audio_accuracy,
            "averageResponseTime": self.average_response_time,
            "mode": self.mode.value,
            "timestamp": self.timestamp,
            "actualVisualMatches": self.visual.actual_matches,
            "visualHits": self.visual.hits,
            "visualMisses": self.visual.misses,
            "visualFalseAlarms": self.visual.false_alarms,
            "visualCorrectRejections": self.visual.correct_rejections,
            "actualAudioMatches": self.audio.actual_matches,
            "audioHits": self.audio.hits,
            "audioMisses": self.audio.misses,
            "audioFalseAlarms": self.audio.false_alarms,
            "audioCorrectRejections": self.audio.correct_rejections,
        }


def aggregate(
    trials: Iterable[Trial], config: SessionConfig, timestamp: str
) -> GameSession:
    """
    Build the session summary from the full trial list.

    Modalities the mode does not score are left as empty stats.
    The timestamp is taken as given so the result depends only on
    the inputs.
    """
    trials = list(trials)
    per_modality = {
        modality: score_modality(trials, modality, config.n_level)
        for modality in config.mode.modalities
    }
    return GameSession(
        trials=len(trials),
        n_level=config.n_level,
        mode=config.mode,
        timestamp=timestamp,
        visual=per_modality.get(Modality.VISUAL, ModalityStats()),
        audio=per_modality.get(Modality.AUDIO, ModalityStats()),
    )
