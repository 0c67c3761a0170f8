import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from dual_n_back.constants import (
    ADAPTIVE_LOWER_THRESHOLD,
    ADAPTIVE_MAX_LEVEL,
    ADAPTIVE_UPPER_THRESHOLD,
    MIN_N_LEVEL,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AdaptivePolicy:
    """
    Accuracy cutoffs (fractions in [0, 1]) for moving between levels.
    Level goes up at or above `upper`, down strictly below `lower`.
    """

    upper: float = ADAPTIVE_UPPER_THRESHOLD
    lower: float = ADAPTIVE_LOWER_THRESHOLD
    min_level: int = MIN_N_LEVEL
    max_level: int = ADAPTIVE_MAX_LEVEL

    def __post_init__(self):
        assert 0 <= self.lower <= self.upper <= 1, (
            "thresholds must satisfy 0 <= lower <= upper <= 1"
        )
        assert 1 <= self.min_level <= self.max_level, (
            "levels must satisfy 1 <= min_level <= max_level"
        )


DEFAULT_POLICY = AdaptivePolicy()


class Direction(str, Enum):
    UP = "up"
    DOWN = "down"
    HOLD = "hold"


@dataclass(frozen=True)
class AdaptiveDecision:
    previous: int
    next: int
    direction: Direction
    message: str


def propose_next_level(
    current: int,
    accuracy: float,
    enabled: bool,
    policy: AdaptivePolicy = DEFAULT_POLICY,
) -> int:
    """N level for the next session. Never below 1."""
    if not enabled:
        return current
    level = current
    if accuracy >= policy.upper and current < policy.max_level:
        level = current + 1
    elif accuracy < policy.lower and current > policy.min_level:
        level = current - 1
    return max(1, policy.min_level, level)


def decide(
    current: int,
    accuracy: float,
    enabled: bool,
    policy: AdaptivePolicy = DEFAULT_POLICY,
) -> Optional[AdaptiveDecision]:
    """
    Same rule as propose_next_level, plus the message shown to the
    player. Returns None when adaptive difficulty is off.
    """
    if not enabled:
        return None
    nxt = propose_next_level(current, accuracy, enabled, policy)
    if nxt > current:
        direction = Direction.UP
        message = f"Congratulations! N-Level increased to {nxt}!"
    elif nxt < current:
        direction = Direction.DOWN
        message = f"N-Level decreased to {nxt}. Keep practicing!"
    else:
        direction = Direction.HOLD
        if accuracy >= policy.upper:
            message = f"You're at the max N-Level ({current}) and performing excellently!"
        elif accuracy < policy.lower:
            message = f"N-Level remains at {current}. Keep it up!"
        else:
            message = f"N-Level maintained at {current}. Good effort!"
    if direction is not Direction.HOLD:
        logger.info(
            "Adaptive difficulty: %d -> %d (accuracy %.2f)", current, nxt, accuracy
        )
    return AdaptiveDecision(current, nxt, direction, message)
