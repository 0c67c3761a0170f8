import random
from dataclasses import dataclass
from typing import Generic, Iterator, Optional, Sequence, TypeVar

from dual_n_back.constants import AUDIO_LETTERS, VISUAL_GRID_SIZE

T = TypeVar("T")


class SequenceHistory(Generic[T]):
    """
    Append-only record of the stimuli shown in one modality.

    Only two things ever happen to it during a session: the generator
    reads the value n entries back, then appends the newest one.
    Nothing is ever removed or rewritten, so a lookup made at trial t
    always sees exactly what the player saw.
    """

    def __init__(self):
        self._items: list[T] = []

    def append(self, value: T) -> None:
        self._items.append(value)

    def back(self, n: int) -> T:
        """
        Value shown n steps before the next append.
        """
        assert 1 <= n <= len(self._items), "n must be within the history"
        return self._items[len(self._items) - n]

    def __len__(self) -> int:
        return len(self._items)

    def __getitem__(self, index: int) -> T:
        return self._items[index]

    def __iter__(self) -> Iterator[T]:
        return iter(self._items)

    def __repr__(self) -> str:
        return f"SequenceHistory({self._items!r})"


def nback_match(history: SequenceHistory, n: int, value) -> bool:
    """True iff value equals the one shown n steps back."""
    return len(history) >= n and history.back(n) == value


@dataclass(frozen=True)
class Stimulus:
    position: int
    letter: str
    visual_match: bool
    audio_match: bool


class StimulusGenerator:
    """
    Produces the (position, letter) pair for each trial.

    Both draws are uniform and independent of each other and of whether
    they will turn out to be a match; ground truth is computed afterwards
    by looking n_level entries back in each history.
    """

    def __init__(
        self,
        n_level: int,
        letters: Sequence[str] = AUDIO_LETTERS,
        grid_size: int = VISUAL_GRID_SIZE,
        rng: Optional[random.Random] = None,
        seed: Optional[int] = None,
    ):
        assert n_level > 0, "n_level must be positive"
        assert len(letters) > 0, "letters must not be empty"
        assert grid_size > 0, "grid_size must be positive"

        self.n_level = n_level
        self.letters = tuple(letters)
        self.grid_size = grid_size
        self.rng = rng if rng is not None else random.Random(seed)

        self._positions: SequenceHistory[int] = SequenceHistory()
        self._letters: SequenceHistory[str] = SequenceHistory()

    @property
    def positions(self) -> SequenceHistory[int]:
        return self._positions

    @property
    def letters_shown(self) -> SequenceHistory[str]:
        return self._letters

    def next_stimulus(self) -> Stimulus:
        """
        Draw the next pair, compute its match flags against the
        history, then append it.
        """
        position = self.rng.randrange(self.grid_size)
        letter = self.rng.choice(self.letters)

        visual_match = nback_match(self._positions, self.n_level, position)
        audio_match = nback_match(self._letters, self.n_level, letter)

        self._positions.append(position)
        self._letters.append(letter)

        return Stimulus(position, letter, visual_match, audio_match)

    def reset(self) -> None:
        self._positions = SequenceHistory()
        self._letters = SequenceHistory()

    def __len__(self) -> int:
        """
        Number of stimuli generated so far.
        """
        return len(self._positions)
