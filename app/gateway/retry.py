from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple


WAKE_MESSAGES: Tuple[str, ...] = (
    "MedGemma is waking up, this is normal for a first request...",
    "Still warming up, dedicated AI models take a moment to start...",
    "Almost there, the model is loading into memory...",
    "Hang tight, MedGemma is nearly ready for you...",
    "Still working on it, your patience is appreciated!",
    "The model is spinning up, this only happens on the first request...",
    "Nearly there, just a bit more time...",
    "Warming up, once ready, future requests will be fast!",
    "Still connecting, we haven't given up!",
    "Last attempt, give it one more moment...",
)

DEFAULT_DELAYS_SECONDS: Tuple[float, ...] = (5, 8, 10, 12, 15, 15, 15, 15, 15, 15)


def wake_message(index: int) -> str:
    """Message for retry `index` (0-based), clamped to the last entry."""
    return WAKE_MESSAGES[max(0, min(index, len(WAKE_MESSAGES) - 1))]


@dataclass(frozen=True)
class RetryStep:
    delay_seconds: float
    message: str


@dataclass(frozen=True)
class RetrySchedule:
    """
    Fixed, ordered wake-up schedule. Step i is consumed after the (i+1)-th
    upstream attempt answers 503, so a schedule of N steps allows N + 1
    attempts in total.

    Being a fixed table (not computed backoff), the worst-case wait is known
    up front: total_delay_seconds().
    """
    steps: Tuple[RetryStep, ...]

    @classmethod
    def from_delays(cls, delays: Sequence[float]) -> "RetrySchedule":
        return cls(steps=tuple(RetryStep(float(d), wake_message(i)) for i, d in enumerate(delays)))

    @classmethod
    def default(cls, override: Optional[Sequence[float]] = None) -> "RetrySchedule":
        return cls.from_delays(override if override else DEFAULT_DELAYS_SECONDS)

    @property
    def max_retries(self) -> int:
        return len(self.steps)

    @property
    def max_attempts(self) -> int:
        return len(self.steps) + 1

    def has_retry(self, index: int) -> bool:
        return 0 <= index < len(self.steps)

    def step(self, index: int) -> RetryStep:
        return self.steps[index]

    def total_delay_seconds(self, retries: Optional[int] = None) -> float:
        n = len(self.steps) if retries is None else retries
        return sum(s.delay_seconds for s in self.steps[:n])
