import random
from dataclasses import dataclass, field


@dataclass
class ExponentialBackoff:
    """
    Exponential backoff with optional jitter, used by the first party while
    the second party's listener is not reachable yet.

        next_delay = min(current * factor, maximum) + jitter

    The jitter keeps many first parties started together (e.g. a CI matrix
    against one shared second party) from reconnecting in lockstep.
    """

    initial: float = 0.5
    """Initial delay (in seconds) before the first retry."""

    maximum: float = 10.0
    """Maximum allowed delay (in seconds)."""

    factor: float = 2.0
    """Multiplicative factor applied to the delay after each retry."""

    jitter: float = 0.5
    """Maximum random jitter added to each delay."""

    _current: float = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._current = self.initial

    def next_delay(self) -> float:
        """Return the delay to wait now, and grow the next one."""
        delay = self._current
        self._current = min(self._current * self.factor, self.maximum)

        if self.jitter > 0:
            delay += random.uniform(0, self.jitter)

        return delay

    def reset(self) -> None:
        """Start again from the initial delay, after a successful connect."""
        self._current = self.initial
