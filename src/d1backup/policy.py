"""Bounds and pacing for the export polling loop.

D1 cancels an in-progress export that is not polled continually, so the loop
polls promptly. It also has to stop somewhere: the base protocol defines no
limit, and the policy supplies one by poll count and by elapsed time.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class PollPolicy:
    """Bounded polling policy with a gently growing inter-poll delay.

    Set both ``max_polls`` and ``max_elapsed_s`` to ``None`` to poll until the
    job reaches a terminal state.
    """

    max_polls: int | None = 120
    interval_s: float = 1.0
    backoff_multiplier: float = 1.5
    max_interval_s: float = 10.0
    max_elapsed_s: float | None = 900.0

    def __post_init__(self) -> None:
        """Validate invariants to keep polling behavior predictable."""
        if self.max_polls is not None and self.max_polls < 1:
            raise ValueError("PollPolicy.max_polls must be >= 1 or None")
        if self.interval_s < 0:
            raise ValueError("PollPolicy.interval_s must be >= 0")
        if self.backoff_multiplier < 1:
            raise ValueError("PollPolicy.backoff_multiplier must be >= 1")
        if self.max_interval_s < 0:
            raise ValueError("PollPolicy.max_interval_s must be >= 0")
        if self.max_elapsed_s is not None and self.max_elapsed_s < 0:
            raise ValueError("PollPolicy.max_elapsed_s must be >= 0 or None")

    def delay_before(self, poll_index: int) -> float:
        """Return the delay before poll number *poll_index* (1-based).

        The first poll goes out immediately.
        """
        if poll_index <= 1:
            return 0.0
        base = self.interval_s * (self.backoff_multiplier ** (poll_index - 2))
        return min(self.max_interval_s, base)

    def allows(
        self, *, polls: int, elapsed_s: float, next_delay_s: float = 0.0
    ) -> bool:
        """Whether another poll may be issued after *polls* calls.

        The next poll goes out after *next_delay_s*, so it must still land
        inside ``max_elapsed_s``.
        """
        if self.max_polls is not None and polls >= self.max_polls:
            return False
        if self.max_elapsed_s is None:
            return True
        return elapsed_s + next_delay_s < self.max_elapsed_s
