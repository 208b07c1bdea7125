"""Reconnect backoff for the gateway connection.

The base delay starts at a floor, doubles after every scheduled attempt up to a
ceiling, and each issued delay is jittered by a uniform factor.
"""

import random
from typing import Optional


class ReconnectPolicy:
    """Exponential backoff with jitter, reset on successful authentication."""

    def __init__(
        self,
        floor: float = 1.0,
        ceiling: float = 30.0,
        multiplier: float = 2.0,
        jitter: float = 0.2,
        rng: Optional[random.Random] = None,
    ) -> None:
        if floor <= 0:
            raise ValueError("floor must be positive")
        if ceiling < floor:
            raise ValueError("ceiling must be >= floor")
        if not 0 <= jitter < 1:
            raise ValueError("jitter must be in [0, 1)")

        self.floor = floor
        self.ceiling = ceiling
        self.multiplier = multiplier
        self.jitter = jitter
        self._rng = rng or random.Random()

        self._base = floor
        self._attempts = 0
        self._last_base: Optional[float] = None

    @classmethod
    def from_config(cls, config, rng: Optional[random.Random] = None) -> "ReconnectPolicy":
        return cls(
            floor=config.reconnect_backoff_floor,
            ceiling=config.reconnect_backoff_ceiling,
            multiplier=config.reconnect_backoff_multiplier,
            jitter=config.reconnect_jitter,
            rng=rng,
        )

    @property
    def current_base(self) -> float:
        """Base delay the next scheduled attempt will use."""
        return self._base

    @property
    def last_base(self) -> Optional[float]:
        """Pre-jitter base of the most recently issued delay."""
        return self._last_base

    @property
    def attempts(self) -> int:
        """Delays issued since the last reset."""
        return self._attempts

    def base_for_attempt(self, attempt: int) -> float:
        """Pre-jitter delay of the ``attempt``-th retry (1-based)."""
        if attempt < 1:
            raise ValueError("attempt is 1-based")
        return min(self.floor * self.multiplier ** (attempt - 1), self.ceiling)

    def next_delay(self) -> float:
        """Issue the jittered delay for the next attempt and advance the base."""
        base = self._base
        factor = self._rng.uniform(1 - self.jitter, 1 + self.jitter)

        self._last_base = base
        self._attempts += 1
        self._base = min(base * self.multiplier, self.ceiling)
        return base * factor

    def reset(self) -> None:
        """Return to the floor delay."""
        self._base = self.floor
        self._attempts = 0
        self._last_base = None
