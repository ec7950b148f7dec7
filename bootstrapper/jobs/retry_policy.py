"""Exponential backoff retry policy with cap and jitter."""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Callable


@dataclass(frozen=True)
class RetryPolicy:
    """Immutable retry budget and backoff calculation helpers.

    Attributes:
        max_attempts: Total attempts allowed per resource operation, first try included.
        backoff_base_seconds: Base delay for exponential backoff.
        max_backoff_seconds: Exponential delay cap before jitter.
        jitter_min_multiplier: Minimum jitter multiplier.
        jitter_max_multiplier: Maximum jitter multiplier.
        random_unit_interval_provider: Provider returning value in [0.0, 1.0].
    """

    max_attempts: int = 5
    backoff_base_seconds: float = 2.0
    max_backoff_seconds: float = 60.0
    jitter_min_multiplier: float = 0.5
    jitter_max_multiplier: float = 1.5
    random_unit_interval_provider: Callable[[], float] = field(default=random.random, compare=False)

    def __post_init__(self) -> None:
        """Validate policy bounds.

        Raises:
            ValueError: Raised when a bound is out of range.
        """

        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.backoff_base_seconds < 0:
            raise ValueError("backoff_base_seconds must be >= 0")
        if self.max_backoff_seconds < self.backoff_base_seconds:
            raise ValueError("max_backoff_seconds must be >= backoff_base_seconds")
        if self.jitter_min_multiplier <= 0:
            raise ValueError("jitter_min_multiplier must be > 0")
        if self.jitter_max_multiplier < self.jitter_min_multiplier:
            raise ValueError("jitter_max_multiplier must be >= jitter_min_multiplier")

    def policy_has_attempts_remaining(self, attempts_made: int) -> bool:
        """Return whether another attempt fits in the budget.

        Args:
            attempts_made: Attempts already made for the operation.

        Returns:
            bool: True when `attempts_made` is below `max_attempts`.
        """

        return attempts_made < self.max_attempts

    def policy_calculate_backoff_seconds(self, retry_index: int, retry_after_seconds: float | None = None) -> float:
        """Calculate exponential retry wait with cap and jitter.

        Args:
            retry_index: Zero-based retry index (0 for the wait after the first failure).
            retry_after_seconds: Optional upstream-requested delay used as a floor.

        Returns:
            float: Computed wait seconds before the next attempt.

        Raises:
            ValueError: Raised when retry index is negative.
            RuntimeError: Raised when jitter provider returns out-of-range value.
        """

        if retry_index < 0:
            raise ValueError("retry_index must be >= 0")

        backoff_seconds = self.backoff_base_seconds * (2**retry_index)
        capped_backoff_seconds = min(backoff_seconds, self.max_backoff_seconds)
        jittered_backoff_seconds = capped_backoff_seconds * self.policy_calculate_jitter_multiplier()
        return max(float(retry_after_seconds or 0.0), float(jittered_backoff_seconds))

    def policy_calculate_jitter_multiplier(self) -> float:
        """Return jitter multiplier using configured min/max bounds.

        Returns:
            float: Jitter multiplier value.

        Raises:
            RuntimeError: Raised when jitter source returns value outside [0.0, 1.0].
        """

        random_ratio = float(self.random_unit_interval_provider())
        if random_ratio < 0.0 or random_ratio > 1.0:
            raise RuntimeError("random_unit_interval_provider must return a value in [0.0, 1.0]")

        jitter_span = self.jitter_max_multiplier - self.jitter_min_multiplier
        return self.jitter_min_multiplier + (random_ratio * jitter_span)
