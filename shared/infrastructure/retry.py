"""
Retry utilities for backend calls and background polling.

Provides exponential backoff with jitter so a fleet of terminals does not
hammer the backend in lockstep after an outage.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Final


# =============================================================================
# Constants
# =============================================================================


# Default jitter range: ±25% of calculated delay
DEFAULT_JITTER_FACTOR: Final[float] = 0.25

DEFAULT_BACKOFF_BASE: Final[float] = 2.0

DEFAULT_INITIAL_DELAY: Final[float] = 0.5

# HTTP statuses worth retrying for idempotent reads
RETRYABLE_STATUS_CODES: Final[frozenset[int]] = frozenset({408, 425, 429, 500, 502, 503, 504})


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True, slots=True)
class RetryConfig:
    """
    Configuration for retry behavior.

    Attributes:
        initial_delay: Base delay in seconds.
        max_delay: Maximum delay cap in seconds.
        backoff_base: Exponential backoff multiplier.
        jitter_factor: Random jitter range as fraction (0.25 = ±25%).
        max_attempts: Maximum attempts including the first one.
    """

    initial_delay: float = DEFAULT_INITIAL_DELAY
    max_delay: float = 30.0
    backoff_base: float = DEFAULT_BACKOFF_BASE
    jitter_factor: float = DEFAULT_JITTER_FACTOR
    max_attempts: int = 3

    def __post_init__(self) -> None:
        if self.initial_delay <= 0:
            raise ValueError("initial_delay must be positive")
        if self.max_delay < self.initial_delay:
            raise ValueError("max_delay must be >= initial_delay")
        if self.backoff_base < 1:
            raise ValueError("backoff_base must be >= 1")
        if not 0 <= self.jitter_factor <= 1:
            raise ValueError("jitter_factor must be between 0 and 1")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")


# =============================================================================
# Retry Functions
# =============================================================================


def calculate_delay_with_jitter(
    attempt: int,
    config: RetryConfig | None = None,
) -> float:
    """
    Calculate retry delay with exponential backoff and jitter.

    The delay is calculated as:
        base_delay = initial_delay * (backoff_base ^ attempt)
        capped_delay = min(base_delay, max_delay)
        final_delay = capped_delay * (1 ± jitter_factor)

    Args:
        attempt: Current attempt number (0-indexed).
        config: Retry configuration (uses defaults if None).

    Returns:
        Delay in seconds with jitter applied, never negative.
    """
    if config is None:
        config = RetryConfig()

    base_delay = config.initial_delay * (config.backoff_base ** attempt)
    capped_delay = min(base_delay, config.max_delay)

    jitter_range = capped_delay * config.jitter_factor
    jitter = random.uniform(-jitter_range, jitter_range)

    return max(0.0, capped_delay + jitter)


def should_retry(attempt: int, max_attempts: int) -> bool:
    """
    Determine if another attempt should be made.

    Args:
        attempt: Attempts made so far (1-indexed).
        max_attempts: Maximum allowed attempts.
    """
    return attempt < max_attempts


def is_retryable_status(status_code: int) -> bool:
    """True for transient HTTP failures."""
    return status_code in RETRYABLE_STATUS_CODES


# =============================================================================
# Factory Functions
# =============================================================================


def create_http_retry_config(max_attempts: int = 3, max_delay: float = 5.0) -> RetryConfig:
    """Retry config for idempotent backend reads: short, few attempts."""
    return RetryConfig(
        initial_delay=min(DEFAULT_INITIAL_DELAY, max_delay),
        max_delay=max_delay,
        max_attempts=max(1, max_attempts),
    )


def create_poll_backoff_config(interval: float) -> RetryConfig:
    """
    Backoff for a polling loop that keeps failing.

    Starts at the normal poll interval and caps at eight times it.
    """
    return RetryConfig(
        initial_delay=interval,
        max_delay=interval * 8,
        jitter_factor=0.1,
        max_attempts=1_000_000,
    )
