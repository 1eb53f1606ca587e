"""
Retry policies for resilient outbound calls.

A policy is plain configuration (attempt budget plus backoff strategy) and is
turned into a tenacity ``AsyncRetrying`` controller at the call site.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    stop_after_attempt,
    wait_exponential,
    wait_incrementing,
)
from tenacity.retry import retry_base
from tenacity.wait import wait_base


class BackoffStrategy(Protocol):
    """Anything that can produce a tenacity wait and preview its delays."""

    def to_wait(self) -> wait_base: ...

    def delay_after(self, attempt_number: int) -> float: ...


@dataclass(frozen=True)
class LinearBackoff:
    """Wait ``attempt_number * step`` seconds after a failed attempt."""

    step: float = 1.0

    def to_wait(self) -> wait_base:
        return wait_incrementing(start=self.step, increment=self.step)

    def delay_after(self, attempt_number: int) -> float:
        return attempt_number * self.step


@dataclass(frozen=True)
class ExponentialBackoff:
    """Wait ``multiplier * 2 ** (n - 1)`` seconds, bounded by ``maximum``."""

    multiplier: float = 1.0
    maximum: float = 30.0

    def to_wait(self) -> wait_base:
        return wait_exponential(multiplier=self.multiplier, max=self.maximum)

    def delay_after(self, attempt_number: int) -> float:
        return min(self.multiplier * 2 ** (attempt_number - 1), self.maximum)


@dataclass(frozen=True)
class RetryPolicy:
    """
    Attempt budget and backoff for one retrying operation.

    Args:
        max_attempts: Total attempts including the first one
        backoff: Strategy producing the delay between attempts
    """

    max_attempts: int = 3
    backoff: BackoffStrategy = field(default_factory=LinearBackoff)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def planned_delays(self) -> list[float]:
        """Delays slept between attempts when every attempt fails."""
        return [self.backoff.delay_after(n) for n in range(1, self.max_attempts)]

    @classmethod
    def from_config(cls, max_attempts: int, strategy: str, step_seconds: float) -> "RetryPolicy":
        """Build a policy from flat configuration values."""
        if strategy == "linear":
            backoff: BackoffStrategy = LinearBackoff(step=step_seconds)
        elif strategy == "exponential":
            backoff = ExponentialBackoff(multiplier=step_seconds)
        else:
            raise ValueError(f"Unknown backoff strategy: {strategy}")
        return cls(max_attempts=max_attempts, backoff=backoff)


def build_async_retrying(
    policy: RetryPolicy,
    retry: retry_base,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    before_sleep: Callable[[RetryCallState], Any] | None = None,
    retry_error_callback: Callable[[RetryCallState], Any] | None = None,
) -> AsyncRetrying:
    """
    Create a tenacity controller for ``policy``.

    Args:
        policy: Attempt budget and backoff
        retry: tenacity retry predicate deciding whether an attempt failed
        sleep: Coroutine used to wait between attempts
        before_sleep: Hook called after a failed attempt, before waiting
        retry_error_callback: Produces the return value once attempts run out

    Returns:
        Configured ``AsyncRetrying`` instance
    """
    return AsyncRetrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=policy.backoff.to_wait(),
        retry=retry,
        sleep=sleep,
        before_sleep=before_sleep,
        retry_error_callback=retry_error_callback,
    )
