"""Bounded retry with deterministic exponential backoff.

``execute_with_retry`` invokes an async operation, and while the failure is
classified retryable and the budget allows, sleeps
``retry_delay * backoff_factor ** (n - 1)`` before retry number *n*.
No jitter is added.  Non-retryable errors propagate on first occurrence.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, TypeVar

from datasleuth.domain.exceptions import is_retryable

logger = logging.getLogger(__name__)

T = TypeVar("T")

RetryPredicate = Callable[[BaseException], bool]
RetryHook = Callable[[int, BaseException, float], Any]
Sleep = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class RetryPolicy:
    """Retry parameters.

    Attributes
    ----------
    max_retries:
        Number of retries after the first attempt.  ``0`` disables retrying.
    retry_delay:
        Base delay in seconds before the first retry.
    backoff_factor:
        Multiplier applied to the delay for each subsequent retry.
    is_retryable:
        Predicate classifying an error as transient.  Defaults to the
        error's explicit ``retry`` flag.
    """

    max_retries: int = 3
    retry_delay: float = 1.0
    backoff_factor: float = 2.0
    is_retryable: RetryPredicate = field(default=is_retryable, compare=False)

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.retry_delay < 0:
            raise ValueError(f"retry_delay must be >= 0, got {self.retry_delay}")
        if self.backoff_factor < 1:
            raise ValueError(f"backoff_factor must be >= 1, got {self.backoff_factor}")

    def delay_for(self, retry_number: int) -> float:
        """Delay before retry *retry_number* (1-based)."""
        return self.retry_delay * self.backoff_factor ** (retry_number - 1)


NO_RETRY = RetryPolicy(max_retries=0, retry_delay=0.0)


def _log_retry(attempt: int, exc: BaseException, delay: float) -> None:
    logger.warning(
        "Attempt %d failed, retrying in %.2fs: %s", attempt, delay, exc
    )


class RetryOutcome:
    """Mutable attempt counter filled in by :func:`execute_with_retry`."""

    __slots__ = ("attempts",)

    def __init__(self) -> None:
        self.attempts = 0


async def execute_with_retry(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    *,
    on_retry: RetryHook | None = _log_retry,
    sleep: Sleep = asyncio.sleep,
    outcome: RetryOutcome | None = None,
) -> T:
    """Run *fn* under *policy*.

    Parameters
    ----------
    fn:
        Zero-argument coroutine factory; called once per attempt.
    policy:
        Retry parameters.  ``None`` uses :func:`active_retry_policy`.
    on_retry:
        Called as ``on_retry(attempt, exc, delay)`` before each backoff
        sleep.  ``attempt`` is the 1-based number of the failed attempt.
    sleep:
        Awaitable sleep used for backoff; injectable for tests.
    outcome:
        Optional counter that receives the number of attempts made.

    Returns
    -------
    The value of the first successful attempt.
    """
    policy = policy or active_retry_policy()
    attempt = 0
    while True:
        attempt += 1
        if outcome is not None:
            outcome.attempts = attempt
        try:
            return await fn()
        except Exception as exc:
            retries_used = attempt - 1
            if retries_used >= policy.max_retries or not policy.is_retryable(exc):
                logger.debug(
                    "Giving up after %d attempt(s): %s", attempt, exc
                )
                raise
            delay = policy.delay_for(attempt)
            if on_retry is not None:
                on_retry(attempt, exc, delay)
            await sleep(delay)


def with_retry(
    policy: RetryPolicy | None = None,
    *,
    on_retry: RetryHook | None = _log_retry,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Decorator form of :func:`execute_with_retry`.

    Usage::

        @with_retry(RetryPolicy(max_retries=2, retry_delay=0.5))
        async def fetch(url: str) -> str:
            ...
    """

    def decorator(fn: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(fn)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await execute_with_retry(
                lambda: fn(*args, **kwargs), policy, on_retry=on_retry
            )

        return wrapper

    return decorator


# ---------------------------------------------------------------------------
# Ambient policy
# ---------------------------------------------------------------------------

_active_policy: ContextVar[RetryPolicy | None] = ContextVar(
    "datasleuth_retry_policy", default=None
)


def active_retry_policy() -> RetryPolicy:
    """Policy of the enclosing pipeline run, or the defaults outside one.

    Nested constructs (tracks, loops) use this when they are not given an
    explicit policy, so a pipeline's retry settings reach every level.
    """
    return _active_policy.get() or RetryPolicy()


@contextmanager
def retry_policy_scope(policy: RetryPolicy) -> Iterator[None]:
    """Make *policy* the ambient policy for tasks created inside the block."""
    token = _active_policy.set(policy)
    try:
        yield
    finally:
        _active_policy.reset(token)
