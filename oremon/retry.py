"""Bounded retry with exponential backoff for catalog transport calls."""

from __future__ import annotations

import functools
import logging
import time
import typing as t

from oremon.errors import TransientError

logger = logging.getLogger(__name__)

P = t.ParamSpec("P")
R = t.TypeVar("R")


class RetryPolicy(t.NamedTuple):
    """How many times, and how patiently, to retry a transient failure.

    Examples
    --------
    >>> policy = RetryPolicy(retries=3, backoff=0.5)
    >>> [policy.delay(n) for n in range(1, 4)]
    [0.5, 1.0, 2.0]
    """

    retries: int = 3
    backoff: float = 0.5
    max_delay: float = 8.0

    def delay(self, attempt: int) -> float:
        return min(self.max_delay, self.backoff * (2 ** (attempt - 1)))


class _HasRetryPolicy(t.Protocol):
    retry_policy: RetryPolicy


def retrying(
    fn: t.Callable[t.Concatenate[t.Any, P], R],
) -> t.Callable[t.Concatenate[t.Any, P], R]:
    """Retry a method on `TransientError`, reading the policy from ``self``.

    The decorated method's owner must expose a ``retry_policy`` attribute and
    may expose a ``sleep`` callable (tests replace it to avoid waiting).
    Non-transient errors propagate on the first attempt.
    """

    @functools.wraps(fn)
    def wrapper(self: _HasRetryPolicy, *args: P.args, **kwargs: P.kwargs) -> R:
        policy = self.retry_policy
        sleep = t.cast("t.Callable[[float], None]", getattr(self, "sleep", time.sleep))
        attempt = 0
        while True:
            attempt += 1
            try:
                return fn(self, *args, **kwargs)
            except TransientError as exc:
                if attempt > policy.retries:
                    logger.debug("giving up after %d attempt(s): %s", attempt, exc)
                    raise
                delay = policy.delay(attempt)
                logger.warning(
                    "%s (attempt %d/%d), retrying in %.1fs",
                    exc,
                    attempt,
                    policy.retries + 1,
                    delay,
                )
                sleep(delay)

    return wrapper
