"""Bounded-attempt retry execution with capped exponential backoff."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from issue_sync.config import RetrySettings
from issue_sync.sync.errors import ConnectorError
from issue_sync.sync.failure_classifier import (
    classify_pipeline_failure,
    classify_source_failure,
    classify_store_failure,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
Classifier = Callable[[BaseException], ConnectorError]
Sleep = Callable[[float], Awaitable[None]]


@dataclass(slots=True, frozen=True)
class Backoff:
    """Delay shape between attempts."""

    initial_delay: float
    multiplier: float
    max_delay: float

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after the given failed attempt (1-based)."""

        return min(self.initial_delay * self.multiplier ** max(attempt - 1, 0), self.max_delay)


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    """Attempt budget and backoff for one operation class."""

    name: str
    max_attempts: int
    backoff: Backoff
    classify: Classifier = classify_pipeline_failure

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    def is_retryable(self, error: BaseException) -> bool:
        return self.classify(error).retryable


@dataclass(slots=True, frozen=True)
class RetryDecision:
    """Whether to try again and how long to wait first."""

    retry: bool
    delay: float = 0.0


@dataclass(slots=True, frozen=True)
class AttemptEvent:
    """Observation of one attempt made under a retry policy."""

    policy: str
    attempt: int
    succeeded: bool
    error: ConnectorError | None = None
    delay: float | None = None


AttemptListener = Callable[[AttemptEvent], None]


def decide_retry(policy: RetryPolicy, attempt: int, error: ConnectorError) -> RetryDecision:
    """Decide the next step after ``attempt`` failed with a classified error."""

    if not error.retryable or attempt >= policy.max_attempts:
        return RetryDecision(retry=False)
    return RetryDecision(retry=True, delay=policy.backoff.delay_for(attempt))


async def execute(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    sleep: Sleep = asyncio.sleep,
    on_attempt: AttemptListener | None = None,
) -> T:
    """Run ``operation`` under ``policy``; raise the classified error once retries stop."""

    attempt = 0
    while True:
        attempt += 1
        try:
            result = await operation()
        except Exception as exc:
            error = policy.classify(exc)
            decision = decide_retry(policy, attempt, error)
            logger.warning(
                "%s operation failed (attempt %d/%d): %s",
                policy.name,
                attempt,
                policy.max_attempts,
                error,
            )
            _notify(
                on_attempt,
                AttemptEvent(
                    policy=policy.name,
                    attempt=attempt,
                    succeeded=False,
                    error=error,
                    delay=decision.delay if decision.retry else None,
                ),
            )
            if not decision.retry:
                if error is exc:
                    raise
                raise error from exc
            await sleep(decision.delay)
            continue

        if attempt > 1:
            logger.info("%s operation succeeded on attempt %d", policy.name, attempt)
        _notify(on_attempt, AttemptEvent(policy=policy.name, attempt=attempt, succeeded=True))
        return result


def _notify(on_attempt: AttemptListener | None, event: AttemptEvent) -> None:
    if on_attempt is None:
        return
    try:
        on_attempt(event)
    except Exception:
        logger.exception("Attempt listener failed for %s attempt %d", event.policy, event.attempt)


def source_fetch_policy(settings: RetrySettings) -> RetryPolicy:
    return RetryPolicy(
        name="source_fetch",
        max_attempts=settings.max_attempts,
        backoff=_backoff(settings),
        classify=classify_source_failure,
    )


def store_write_policy(settings: RetrySettings) -> RetryPolicy:
    return RetryPolicy(
        name="store_write",
        max_attempts=settings.max_attempts,
        backoff=_backoff(settings),
        classify=classify_store_failure,
    )


def pipeline_policy(settings: RetrySettings) -> RetryPolicy:
    return RetryPolicy(
        name="sync_pipeline",
        max_attempts=settings.max_attempts,
        backoff=_backoff(settings),
        classify=classify_pipeline_failure,
    )


def _backoff(settings: RetrySettings) -> Backoff:
    return Backoff(
        initial_delay=settings.initial_delay_seconds,
        multiplier=settings.multiplier,
        max_delay=settings.max_delay_seconds,
    )
