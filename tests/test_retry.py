from __future__ import annotations

import allure
import pytest

from issue_sync.config import RetrySettings
from issue_sync.sync.errors import SourceApiError, StoreError, StoreErrorKind
from issue_sync.sync.retry import (
    AttemptEvent,
    Backoff,
    RetryDecision,
    RetryPolicy,
    decide_retry,
    execute,
    pipeline_policy,
    source_fetch_policy,
    store_write_policy,
)

pytestmark = [
    allure.epic("Sync Engine"),
    allure.feature("Retry Policies"),
]


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FlakyOperation:
    def __init__(self, failures: list[Exception], result: str = "ok") -> None:
        self._failures = list(failures)
        self._result = result
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self._failures:
            raise self._failures.pop(0)
        return self._result


def _source_policy(max_attempts: int = 3) -> RetryPolicy:
    return source_fetch_policy(
        RetrySettings(
            max_attempts=max_attempts,
            initial_delay_seconds=1.0,
            multiplier=2.0,
            max_delay_seconds=30.0,
        ),
    )


def test_backoff_is_capped_exponential() -> None:
    backoff = Backoff(initial_delay=1.0, multiplier=2.0, max_delay=5.0)

    assert [backoff.delay_for(attempt) for attempt in range(1, 6)] == [1.0, 2.0, 4.0, 5.0, 5.0]


def test_linear_backoff_when_multiplier_is_one() -> None:
    backoff = Backoff(initial_delay=2.0, multiplier=1.0, max_delay=2.0)

    assert backoff.delay_for(1) == backoff.delay_for(4) == 2.0


def test_policy_rejects_zero_attempts() -> None:
    with pytest.raises(ValueError, match="max_attempts"):
        RetryPolicy(name="x", max_attempts=0, backoff=Backoff(1.0, 1.0, 1.0))


def test_decide_retry_for_retryable_error_with_budget_left() -> None:
    decision = decide_retry(_source_policy(), 2, SourceApiError(message="x", status=503))

    assert decision == RetryDecision(retry=True, delay=2.0)


def test_decide_retry_stops_when_budget_is_spent() -> None:
    decision = decide_retry(_source_policy(), 3, SourceApiError(message="x", status=503))

    assert decision.retry is False


def test_decide_retry_short_circuits_non_retryable_errors() -> None:
    decision = decide_retry(_source_policy(max_attempts=10), 1, SourceApiError.not_found("x"))

    assert decision.retry is False


def test_default_policies_match_operation_classes() -> None:
    store = store_write_policy(RetrySettings(3, 0.5, 1.5, 10.0))
    pipeline = pipeline_policy(RetrySettings(2, 2.0, 1.0, 2.0))

    assert store.is_retryable(RuntimeError("connection reset")) is True
    assert store.is_retryable(RuntimeError("permission denied")) is False
    assert pipeline.is_retryable(RuntimeError("anything")) is True
    assert _source_policy().is_retryable(RuntimeError("anything")) is False


@pytest.mark.asyncio
async def test_execute_returns_after_transient_failures() -> None:
    sleep = SleepRecorder()
    operation = FlakyOperation(
        [SourceApiError(message="busy", status=503), SourceApiError(message="busy", status=502)],
    )

    result = await execute(operation, _source_policy(), sleep=sleep)

    assert result == "ok"
    assert operation.calls == 3
    assert sleep.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_execute_raises_classified_error_after_exhaustion() -> None:
    sleep = SleepRecorder()
    operation = FlakyOperation([RuntimeError("connection reset")] * 5)
    policy = store_write_policy(RetrySettings(3, 0.5, 1.5, 10.0))

    with pytest.raises(StoreError, match="connection reset") as raised:
        await execute(operation, policy, sleep=sleep)

    assert raised.value.kind == StoreErrorKind.NETWORK_ERROR
    assert isinstance(raised.value.__cause__, RuntimeError)
    assert operation.calls == 3
    assert sleep.delays == [0.5, 0.75]


@pytest.mark.asyncio
async def test_execute_does_not_retry_non_retryable_errors() -> None:
    sleep = SleepRecorder()
    operation = FlakyOperation([SourceApiError.not_found("acme/widgets")])

    with pytest.raises(SourceApiError, match="not found"):
        await execute(operation, _source_policy(max_attempts=5), sleep=sleep)

    assert operation.calls == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_execute_reports_every_attempt() -> None:
    events: list[AttemptEvent] = []
    operation = FlakyOperation([SourceApiError(message="busy", status=503)])

    await execute(operation, _source_policy(), sleep=SleepRecorder(), on_attempt=events.append)

    assert [(event.attempt, event.succeeded, event.delay) for event in events] == [
        (1, False, 1.0),
        (2, True, None),
    ]
    assert events[0].policy == "source_fetch"
    assert events[0].error is not None
    assert events[0].error.retryable is True


@pytest.mark.asyncio
async def test_attempt_counters_are_local_to_each_execute_call() -> None:
    policy = _source_policy(max_attempts=2)
    sleep = SleepRecorder()

    first = FlakyOperation([SourceApiError(message="busy", status=503)])
    second = FlakyOperation([SourceApiError(message="busy", status=503)])

    assert await execute(first, policy, sleep=sleep) == "ok"
    assert await execute(second, policy, sleep=sleep) == "ok"
    assert sleep.delays == [1.0, 1.0]
