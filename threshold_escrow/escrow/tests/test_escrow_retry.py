import logging
from functools import partial

import pytest
import trio
import trio.testing

from threshold_escrow.escrow.errors import LedgerUnavailableError, UnauthorizedError
from threshold_escrow.escrow.retry import RetryPolicy, with_retry

FAST = RetryPolicy(max_retries=3, base_delay=0, jitter=0, attempt_timeout=None)


class FlakyOperation:
    def __init__(self, failures: int, exc: BaseException = None) -> None:
        self.failures = failures
        self.exc = exc or LedgerUnavailableError("ledger node unreachable")
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        await trio.lowlevel.checkpoint()
        if self.calls <= self.failures:
            raise self.exc
        return "ok"


def test_succeeds_after_transient_failures() -> None:
    operation = FlakyOperation(failures=2)
    assert trio.run(with_retry, operation, FAST) == "ok"
    assert operation.calls == 3


def test_gives_up_after_budget() -> None:
    operation = FlakyOperation(failures=10)

    async def main() -> None:
        with pytest.raises(LedgerUnavailableError):
            await with_retry(operation, FAST, description="vote")

    trio.run(main)
    assert operation.calls == FAST.max_retries + 1


def test_non_transient_errors_propagate_immediately() -> None:
    operation = FlakyOperation(failures=1, exc=UnauthorizedError("not a holder"))

    async def main() -> None:
        with pytest.raises(UnauthorizedError):
            await with_retry(operation, FAST)

    trio.run(main)
    assert operation.calls == 1


def test_attempt_timeout_is_retried() -> None:
    calls = []

    async def hangs_once() -> str:
        calls.append(trio.current_time())
        if len(calls) == 1:
            await trio.sleep_forever()
        return "ok"

    policy = RetryPolicy(max_retries=1, base_delay=0, jitter=0, attempt_timeout=5)
    clock = trio.testing.MockClock(autojump_threshold=0)
    assert trio.run(with_retry, hangs_once, policy, clock=clock) == "ok"
    assert len(calls) == 2
    assert calls[1] - calls[0] == pytest.approx(5)


def test_backoff_schedule() -> None:
    operation = FlakyOperation(failures=3)
    policy = RetryPolicy(
        max_retries=3, base_delay=1.0, multiplier=2.0, jitter=0, attempt_timeout=None
    )

    async def main() -> float:
        start = trio.current_time()
        await with_retry(operation, policy)
        return trio.current_time() - start

    elapsed = trio.run(main, clock=trio.testing.MockClock(autojump_threshold=0))
    assert elapsed == pytest.approx(1.0 + 2.0 + 4.0)


def test_retries_are_logged(caplog: pytest.LogCaptureFixture) -> None:
    operation = FlakyOperation(failures=1)
    with caplog.at_level(logging.WARNING, logger="threshold_escrow.escrow.retry"):
        trio.run(partial(with_retry, operation, FAST, description="share delivery to bob"))
    assert any("share delivery to bob" in r.getMessage() for r in caplog.records)


def test_delay_for() -> None:
    policy = RetryPolicy(base_delay=1.0, max_delay=5.0, multiplier=2.0, jitter=0)
    assert [policy.delay_for(n) for n in range(4)] == [1.0, 2.0, 4.0, 5.0]

    jittered = RetryPolicy(base_delay=1.0, jitter=0.1)
    for _ in range(50):
        assert 0.9 <= jittered.delay_for(0) <= 1.1


@pytest.mark.parametrize(
    "kwargs",
    [{"max_retries": -1}, {"base_delay": -1}, {"max_delay": -0.5}, {"jitter": 1.0}],
)
def test_policy_validation(kwargs) -> None:
    with pytest.raises(ValueError):
        RetryPolicy(**kwargs)
