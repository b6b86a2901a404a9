import pytest

from services.shared.utils.retry import CircuitBreaker, with_retry


class Flaky:
    """Fails a fixed number of times before succeeding."""

    def __init__(self, failures, error=ConnectionError):
        self.failures = failures
        self.error = error
        self.calls = 0

    async def __call__(self, value="ok"):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error(f"failure {self.calls}")
        return value


class Ticker:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.mark.asyncio
async def test_retry_succeeds_after_failures():
    operation = Flaky(2)

    result = await with_retry(
        operation,
        max_attempts=3,
        initial_delay=0,
        operation_args=("done",),
    )

    assert result == "done"
    assert operation.calls == 3


@pytest.mark.asyncio
async def test_retry_gives_up_after_max_attempts():
    operation = Flaky(5)

    with pytest.raises(ConnectionError):
        await with_retry(operation, max_attempts=3, initial_delay=0)

    assert operation.calls == 3


@pytest.mark.asyncio
async def test_unlisted_errors_are_not_retried():
    operation = Flaky(1, error=KeyError)

    with pytest.raises(KeyError):
        await with_retry(
            operation,
            max_attempts=3,
            initial_delay=0,
            retry_on=(ConnectionError,),
        )

    assert operation.calls == 1


def test_circuit_breaker_opens_and_half_opens():
    clock = Ticker()
    breaker = CircuitBreaker("db", failure_threshold=2, reset_timeout=10, clock=clock)

    breaker.record_failure()
    assert not breaker.is_open()
    breaker.record_failure()
    assert breaker.state == "OPEN"
    assert breaker.is_open()

    clock.now = 10.0
    assert not breaker.is_open()
    assert breaker.state == "HALF-OPEN"

    breaker.record_success()
    assert breaker.state == "CLOSED"
    assert breaker.failures == 0


@pytest.mark.asyncio
async def test_retry_records_outcomes_on_breaker():
    breaker = CircuitBreaker("db", failure_threshold=5)
    operation = Flaky(2)

    await with_retry(
        operation, max_attempts=3, initial_delay=0, circuit_breaker=breaker
    )

    assert breaker.state == "CLOSED"
    assert breaker.failures == 0


@pytest.mark.asyncio
async def test_open_breaker_skips_attempts():
    breaker = CircuitBreaker("db", failure_threshold=1, reset_timeout=3600)
    breaker.record_failure()
    operation = Flaky(0)

    with pytest.raises(RuntimeError):
        await with_retry(
            operation, max_attempts=2, initial_delay=0, circuit_breaker=breaker
        )

    assert operation.calls == 0
