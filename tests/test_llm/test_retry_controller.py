import pytest

from reasonloop.exceptions import LLMAPIError, MissingCredentialError, ModelCallError
from reasonloop.llm.retry import RetryController, compute_backoff_delay


def test_backoff_doubles_and_caps_without_jitter():
    delays = [compute_backoff_delay(n, jitter=0.0) for n in range(1, 9)]
    assert delays == [1.0, 2.0, 4.0, 8.0, 16.0, 32.0, 32.0, 32.0]


def test_backoff_jitter_stays_within_quarter():
    assert compute_backoff_delay(3, rand=lambda: 0.0) == pytest.approx(3.0)
    assert compute_backoff_delay(3, rand=lambda: 1.0) == pytest.approx(5.0)
    assert compute_backoff_delay(3, rand=lambda: 0.5) == pytest.approx(4.0)
    assert compute_backoff_delay(10, rand=lambda: 1.0) == pytest.approx(40.0)


@pytest.mark.asyncio
async def test_retry_controller_succeeds_after_failures():
    sleeps: list[float] = []
    notified: list[tuple[int, int, int]] = []
    attempts = {"n": 0}

    async def fake_sleep(delay: float) -> None:
        sleeps.append(delay)

    async def on_retry(attempt, max_retries, error, retries_left):
        notified.append((attempt, max_retries, retries_left))

    async def call():
        attempts["n"] += 1
        if attempts["n"] < 3:
            raise LLMAPIError("overloaded", status_code=529)
        return "ok"

    controller = RetryController(max_retries=3, jitter=0.0, sleep=fake_sleep, on_retry=on_retry)

    assert await controller.run(call) == "ok"
    assert controller.attempts == 3
    assert sleeps == [1.0, 2.0]
    assert notified == [(1, 3, 3), (2, 3, 2)]


@pytest.mark.asyncio
async def test_retry_controller_raises_after_max_retries_plus_one_attempts():
    sleeps: list[float] = []
    calls = {"n": 0}

    async def fake_sleep(delay: float) -> None:
        sleeps.append(delay)

    async def call():
        calls["n"] += 1
        raise LLMAPIError(f"failure {calls['n']}")

    controller = RetryController(max_retries=2, jitter=0.0, sleep=fake_sleep)

    with pytest.raises(ModelCallError) as exc:
        await controller.run(call)

    assert calls["n"] == 3
    assert sleeps == [1.0, 2.0]
    assert exc.value.attempts == 3
    assert str(exc.value) == "failure 3"


@pytest.mark.asyncio
async def test_retry_controller_zero_retries_tries_once():
    calls = {"n": 0}

    async def call():
        calls["n"] += 1
        raise RuntimeError("boom")

    with pytest.raises(ModelCallError):
        await RetryController(max_retries=0).run(call)
    assert calls["n"] == 1


@pytest.mark.asyncio
async def test_configuration_errors_are_not_retried():
    calls = {"n": 0}

    async def call():
        calls["n"] += 1
        raise MissingCredentialError("openai", "OPENAI_CRED")

    with pytest.raises(MissingCredentialError):
        await RetryController(max_retries=5).run(call)
    assert calls["n"] == 1
