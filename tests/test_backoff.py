import allure
import pytest

from social_jobs.queue.backoff import BackoffPolicy

pytestmark = [
    allure.epic("Job Queue"),
    allure.feature("Retry Backoff"),
]


def test_backoff_is_linear_until_cap() -> None:
    policy = BackoffPolicy(base_seconds=2.5, cap_seconds=30.0)

    assert policy.delay(1) == 2.5
    assert policy.delay(2) == 5.0
    assert policy.delay(3) == 7.5
    assert policy.delay(12) == 30.0
    assert policy.delay(500) == 30.0


def test_backoff_treats_zero_attempts_as_first_attempt() -> None:
    policy = BackoffPolicy(base_seconds=2.5, cap_seconds=30.0)

    assert policy.delay(0) == policy.delay(1) == 2.5
    assert policy.delay(-3) == 2.5


def test_backoff_is_monotonic_and_bounded() -> None:
    policy = BackoffPolicy(base_seconds=1.7, cap_seconds=9.0)

    delays = [policy.delay(attempts) for attempts in range(1, 40)]
    assert delays == sorted(delays)
    assert max(delays) == 9.0
    assert all(delay <= policy.cap_seconds for delay in delays)


def test_backoff_cap_below_base_wins() -> None:
    assert BackoffPolicy(base_seconds=10.0, cap_seconds=4.0).delay(1) == 4.0


@pytest.mark.parametrize(("base", "cap"), [(-1.0, 10.0), (1.0, -0.5)])
def test_backoff_rejects_negative_parameters(base: float, cap: float) -> None:
    with pytest.raises(ValueError):
        BackoffPolicy(base_seconds=base, cap_seconds=cap)
