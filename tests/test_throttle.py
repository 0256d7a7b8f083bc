import pytest

from kell_briefing.throttle import FixedIntervalThrottle, NoThrottle


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def test_first_wait_does_not_sleep() -> None:
    clock = FakeClock()
    throttle = FixedIntervalThrottle(0.1, clock=clock, sleep=clock.sleep)

    throttle.wait()

    assert clock.sleeps == []


def test_back_to_back_waits_sleep_the_full_interval() -> None:
    clock = FakeClock()
    throttle = FixedIntervalThrottle(0.1, clock=clock, sleep=clock.sleep)

    throttle.wait()
    throttle.wait()
    throttle.wait()

    assert clock.sleeps == [pytest.approx(0.1), pytest.approx(0.1)]


def test_elapsed_time_counts_toward_interval() -> None:
    clock = FakeClock()
    throttle = FixedIntervalThrottle(0.1, clock=clock, sleep=clock.sleep)

    throttle.wait()
    clock.now += 0.04
    throttle.wait()
    clock.now += 0.5
    throttle.wait()

    assert clock.sleeps == [pytest.approx(0.06)]


def test_negative_interval_rejected() -> None:
    with pytest.raises(ValueError):
        FixedIntervalThrottle(-1)


def test_no_throttle_is_a_noop() -> None:
    assert NoThrottle().wait() is None
