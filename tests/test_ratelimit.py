from __future__ import annotations

import pytest

from pdf_image_service.ratelimit import FixedWindowRateLimiter


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_allows_requests_up_to_the_ceiling() -> None:
    limiter = FixedWindowRateLimiter(3, 60, clock=FakeClock())
    assert [limiter.hit("10.0.0.1") for _ in range(4)] == [True, True, True, False]


def test_clients_are_counted_separately() -> None:
    limiter = FixedWindowRateLimiter(1, 60, clock=FakeClock())
    assert limiter.hit("a") is True
    assert limiter.hit("b") is True
    assert limiter.hit("a") is False


def test_window_resets_after_it_elapses() -> None:
    clock = FakeClock()
    limiter = FixedWindowRateLimiter(2, 60, clock=clock)
    limiter.hit("a")
    limiter.hit("a")
    assert limiter.hit("a") is False
    clock.now += 30
    assert limiter.retry_after("a") == 30
    clock.now += 30
    assert limiter.hit("a") is True


def test_reset_forgets_all_clients() -> None:
    limiter = FixedWindowRateLimiter(1, 60, clock=FakeClock())
    limiter.hit("a")
    limiter.reset()
    assert limiter.hit("a") is True
    assert limiter.retry_after("unknown") == 0


@pytest.mark.parametrize(("max_requests", "window"), [(0, 60), (5, 0)])
def test_rejects_invalid_configuration(max_requests: int, window: float) -> None:
    with pytest.raises(ValueError):
        FixedWindowRateLimiter(max_requests, window)
