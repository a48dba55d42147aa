from types import SimpleNamespace

import pytest

from server.core.RateLimiter import RateLimiter


class FakeClock:
    def __init__(self) -> None:
        self.now = 500.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock(monkeypatch):
    clock = FakeClock()
    fake_time = SimpleNamespace(time=clock)
    # the in-memory storage stamps hits with time.time()
    monkeypatch.setattr("limits.storage.memory.time", fake_time)
    monkeypatch.setattr("server.core.RateLimiter.time", fake_time)
    return clock


@pytest.fixture
def limiter(helper_config, clock):
    return RateLimiter(helper_config)


def test_sixty_first_request_in_window_is_rejected(limiter, clock):
    for _ in range(60):
        assert limiter.admit("ip:1.2.3.4").allowed
        clock.now += 3
    rejected = limiter.admit("ip:1.2.3.4")
    assert not rejected.allowed
    assert rejected.reason == "window"
    # the oldest request leaves the window 300s after it was made
    assert rejected.retry_after == pytest.approx(500.0 + 300 - clock.now)


def test_window_slides(limiter, clock):
    for _ in range(60):
        limiter.admit("k")
        clock.now += 3
    clock.now += 300
    assert limiter.admit("k").allowed


def test_flood_guard_rejects_fifth_rapid_request(limiter, clock):
    for _ in range(4):
        assert limiter.admit("conv:abc").allowed
        clock.now += 1
    rejected = limiter.admit("conv:abc")
    assert not rejected.allowed
    assert rejected.reason == "flood"
    assert rejected.retry_after > 0


def test_flood_guard_allows_paced_requests(limiter, clock):
    for _ in range(10):
        assert limiter.admit("conv:abc").allowed
        clock.now += 2.5


def test_rejected_requests_are_not_recorded(limiter, clock):
    for _ in range(4):
        limiter.admit("k")
        clock.now += 1
    assert not limiter.admit("k").allowed
    retry = limiter.admit("k").retry_after
    # the window bound is inclusive: step just past the reported reset
    clock.now += retry + 0.01
    assert limiter.admit("k").allowed


def test_keys_are_independent(limiter, clock):
    for _ in range(4):
        limiter.admit("conv:a")
        clock.now += 0.1
    assert not limiter.admit("conv:a").allowed
    assert limiter.admit("conv:b").allowed


def test_limits_are_configurable(monkeypatch, helper_config, clock):
    monkeypatch.setenv("RATE_LIMIT_MAX_REQUESTS", "2")
    monkeypatch.setenv("RATE_LIMIT_FLOOD_MIN_INTERVAL", "0")
    limiter = RateLimiter(helper_config)
    assert limiter.admit("k").allowed
    assert limiter.admit("k").allowed
    assert not limiter.admit("k").allowed


def test_request_rejected_by_one_key_is_not_recorded_on_the_others(limiter, clock):
    for _ in range(4):
        assert limiter.admit("conv:busy").allowed
        clock.now += 0.1
    rejected_key, admission = limiter.admit_all(["ip:1.2.3.4", "conv:busy"])
    assert rejected_key == "conv:busy"
    assert not admission.allowed
    # the ip key saw no hit, so four rapid admissions still fit under its flood guard
    for _ in range(4):
        assert limiter.admit("ip:1.2.3.4").allowed
        clock.now += 0.1
    assert not limiter.admit("ip:1.2.3.4").allowed


def test_all_keys_are_recorded_when_admitted(limiter, clock):
    for _ in range(4):
        key, admission = limiter.admit_all(["ip:9.9.9.9", "conv:x"])
        assert key is None and admission.allowed
        clock.now += 0.1
    assert not limiter.admit("ip:9.9.9.9").allowed
    assert not limiter.admit("conv:x").allowed
