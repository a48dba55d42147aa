from server.core.CircuitBreaker import BreakerState, CircuitBreaker, CircuitBreakerRegistry


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _breaker(clock: FakeClock) -> CircuitBreaker:
    return CircuitBreaker("llm", failure_threshold=5, failure_window=120, cooldown=30, clock=clock)


def test_opens_after_five_failures_within_window():
    clock = FakeClock()
    breaker = _breaker(clock)
    for _ in range(4):
        assert breaker.allow_request()
        breaker.record_failure()
        clock.advance(10)
    assert breaker.get_state() == BreakerState.CLOSED
    breaker.record_failure()
    assert breaker.get_state() == BreakerState.OPEN
    assert not breaker.allow_request()


def test_failures_outside_window_do_not_accumulate():
    clock = FakeClock()
    breaker = _breaker(clock)
    for _ in range(4):
        breaker.record_failure()
    clock.advance(121)
    breaker.record_failure()
    assert breaker.get_state() == BreakerState.CLOSED


def test_success_resets_failure_count():
    clock = FakeClock()
    breaker = _breaker(clock)
    for _ in range(4):
        breaker.record_failure()
    breaker.record_success()
    breaker.record_failure()
    assert breaker.get_state() == BreakerState.CLOSED
    assert breaker.get_snapshot()["failureCount"] == 1


def test_half_open_allows_single_trial_then_closes():
    clock = FakeClock()
    breaker = _breaker(clock)
    for _ in range(5):
        breaker.record_failure()
    clock.advance(30)
    assert breaker.get_state() == BreakerState.HALF_OPEN
    assert breaker.allow_request()
    assert not breaker.allow_request()
    breaker.record_success()
    assert breaker.get_state() == BreakerState.CLOSED
    assert breaker.allow_request()


def test_half_open_failure_reopens():
    clock = FakeClock()
    breaker = _breaker(clock)
    for _ in range(5):
        breaker.record_failure()
    clock.advance(31)
    assert breaker.allow_request()
    breaker.record_failure()
    assert breaker.get_state() == BreakerState.OPEN
    clock.advance(29)
    assert not breaker.allow_request()


def test_release_frees_the_trial_slot():
    clock = FakeClock()
    breaker = _breaker(clock)
    for _ in range(5):
        breaker.record_failure()
    clock.advance(30)
    assert breaker.allow_request()
    breaker.release()
    assert breaker.get_state() == BreakerState.HALF_OPEN
    assert breaker.allow_request()


def test_registry_keeps_one_breaker_per_provider(helper_config):
    registry = CircuitBreakerRegistry(helper_config)
    assert registry.get("anthropic") is registry.get("anthropic")
    assert registry.get("anthropic") is not registry.get("workersai")
    assert set(registry.get_snapshots()) == {"anthropic", "workersai"}
